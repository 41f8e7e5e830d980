"""CSV-backed store: postings, applications and campaigns in ``data/`` with file locking."""
from __future__ import annotations

import csv
import fcntl
import threading
from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator

from applyflow.config import DATA_DIR, PROFILE_PATH, load_profile
from applyflow.log import get_logger
from applyflow.models import (
    Application,
    Campaign,
    CampaignStatus,
    PauseReason,
    Posting,
    PostingSnapshot,
    Profile,
    QueueStatus,
)
from applyflow.store import PostingKey, Store

log = get_logger(__name__)

POSTING_HEADERS: list[str] = [f.name for f in fields(Posting)]
SNAPSHOT_HEADERS: list[str] = [f"posting_{f.name}" for f in fields(PostingSnapshot)]
APPLICATION_HEADERS: list[str] = (
    [f.name for f in fields(Application) if f.name != "posting"] + SNAPSHOT_HEADERS
)
CAMPAIGN_HEADERS: list[str] = [f.name for f in fields(Campaign)]

_DATETIME_COLS = {
    "posted_at", "first_seen_at", "last_seen_at", "created_at", "queued_at",
    "started_at", "completed_at", "paused_at", "finished_at",
}
_TEXT_COLS = {
    "company", "title", "url", "location", "description",
    "posting_company", "posting_title", "posting_url", "posting_location", "posting_description",
}
_BOOL_COLS = {"is_active", "is_remote", "posting_is_remote", "dry_run"}
_INT_COLS = {"salary_min", "salary_max", "retry_count", "match_score", "limit", "total", "completed", "failed"}
_ENUM_COLS: dict[str, Callable[[str], Any]] = {
    "queue_status": QueueStatus,
    "status": CampaignStatus,
    "pause_reason": PauseReason,
}


def _lock(f, exclusive: bool = True) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        op = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(f.fileno(), op)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


def _to_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (QueueStatus, CampaignStatus, PauseReason)):
        return value.value
    return str(value)


def _from_cell(name: str, raw: str | None) -> Any:
    if name in _BOOL_COLS:
        return raw == "1"
    if raw is None or raw == "":
        return "" if name in _TEXT_COLS else None
    if name in _DATETIME_COLS:
        return datetime.fromisoformat(raw)
    if name in _INT_COLS:
        return int(raw)
    if name in _ENUM_COLS:
        return _ENUM_COLS[name](raw)
    return raw


def _decode(row: dict[str, str], headers: list[str]) -> dict[str, Any]:
    return {h: _from_cell(h, row.get(h)) for h in headers}


def _posting_from_row(row: dict[str, str]) -> Posting:
    return Posting(**_decode(row, POSTING_HEADERS))


def _posting_to_row(p: Posting) -> dict[str, str]:
    return {h: _to_cell(getattr(p, h)) for h in POSTING_HEADERS}


def _application_from_row(row: dict[str, str]) -> Application:
    data = _decode(row, APPLICATION_HEADERS)
    snap = {h[len("posting_"):]: data.pop(h) for h in SNAPSHOT_HEADERS}
    return Application(posting=PostingSnapshot(**snap), **data)


def _application_to_row(a: Application) -> dict[str, str]:
    row = {h: _to_cell(getattr(a, h)) for h in APPLICATION_HEADERS if not h.startswith("posting_")}
    for h in SNAPSHOT_HEADERS:
        row[h] = _to_cell(getattr(a.posting, h[len("posting_"):]))
    return row


def _campaign_from_row(row: dict[str, str]) -> Campaign:
    return Campaign(**_decode(row, CAMPAIGN_HEADERS))


def _campaign_to_row(c: Campaign) -> dict[str, str]:
    return {h: _to_cell(getattr(c, h)) for h in CAMPAIGN_HEADERS}


class CsvStore(Store):
    """One CSV per table; every read-modify-write holds an exclusive lock on ``.lock``."""

    def __init__(self, data_dir: Path | None = None, profile_path: Path | None = None) -> None:
        self.data_dir = data_dir or DATA_DIR
        self.profile_path = profile_path or PROFILE_PATH
        self.postings_csv = self.data_dir / "postings.csv"
        self.applications_csv = self.data_dir / "applications.csv"
        self.campaigns_csv = self.data_dir / "campaigns.csv"
        self._thread_lock = threading.RLock()
        self._depth = 0
        self._ensure_tracker()

    def _ensure_tracker(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for path, headers in (
            (self.postings_csv, POSTING_HEADERS),
            (self.applications_csv, APPLICATION_HEADERS),
            (self.campaigns_csv, CAMPAIGN_HEADERS),
        ):
            if not path.exists():
                with open(path, "w", newline="", encoding="utf-8") as f:
                    csv.writer(f).writerow(headers)
                log.info("Created tracker table → %s", path.name)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._thread_lock:
            # Re-entrant: only the outermost scope takes the file lock.
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            with open(self.data_dir / ".lock", "a", encoding="utf-8") as lock_file:
                _lock(lock_file)
                self._depth = 1
                try:
                    yield
                finally:
                    self._depth = 0
                    _unlock(lock_file)

    def _read(self, path: Path) -> list[dict[str, str]]:
        with open(path, "r", newline="", encoding="utf-8") as f:
            return list(csv.DictReader(f))

    def _write(self, path: Path, headers: list[str], rows: list[dict[str, str]]) -> None:
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=headers)
            w.writeheader()
            w.writerows(rows)
        tmp.replace(path)

    def _load_postings(self) -> dict[PostingKey, Posting]:
        rows = (_posting_from_row(r) for r in self._read(self.postings_csv))
        return {p.key: p for p in rows}

    def _save_postings(self, rows: dict[PostingKey, Posting]) -> None:
        self._write(self.postings_csv, POSTING_HEADERS, [_posting_to_row(p) for p in rows.values()])

    def _load_applications(self) -> dict[str, Application]:
        rows = (_application_from_row(r) for r in self._read(self.applications_csv))
        return {a.id: a for a in rows}

    def _save_applications(self, rows: dict[str, Application]) -> None:
        self._write(
            self.applications_csv, APPLICATION_HEADERS,
            [_application_to_row(a) for a in rows.values()],
        )

    def _load_campaigns(self) -> dict[str, Campaign]:
        rows = (_campaign_from_row(r) for r in self._read(self.campaigns_csv))
        return {c.id: c for c in rows}

    def _save_campaigns(self, rows: dict[str, Campaign]) -> None:
        self._write(self.campaigns_csv, CAMPAIGN_HEADERS, [_campaign_to_row(c) for c in rows.values()])

    def fetch_profile(self, user_id: str) -> Profile:
        return Profile.from_dict(load_profile(self.profile_path), user_id=user_id)
