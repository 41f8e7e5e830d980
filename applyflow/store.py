"""Persistence boundary for postings, applications, campaigns and profiles.

``Store`` holds the query logic; subclasses only supply table load/save and a
transaction scope.  Postings are keyed by ``(ats_provider, ats_job_id)`` and
upserting the same identity twice refreshes ``last_seen_at`` instead of adding
a row.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterator

from applyflow.errors import CampaignActiveError, InvalidTransition
from applyflow.log import get_logger
from applyflow.models import (
    Application,
    Campaign,
    CampaignStatus,
    Posting,
    Profile,
    QueueStatus,
    utcnow,
)

log = get_logger(__name__)

PostingKey = tuple[str, str]

# Left behind by a campaign that is no longer active.
_RECLAIMABLE = (QueueStatus.PAUSED, QueueStatus.QUEUED)
_FINISHED = (CampaignStatus.STOPPED, CampaignStatus.COMPLETED)


class Store(ABC):
    # -- primitives -------------------------------------------------------

    @abstractmethod
    def _transaction(self):
        """Context manager serialising a read-modify-write cycle."""

    @abstractmethod
    def _load_postings(self) -> dict[PostingKey, Posting]:
        pass

    @abstractmethod
    def _save_postings(self, rows: dict[PostingKey, Posting]) -> None:
        pass

    @abstractmethod
    def _load_applications(self) -> dict[str, Application]:
        pass

    @abstractmethod
    def _save_applications(self, rows: dict[str, Application]) -> None:
        pass

    @abstractmethod
    def _load_campaigns(self) -> dict[str, Campaign]:
        pass

    @abstractmethod
    def _save_campaigns(self, rows: dict[str, Campaign]) -> None:
        pass

    @abstractmethod
    def fetch_profile(self, user_id: str) -> Profile:
        pass

    # -- postings ---------------------------------------------------------

    def upsert_posting(self, posting: Posting, now: datetime | None = None) -> tuple[Posting, bool]:
        """Insert or refresh a posting; returns (stored posting, created)."""
        now = now or utcnow()
        with self._transaction():
            rows = self._load_postings()
            existing = rows.get(posting.key)
            if existing is not None:
                stored = replace(existing, last_seen_at=now, is_active=True)
                created = False
            else:
                stored = replace(posting, first_seen_at=now, last_seen_at=now, is_active=True)
                created = True
            rows[posting.key] = stored
            self._save_postings(rows)
        log.debug("%s posting %s:%s", "Inserted" if created else "Refreshed", *posting.key)
        return replace(stored), created

    def get_posting(self, ats_provider: str, ats_job_id: str) -> Posting | None:
        with self._transaction():
            row = self._load_postings().get((ats_provider, ats_job_id))
        return replace(row) if row else None

    def list_postings(self, active_only: bool = True) -> list[Posting]:
        with self._transaction():
            rows = list(self._load_postings().values())
        return [replace(p) for p in rows if p.is_active or not active_only]

    def mark_stale_postings(self, days: int = 7, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - timedelta(days=days)
        count = 0
        with self._transaction():
            rows = self._load_postings()
            for key, p in rows.items():
                if p.is_active and p.last_seen_at is not None and p.last_seen_at < cutoff:
                    rows[key] = replace(p, is_active=False)
                    count += 1
            if count:
                self._save_postings(rows)
        log.info("Marked %d stale postings inactive (not seen in %d days)", count, days)
        return count

    def purge_postings(self, days: int = 90, now: datetime | None = None) -> int:
        """Delete inactive postings not seen for ``days``; applications keep their snapshot."""
        cutoff = (now or utcnow()) - timedelta(days=days)
        with self._transaction():
            rows = self._load_postings()
            keep = {
                k: p for k, p in rows.items()
                if p.is_active or p.last_seen_at is None or p.last_seen_at >= cutoff
            }
            purged = len(rows) - len(keep)
            if purged:
                self._save_postings(keep)
        log.info("Purged %d inactive postings (not seen in %d days)", purged, days)
        return purged

    # -- applications -----------------------------------------------------

    def add_application(self, app: Application) -> tuple[Application, bool]:
        """Store a new application unless the user already has one for that posting."""
        with self._transaction():
            rows = self._load_applications()
            for existing in rows.values():
                if existing.user_id == app.user_id and existing.posting.key == app.posting.key:
                    return replace(existing), False
            rows[app.id] = replace(app)
            self._save_applications(rows)
        return replace(app), True

    def get_application(self, app_id: str) -> Application | None:
        with self._transaction():
            row = self._load_applications().get(app_id)
        return replace(row) if row else None

    def has_application(self, user_id: str, ats_provider: str, ats_job_id: str) -> bool:
        with self._transaction():
            rows = self._load_applications().values()
            return any(
                a.user_id == user_id and a.posting.key == (ats_provider, ats_job_id)
                for a in rows
            )

    def list_applications(
        self,
        user_id: str | None = None,
        statuses: tuple[QueueStatus, ...] | None = None,
    ) -> list[Application]:
        with self._transaction():
            rows = list(self._load_applications().values())
        out = [
            replace(a) for a in rows
            if (user_id is None or a.user_id == user_id)
            and (statuses is None or a.queue_status in statuses)
        ]
        return sorted(out, key=lambda a: a.created_at)

    def fetch_pending_applications(self, user_id: str, limit: int | None = None) -> list[Application]:
        """Dispatchable applications, oldest first.

        Includes ``paused`` and ``queued`` applications whose campaign is no
        longer active (stopped while halted, or abandoned by a dead process).
        """
        with self._transaction():
            apps = list(self._load_applications().values())
            active_ids = {c.id for c in self._load_campaigns().values() if c.is_active}
        ready = [
            replace(a) for a in apps
            if a.user_id == user_id and (
                a.queue_status is QueueStatus.PENDING
                or (a.queue_status in _RECLAIMABLE and a.queue_batch_id not in active_ids)
            )
        ]
        ready.sort(key=lambda a: a.created_at)
        return ready if limit is None else ready[:limit]

    def update_application_status(
        self,
        app_id: str,
        status: QueueStatus,
        *,
        expected: QueueStatus | None = None,
        **fields,
    ) -> Application:
        """Write ``status``; with ``expected``, only if the stored row is still in it."""
        with self._transaction():
            rows = self._load_applications()
            if app_id not in rows:
                raise KeyError(f"Unknown application {app_id}")
            current = rows[app_id].queue_status
            if expected is not None and current is not expected:
                raise InvalidTransition("application", current.value, status.value)
            updated = replace(rows[app_id], queue_status=status, **fields)
            rows[app_id] = updated
            self._save_applications(rows)
        log.debug("Application %s → %s", app_id, status.value)
        return replace(updated)

    def application_stats(self, user_id: str | None = None) -> dict[str, int]:
        stats = {s.value: 0 for s in QueueStatus}
        for a in self.list_applications(user_id):
            stats[a.queue_status.value] += 1
        stats["total"] = sum(stats.values())
        return stats

    # -- campaigns --------------------------------------------------------

    def save_campaign(self, campaign: Campaign) -> Campaign:
        """Persist ``campaign``.

        Saving an active campaign while another stored campaign is active
        raises ``CampaignActiveError``; the check and the write share one
        transaction, so two starters cannot both win.  A stopped or
        completed record never changes status again.
        """
        with self._transaction():
            rows = self._load_campaigns()
            existing = rows.get(campaign.id)
            if existing is not None and existing.status in _FINISHED and campaign.status is not existing.status:
                raise InvalidTransition("campaign", existing.status.value, campaign.status.value)
            if campaign.is_active:
                for other in rows.values():
                    if other.id != campaign.id and other.is_active:
                        raise CampaignActiveError(other.id, other.status.value)
            rows[campaign.id] = replace(campaign)
            self._save_campaigns(rows)
        return campaign

    def get_campaign(self, campaign_id: str) -> Campaign | None:
        with self._transaction():
            row = self._load_campaigns().get(campaign_id)
        return replace(row) if row else None

    def list_campaigns(self, statuses: tuple[CampaignStatus, ...] | None = None) -> list[Campaign]:
        with self._transaction():
            rows = list(self._load_campaigns().values())
        out = [replace(c) for c in rows if statuses is None or c.status in statuses]
        return sorted(out, key=lambda c: c.created_at)


class InMemoryStore(Store):
    """Dict-backed store for tests and embedding."""

    def __init__(self, profiles: dict[str, Profile] | None = None) -> None:
        self._lock = threading.RLock()
        self._postings: dict[PostingKey, Posting] = {}
        self._applications: dict[str, Application] = {}
        self._campaigns: dict[str, Campaign] = {}
        self._profiles: dict[str, Profile] = dict(profiles or {})

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            yield

    def _load_postings(self) -> dict[PostingKey, Posting]:
        return dict(self._postings)

    def _save_postings(self, rows: dict[PostingKey, Posting]) -> None:
        self._postings = dict(rows)

    def _load_applications(self) -> dict[str, Application]:
        return dict(self._applications)

    def _save_applications(self, rows: dict[str, Application]) -> None:
        self._applications = dict(rows)

    def _load_campaigns(self) -> dict[str, Campaign]:
        return dict(self._campaigns)

    def _save_campaigns(self, rows: dict[str, Campaign]) -> None:
        self._campaigns = dict(rows)

    def add_profile(self, profile: Profile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = profile

    def fetch_profile(self, user_id: str) -> Profile:
        with self._lock:
            profile = self._profiles.get(user_id)
        if profile is None:
            raise KeyError(f"No profile for user {user_id}")
        return profile
