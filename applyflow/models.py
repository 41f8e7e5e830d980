"""Data models for postings, applications, campaigns and profiles."""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class QueueStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


class CampaignStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"


ACTIVE_CAMPAIGN_STATUSES = (CampaignStatus.PROCESSING, CampaignStatus.PAUSED)


class PauseReason(str, Enum):
    CAPTCHA = "captcha"
    USER_TAKEOVER = "user_takeover"
    MANUAL = "manual"


class Verdict(str, Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


ATS_PROVIDERS = ("greenhouse", "lever", "ashby")


@dataclass
class Posting:
    company: str
    title: str
    ats_provider: str
    ats_job_id: str
    url: str
    location: str = ""
    is_remote: bool = False
    salary_min: int | None = None
    salary_max: int | None = None
    employment_type: str | None = None
    description: str = ""
    posted_at: datetime | None = None
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
    is_active: bool = True

    @property
    def key(self) -> tuple[str, str]:
        return (self.ats_provider, self.ats_job_id)

    def snapshot(self) -> "PostingSnapshot":
        return PostingSnapshot(
            company=self.company,
            title=self.title,
            ats_provider=self.ats_provider,
            ats_job_id=self.ats_job_id,
            url=self.url,
            location=self.location,
            is_remote=self.is_remote,
            description=self.description,
        )


@dataclass(frozen=True)
class PostingSnapshot:
    """Copy of the posting fields an Application needs, taken at creation time."""

    company: str
    title: str
    ats_provider: str
    ats_job_id: str
    url: str
    location: str = ""
    is_remote: bool = False
    description: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.ats_provider, self.ats_job_id)


@dataclass
class Application:
    user_id: str
    posting: PostingSnapshot
    id: str = field(default_factory=new_id)
    queue_status: QueueStatus = QueueStatus.PENDING
    retry_count: int = 0
    pause_reason: PauseReason | None = None
    last_error: str | None = None
    match_score: int | None = None
    queue_batch_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    queued_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def label(self) -> str:
        return f"{self.posting.title} @ {self.posting.company}"


@dataclass
class Campaign:
    user_id: str
    id: str = field(default_factory=new_id)
    status: CampaignStatus = CampaignStatus.IDLE
    dry_run: bool = True
    limit: int = 1
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_job_id: str | None = None
    pause_reason: PauseReason | None = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    paused_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_CAMPAIGN_STATUSES


@dataclass(frozen=True)
class MatchScoreBreakdown:
    total: int
    remote: int
    location: int
    skills: int
    seniority: int
    keywords: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class Preferences:
    remote_only: bool = False
    locations: list[str] = field(default_factory=list)
    # Exclusion list: titles containing any of these are rejected.
    max_seniority: list[str] = field(default_factory=list)
    excluded_keywords: list[str] = field(default_factory=list)
    min_salary: int | None = None


@dataclass
class Profile:
    user_id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    linkedin: str = ""
    portfolio: str = ""
    location: str = ""
    summary: str = ""
    skills: list[str] = field(default_factory=list)
    preferences: Preferences = field(default_factory=Preferences)

    @property
    def first_name(self) -> str:
        parts = self.name.strip().split(maxsplit=1)
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        parts = self.name.strip().split(maxsplit=1)
        return parts[1] if len(parts) > 1 else ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], user_id: str) -> "Profile":
        """Build from the YAML layout; camelCase preference keys are accepted too."""
        contact = data.get("profile", data.get("contact", {})) or {}
        prefs = data.get("preferences", {}) or {}

        def pref(snake: str, camel: str, default: Any) -> Any:
            if snake in prefs:
                return prefs[snake]
            return prefs.get(camel, default)

        name = contact.get("name") or " ".join(
            p for p in (contact.get("firstName", ""), contact.get("lastName", "")) if p
        )
        return cls(
            user_id=user_id,
            name=name,
            email=contact.get("email", ""),
            phone=str(contact.get("phone", "") or ""),
            linkedin=contact.get("linkedin", ""),
            portfolio=contact.get("portfolio", ""),
            location=contact.get("location", ""),
            summary=contact.get("summary", contact.get("bio", "")) or "",
            skills=list(data.get("skills", contact.get("skills", [])) or []),
            preferences=Preferences(
                remote_only=bool(pref("remote_only", "remoteOnly", False)),
                locations=list(pref("locations", "locations", []) or []),
                max_seniority=list(pref("max_seniority", "maxSeniority", []) or []),
                excluded_keywords=list(pref("excluded_keywords", "excludedKeywords", []) or []),
                min_salary=pref("min_salary", "minSalary", None),
            ),
        )
