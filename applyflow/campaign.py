"""Campaign and application state machines.

Transitions here are pure apart from the ``persist`` callback, which is
invoked after every campaign transition so the stored record always matches
the in-memory one.
"""
from __future__ import annotations

import threading
from typing import Callable, Iterable

from applyflow import audit
from applyflow.errors import CampaignActiveError, InvalidTransition
from applyflow.log import get_logger
from applyflow.models import (
    Application,
    Campaign,
    CampaignStatus,
    PauseReason,
    QueueStatus,
    utcnow,
)

log = get_logger(__name__)

CAMPAIGN_TRANSITIONS: dict[CampaignStatus, frozenset[CampaignStatus]] = {
    CampaignStatus.IDLE: frozenset({CampaignStatus.PROCESSING}),
    CampaignStatus.PROCESSING: frozenset({
        CampaignStatus.PAUSED, CampaignStatus.STOPPED, CampaignStatus.COMPLETED,
    }),
    CampaignStatus.PAUSED: frozenset({CampaignStatus.PROCESSING, CampaignStatus.STOPPED}),
    CampaignStatus.STOPPED: frozenset(),
    CampaignStatus.COMPLETED: frozenset(),
}

TERMINAL_CAMPAIGN_STATUSES = (CampaignStatus.STOPPED, CampaignStatus.COMPLETED)

APPLICATION_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.PENDING: frozenset({QueueStatus.QUEUED}),
    QueueStatus.QUEUED: frozenset({QueueStatus.PROCESSING}),
    QueueStatus.PROCESSING: frozenset({
        QueueStatus.COMPLETED, QueueStatus.FAILED, QueueStatus.PAUSED,
        QueueStatus.PENDING,  # generic failure with retry budget left
    }),
    QueueStatus.PAUSED: frozenset({QueueStatus.QUEUED}),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.FAILED: frozenset(),
}


def check_application_transition(app: Application, target: QueueStatus) -> None:
    if target not in APPLICATION_TRANSITIONS[app.queue_status]:
        raise InvalidTransition("application", app.queue_status.value, target.value)


def check_campaign_transition(current: CampaignStatus, target: CampaignStatus) -> None:
    if target not in CAMPAIGN_TRANSITIONS[current]:
        raise InvalidTransition("campaign", current.value, target.value)


class CampaignStateMachine:
    """Drives one Campaign record through its lifecycle."""

    def __init__(self, campaign: Campaign, persist: Callable[[Campaign], None]) -> None:
        self.campaign = campaign
        self._persist = persist

    @property
    def status(self) -> CampaignStatus:
        return self.campaign.status

    def _move(self, target: CampaignStatus, **fields) -> Campaign:
        current = self.campaign.status
        check_campaign_transition(current, target)
        self.campaign.status = target
        for name, value in fields.items():
            setattr(self.campaign, name, value)
        self._persist(self.campaign)
        audit.record(
            "CAMPAIGN",
            subject_id=self.campaign.id,
            verdict=target.value,
            previous=current.value,
            pause_reason=self.campaign.pause_reason.value if self.campaign.pause_reason else None,
            completed=self.campaign.completed,
            failed=self.campaign.failed,
            total=self.campaign.total,
        )
        return self.campaign

    def start(self, total: int) -> Campaign:
        return self._move(CampaignStatus.PROCESSING, total=total, started_at=utcnow())

    def pause(self, reason: PauseReason) -> Campaign:
        return self._move(CampaignStatus.PAUSED, pause_reason=reason, paused_at=utcnow())

    def resume(self) -> Campaign:
        return self._move(CampaignStatus.PROCESSING, pause_reason=None, paused_at=None)

    def stop(self) -> Campaign:
        return self._move(CampaignStatus.STOPPED, current_job_id=None, finished_at=utcnow())

    def complete(self) -> Campaign:
        return self._move(CampaignStatus.COMPLETED, current_job_id=None, finished_at=utcnow())

    def save(self) -> None:
        """Persist counters or current item without a status change."""
        self._persist(self.campaign)


class ActiveCampaignGuard:
    """Process-wide single-active-campaign slot.

    ``acquire`` never blocks on a held slot: a second campaign is refused
    immediately rather than queued.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: Campaign | None = None

    @property
    def holder(self) -> Campaign | None:
        with self._lock:
            return self._holder

    def acquire(self, campaign: Campaign, stored: Iterable[Campaign] = ()) -> None:
        """Claim the slot; ``stored`` are active campaigns already persisted."""
        with self._lock:
            held = self._holder
            if held is not None and held.status not in TERMINAL_CAMPAIGN_STATUSES:
                raise CampaignActiveError(held.id, held.status.value)
            for other in stored:
                if other.id != campaign.id and other.is_active:
                    raise CampaignActiveError(other.id, other.status.value)
            self._holder = campaign
        log.debug("Campaign %s holds the active slot", campaign.id)

    def release(self, campaign: Campaign) -> None:
        with self._lock:
            if self._holder is campaign:
                self._holder = None


_process_guard = ActiveCampaignGuard()


def process_guard() -> ActiveCampaignGuard:
    """The slot every orchestrator in this process shares unless given its own."""
    return _process_guard
