"""
Campaign queue orchestrator.

Drains a captured batch of applications on a single worker thread, one item
at a time: generate resume → submit → record outcome → clean up → wait.
Pause and stop requests are flags checked between items; nothing in flight is
ever interrupted.
"""
from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import Any

from applyflow import audit
from applyflow.campaign import (
    TERMINAL_CAMPAIGN_STATUSES,
    ActiveCampaignGuard,
    CampaignStateMachine,
    check_application_transition,
    process_guard,
)
from applyflow.config import TEMP_DIR
from applyflow.errors import HaltingFailure, InvalidTransition, NoActiveCampaign
from applyflow.log import get_logger
from applyflow.models import (
    ACTIVE_CAMPAIGN_STATUSES,
    Application,
    Campaign,
    CampaignStatus,
    PauseReason,
    Profile,
    QueueStatus,
    utcnow,
)
from applyflow.resume import ResumeGenerator
from applyflow.store import Store
from applyflow.submission import SubmissionRunner

log = get_logger(__name__)

MAX_RETRIES = 1
DEFAULT_DELAY_SECONDS = 5.0
INTERRUPTED_ERROR = "interrupted: process exited while the application was processing"


def _error_text(exc: BaseException) -> str:
    text = str(exc).split("\n")[0][:300]
    return text or exc.__class__.__name__


class QueueOrchestrator:
    def __init__(
        self,
        store: Store,
        resume_generator: ResumeGenerator,
        submission_runner: SubmissionRunner,
        *,
        delay: float = DEFAULT_DELAY_SECONDS,
        temp_dir: Path | None = None,
        guard: ActiveCampaignGuard | None = None,
    ) -> None:
        self.store = store
        self.resume_generator = resume_generator
        self.submission_runner = submission_runner
        self.delay = delay
        self.temp_dir = temp_dir or TEMP_DIR
        self._guard = guard or process_guard()

        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._pause = threading.Event()
        self._wake = threading.Event()
        self._pause_reason = PauseReason.MANUAL
        self._worker: threading.Thread | None = None
        self._machine: CampaignStateMachine | None = None
        self._profile: Profile | None = None
        self._batch: list[str] = []
        self._cursor = 0

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def start(self, user_id: str, *, limit: int = 1, dry_run: bool = True) -> Campaign:
        """Create a campaign and start draining it in the background.

        Raises ``CampaignActiveError`` immediately if a campaign is
        processing or paused, whether this process or the store holds it.
        Raises ``ValueError`` for a limit below 1.
        """
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        campaign = Campaign(user_id=user_id, dry_run=dry_run, limit=limit)
        with self._lock:
            self._guard.acquire(campaign, self.store.list_campaigns(ACTIVE_CAMPAIGN_STATUSES))
            try:
                profile = self.store.fetch_profile(user_id)
                batch = self.store.fetch_pending_applications(user_id, limit)
                machine = CampaignStateMachine(campaign, self.store.save_campaign)
                machine.save()
                machine.start(total=len(batch))
            except Exception:
                self._guard.release(campaign)
                raise

            self._machine = machine
            self._profile = profile
            self._batch = [a.id for a in batch]
            self._cursor = 0
            self._stop.clear()
            self._pause.clear()
            self._wake.clear()
            log.info(
                "Starting campaign %s: %d application(s), limit=%d, dry_run=%s",
                campaign.id, len(batch), limit, dry_run,
            )
            self._spawn()
            return replace(campaign)

    def pause(self, reason: PauseReason = PauseReason.MANUAL) -> Campaign:
        """Ask the loop to pause after the in-flight item."""
        with self._lock:
            machine = self._require_active()
            if machine.status is CampaignStatus.PAUSED:
                return replace(machine.campaign)
            self._pause_reason = reason
            self._pause.set()
            self._wake.set()
            log.info("Pause requested for campaign %s (%s)", machine.campaign.id, reason.value)
            return replace(machine.campaign)

    def resume(self) -> Campaign:
        with self._lock:
            machine = self._require_active()
            if machine.status is not CampaignStatus.PAUSED:
                raise InvalidTransition("campaign", machine.status.value, CampaignStatus.PROCESSING.value)
            worker = self._worker
        # The worker may still be unwinding after it paused; it needs the lock to finish.
        if worker is not None:
            worker.join()
        with self._lock:
            if machine.status is not CampaignStatus.PAUSED:
                raise InvalidTransition("campaign", machine.status.value, CampaignStatus.PROCESSING.value)
            self._pause.clear()
            self._wake.clear()
            self._pause_reason = PauseReason.MANUAL
            machine.resume()
            log.info("Resuming campaign %s at item %d/%d", machine.campaign.id, self._cursor + 1, len(self._batch))
            self._spawn()
            return replace(machine.campaign)

    def stop(self) -> Campaign:
        """Stop after the in-flight item; a paused campaign stops at once."""
        with self._lock:
            machine = self._require_active()
            if machine.status is CampaignStatus.PAUSED:
                machine.stop()
                self._guard.release(machine.campaign)
                log.info("Stopped paused campaign %s", machine.campaign.id)
            else:
                self._stop.set()
                self._wake.set()
                log.info("Stop signal received for campaign %s. Finishing current item...", machine.campaign.id)
            return replace(machine.campaign)

    def wait(self, timeout: float | None = None) -> bool:
        """Join the worker; True once it has exited."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    @property
    def campaign(self) -> Campaign | None:
        with self._lock:
            return replace(self._machine.campaign) if self._machine else None

    def status(self) -> dict[str, Any]:
        """Campaign status, current item and per-item last error."""
        with self._lock:
            machine = self._machine
            batch = list(self._batch)
            if machine is None:
                return {"status": CampaignStatus.IDLE.value, "campaign_id": None, "items": []}
            c = replace(machine.campaign)

        items = []
        current_label = None
        for app_id in batch:
            app = self.store.get_application(app_id)
            if app is None:
                continue
            if app.id == c.current_job_id:
                current_label = app.label
            items.append({
                "id": app.id,
                "title": app.posting.title,
                "company": app.posting.company,
                "status": app.queue_status.value,
                "retry_count": app.retry_count,
                "pause_reason": app.pause_reason.value if app.pause_reason else None,
                "last_error": app.last_error,
            })
        return {
            "campaign_id": c.id,
            "status": c.status.value,
            "pause_reason": c.pause_reason.value if c.pause_reason else None,
            "dry_run": c.dry_run,
            "total": c.total,
            "completed": c.completed,
            "failed": c.failed,
            "current_job_id": c.current_job_id,
            "current_job": current_label,
            "items": items,
        }

    def recover(self) -> int:
        """Release state left behind by a process that exited mid-campaign.

        Call once at startup, before the first ``start``.  Active campaigns
        in the store are stopped, except the one this process's guard holds.
        Applications stuck in ``processing`` are charged one generic
        failure; ones stuck in ``queued`` were never attempted and are simply
        dispatched again.  Paused applications stay paused and are picked up
        first by the next campaign.
        """
        with self._lock:
            live = self._guard.holder
            live_id = live.id if live is not None and live.is_active else None
            for stale in self.store.list_campaigns(ACTIVE_CAMPAIGN_STATUSES):
                if stale.id == live_id:
                    continue
                previous = stale.status
                CampaignStateMachine(stale, self.store.save_campaign).stop()
                log.warning("Recovered campaign %s left %s by a previous run → stopped", stale.id, previous.value)

            recovered = 0
            for app in self.store.list_applications(statuses=(QueueStatus.PROCESSING,)):
                if live_id is not None and app.queue_batch_id == live_id:
                    continue
                self._charge_failure(app, INTERRUPTED_ERROR)
                recovered += 1
            if recovered:
                log.warning("Recovered %d application(s) stuck in processing", recovered)

            queued = [
                a for a in self.store.list_applications(statuses=(QueueStatus.QUEUED,))
                if live_id is None or a.queue_batch_id != live_id
            ]
            if queued:
                log.warning("Released %d application(s) stuck in queued for the next campaign", len(queued))
            return recovered + len(queued)

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    def _spawn(self) -> None:
        campaign_id = self._machine.campaign.id if self._machine else "-"
        self._worker = threading.Thread(target=self._run, name=f"campaign-{campaign_id}", daemon=True)
        self._worker.start()

    def _require_active(self) -> CampaignStateMachine:
        if self._machine is None or not self._machine.campaign.is_active:
            raise NoActiveCampaign("No campaign is processing or paused")
        return self._machine

    def _run(self) -> None:
        halted = False
        try:
            while self._cursor < len(self._batch):
                if self._stop.is_set() or self._pause.is_set():
                    log.info("Queue processing interrupted before item %d/%d", self._cursor + 1, len(self._batch))
                    break
                halted = self._process(self._batch[self._cursor])
                if halted:
                    break
                self._cursor += 1
                if self._cursor < len(self._batch):
                    self._wake.wait(self.delay)
        except Exception:
            log.exception("Campaign loop crashed")
            self._stop.set()
        finally:
            self._finalize()

    def _finalize(self) -> None:
        with self._lock:
            machine = self._machine
            if machine is None:
                return
            if machine.status is CampaignStatus.PROCESSING:
                if self._stop.is_set():
                    machine.stop()
                elif self._pause.is_set():
                    machine.pause(self._pause_reason)
                else:
                    machine.complete()
            c = machine.campaign
            if c.status in TERMINAL_CAMPAIGN_STATUSES:
                self._guard.release(c)
            log.info(
                "Campaign %s %s — completed=%d, failed=%d, total=%d",
                c.id, c.status.value, c.completed, c.failed, c.total,
            )

    def _transition(self, app: Application, target: QueueStatus, **fields: Any) -> Application:
        check_application_transition(app, target)
        return self.store.update_application_status(app.id, target, expected=app.queue_status, **fields)

    def _process(self, app_id: str) -> bool:
        """Run one application; True when a halting failure paused the campaign."""
        app = self.store.get_application(app_id)
        if app is None or app.queue_status not in (QueueStatus.PENDING, QueueStatus.PAUSED, QueueStatus.QUEUED):
            log.warning("Skipping application %s: no longer dispatchable", app_id)
            return False

        machine = self._machine
        campaign = machine.campaign
        if app.queue_status is not QueueStatus.QUEUED:
            app = self._transition(
                app, QueueStatus.QUEUED,
                queued_at=utcnow(), queue_batch_id=campaign.id, pause_reason=None,
            )
        app = self._transition(app, QueueStatus.PROCESSING, queue_batch_id=campaign.id, started_at=utcnow())
        with self._lock:
            campaign.current_job_id = app.id
            machine.save()
        log.info("Processing %s [%s]", app.label, app.id)

        suffix = getattr(self.resume_generator, "suffix", ".txt")
        artifact = self.temp_dir / f"resume_{app.id}{suffix}"
        try:
            data = self.resume_generator.generate(self._profile, app.posting)
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            artifact.write_bytes(data)
            self.submission_runner.submit(app.posting, artifact, campaign.dry_run, self._profile)
        except HaltingFailure as exc:
            self._halt(app, exc)
            return True
        except Exception as exc:
            log.error("  ✗ %s: %s", app.label, _error_text(exc))
            self._charge_failure(app, _error_text(exc), count_in_campaign=True)
            return False
        else:
            self._transition(
                app, QueueStatus.COMPLETED,
                completed_at=utcnow(), retry_count=0, last_error=None,
            )
            with self._lock:
                campaign.completed += 1
                machine.save()
            log.info("  ✓ %s", app.label)
            return False
        finally:
            if artifact.exists():
                artifact.unlink()

    def _halt(self, app: Application, exc: HaltingFailure) -> None:
        reason = exc.reason
        with self._lock:
            machine = self._machine
            if self._stop.is_set():
                machine.stop()
            else:
                machine.pause(reason)
        self._transition(app, QueueStatus.PAUSED, pause_reason=reason, last_error=_error_text(exc))
        log.warning("Campaign %s PAUSED (%s) on %s — resume to continue", machine.campaign.id, reason.value, app.label)
        audit.record("ERROR", subject_id=app.id, verdict="PAUSED", reason=reason.value, error=_error_text(exc))

    def _charge_failure(self, app: Application, error: str, count_in_campaign: bool = False) -> None:
        """Spend the single retry, or fail the application for good."""
        if app.retry_count < MAX_RETRIES:
            self._transition(app, QueueStatus.PENDING, retry_count=app.retry_count + 1, last_error=error)
            log.info("Requeued %s for a later run (attempt %d)", app.label, app.retry_count + 1)
            return
        self._transition(app, QueueStatus.FAILED, last_error=error, completed_at=utcnow())
        audit.record("ERROR", subject_id=app.id, verdict="FAILED", error=error, stage="orchestrator")
        if count_in_campaign and self._machine is not None:
            with self._lock:
                self._machine.campaign.failed += 1
                self._machine.save()
