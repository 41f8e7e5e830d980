"""
Job application agent.

Runs: ingest boards → gate/score → campaign (resume → submit, one at a time) → report.
"""
from __future__ import annotations

from typing import Any, Callable

from applyflow.config import DEFAULT_USER_ID, Settings, ensure_dirs
from applyflow.ingest import ingest
from applyflow.log import get_logger
from applyflow.models import Campaign, CampaignStatus
from applyflow.orchestrator import QueueOrchestrator
from applyflow.report import build_campaign_report, write_campaign_report
from applyflow.resume import ResumeGenerator, TextResumeGenerator
from applyflow.sources import PostingSource, get_sources
from applyflow.store import Store
from applyflow.submission import BrowserSubmissionRunner, SubmissionRunner
from applyflow.tracker import CsvStore

log = get_logger(__name__)

# Called when the campaign halts; return True to resume, False to stop.
PauseHandler = Callable[[Campaign], bool]


def run(
    *,
    user_id: str = DEFAULT_USER_ID,
    limit: int = 1,
    dry_run: bool | None = None,
    do_ingest: bool = True,
    write_report: bool = True,
    settings: Settings | None = None,
    store: Store | None = None,
    sources: list[PostingSource] | None = None,
    resume_generator: ResumeGenerator | None = None,
    submission_runner: SubmissionRunner | None = None,
    on_pause: PauseHandler | None = None,
) -> dict[str, Any]:
    settings = settings or Settings.from_env()
    dry_run = settings.dry_run if dry_run is None else dry_run
    ensure_dirs()
    store = store or CsvStore()

    ingest_summary = None
    if do_ingest:
        ingest_summary = ingest(
            store,
            sources if sources is not None else get_sources(settings.boards),
            user_id,
            stale_days=settings.stale_days,
            purge_days=settings.purge_days,
        )

    orchestrator = QueueOrchestrator(
        store,
        resume_generator or TextResumeGenerator(),
        submission_runner or BrowserSubmissionRunner(headless=settings.headless),
        delay=settings.apply_delay_seconds,
    )
    orchestrator.recover()
    campaign = orchestrator.start(user_id, limit=limit, dry_run=dry_run)

    while True:
        orchestrator.wait()
        campaign = orchestrator.campaign
        if campaign.status is not CampaignStatus.PAUSED:
            break
        log.warning("Campaign %s paused (%s)", campaign.id, campaign.pause_reason.value)
        if on_pause is not None and on_pause(campaign):
            orchestrator.resume()
        else:
            campaign = orchestrator.stop()
            break

    status = orchestrator.status()
    report_path = None
    if write_report:
        apps = [a for a in (store.get_application(i["id"]) for i in status["items"]) if a is not None]
        report_path = write_campaign_report(campaign, build_campaign_report(campaign, apps))

    log.info(
        "Run complete — campaign=%s status=%s completed=%d failed=%d total=%d",
        campaign.id, campaign.status.value, campaign.completed, campaign.failed, campaign.total,
    )
    return {
        "campaign_id": campaign.id,
        "status": campaign.status.value,
        "dry_run": campaign.dry_run,
        "total": campaign.total,
        "completed": campaign.completed,
        "failed": campaign.failed,
        "items": status["items"],
        "ingest": ingest_summary,
        "report_path": str(report_path) if report_path else None,
    }
