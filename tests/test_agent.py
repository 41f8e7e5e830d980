from __future__ import annotations

import pytest

from applyflow import agent
from applyflow.config import Settings
from applyflow.errors import CaptchaDetected
from applyflow.models import Campaign, CampaignStatus, QueueStatus
from applyflow.sources import MockSource

from conftest import USER


@pytest.fixture(autouse=True)
def _sandbox_dirs(monkeypatch, tmp_path):
    monkeypatch.setattr(agent, "ensure_dirs", lambda: None)
    monkeypatch.setattr("applyflow.report.REPORTS_DIR", tmp_path / "reports")
    monkeypatch.setattr("applyflow.orchestrator.TEMP_DIR", tmp_path / "temp")


def _run(store, generator, runner, **kw):
    return agent.run(
        user_id=USER,
        settings=Settings(apply_delay_seconds=0),
        store=store,
        sources=[MockSource()],
        resume_generator=generator,
        submission_runner=runner,
        **kw,
    )


def test_ingests_applies_and_reports(store, generator, runner, tmp_path):
    result = _run(store, generator, runner, limit=2)

    assert result["status"] == "completed"
    assert result["dry_run"] is True
    assert (result["total"], result["completed"]) == (2, 2)
    assert result["ingest"].queued == 3
    assert len(runner.calls) == 2
    assert all(runner.dry_runs)
    report = tmp_path / "reports" / f"campaign_{result['campaign_id']}.md"
    assert result["report_path"] == str(report)
    assert "| 1 |" in report.read_text(encoding="utf-8")


def test_no_ingest_uses_existing_queue(store, generator, runner, add_apps):
    add_apps("1")

    result = _run(store, generator, runner, do_ingest=False, write_report=False, dry_run=False)

    assert result["ingest"] is None
    assert result["report_path"] is None
    assert runner.calls == ["1"]
    assert runner.dry_runs == [False]


def test_pause_handler_can_resume(store, generator, runner, add_apps):
    add_apps("1", "2")
    runner.errors["1"] = [CaptchaDetected()]
    seen = []

    def on_pause(campaign):
        seen.append(campaign.pause_reason.value)
        return True

    result = _run(store, generator, runner, do_ingest=False, limit=2, on_pause=on_pause)

    assert seen == ["captcha"]
    assert result["status"] == "completed"
    assert runner.calls == ["1", "1", "2"]


def test_pause_without_handler_stops(store, generator, runner, add_apps):
    apps = add_apps("1", "2")
    runner.errors["1"] = [CaptchaDetected()]

    result = _run(store, generator, runner, do_ingest=False, limit=2)

    assert result["status"] == "stopped"
    assert store.get_application(apps[0].id).queue_status is QueueStatus.PAUSED
    assert store.get_application(apps[1].id).queue_status is QueueStatus.PENDING


def test_run_recovers_campaign_left_by_previous_process(store, generator, runner, add_apps):
    stale = store.save_campaign(Campaign(user_id=USER, status=CampaignStatus.PROCESSING))
    (app,) = add_apps("1")
    store.update_application_status(app.id, QueueStatus.QUEUED, queue_batch_id=stale.id)

    result = _run(store, generator, runner, do_ingest=False, write_report=False)

    assert result["status"] == "completed"
    assert store.get_campaign(stale.id).status is CampaignStatus.STOPPED
    assert store.get_application(app.id).queue_status is QueueStatus.COMPLETED
    assert runner.calls == ["1"]


def test_cli_rejects_limit_below_one():
    from run_agent import _parse_args

    assert _parse_args(["--limit", "3"]).limit == 3
    with pytest.raises(SystemExit):
        _parse_args(["--limit", "0"])
    with pytest.raises(SystemExit):
        _parse_args(["--limit", "-1"])
