from __future__ import annotations

from datetime import timedelta

import pytest

from applyflow.errors import CampaignActiveError, InvalidTransition
from applyflow.models import Application, Campaign, CampaignStatus, PauseReason, QueueStatus
from applyflow.store import InMemoryStore
from applyflow.tracker import CsvStore

from conftest import T0, USER, make_posting


@pytest.fixture(params=["memory", "csv"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStore()
    return CsvStore(data_dir=tmp_path / "data", profile_path=tmp_path / "profile.yaml")


def _app(job_id: str, minutes: int = 0, user_id: str = USER) -> Application:
    return Application(
        user_id=user_id,
        posting=make_posting(job_id).snapshot(),
        created_at=T0 + timedelta(minutes=minutes),
    )


def test_upsert_is_idempotent(any_store):
    stored, created = any_store.upsert_posting(make_posting("1"), now=T0)
    assert created
    assert stored.first_seen_at == stored.last_seen_at == T0

    later = T0 + timedelta(days=2)
    again, created = any_store.upsert_posting(make_posting("1", title="Renamed"), now=later)

    assert not created
    assert again.title == "Backend Engineer"
    assert again.first_seen_at == T0
    assert again.last_seen_at == later
    assert len(any_store.list_postings()) == 1


def test_same_job_id_on_other_provider_is_distinct(any_store):
    any_store.upsert_posting(make_posting("1"), now=T0)
    any_store.upsert_posting(make_posting("1", ats_provider="lever"), now=T0)

    assert len(any_store.list_postings()) == 2
    assert any_store.get_posting("lever", "1") is not None


def test_stale_then_reseen_then_purged(any_store):
    any_store.upsert_posting(make_posting("old"), now=T0)
    any_store.upsert_posting(make_posting("new"), now=T0 + timedelta(days=10))

    assert any_store.mark_stale_postings(days=7, now=T0 + timedelta(days=10)) == 1
    assert [p.ats_job_id for p in any_store.list_postings()] == ["new"]
    assert len(any_store.list_postings(active_only=False)) == 2

    # seen again: active
    any_store.upsert_posting(make_posting("old"), now=T0 + timedelta(days=11))
    assert any_store.get_posting("greenhouse", "old").is_active

    any_store.mark_stale_postings(days=7, now=T0 + timedelta(days=30))
    assert any_store.purge_postings(days=90, now=T0 + timedelta(days=60)) == 0
    assert any_store.purge_postings(days=90, now=T0 + timedelta(days=120)) == 2
    assert any_store.list_postings(active_only=False) == []


def test_application_unique_per_user_and_posting(any_store):
    first, created = any_store.add_application(_app("1"))
    assert created

    dup, created = any_store.add_application(_app("1", minutes=5))
    assert not created
    assert dup.id == first.id

    _, created = any_store.add_application(_app("1", user_id="someone-else"))
    assert created
    assert any_store.has_application(USER, "greenhouse", "1")
    assert not any_store.has_application(USER, "greenhouse", "2")


def test_fetch_pending_is_fifo_and_limited(any_store):
    for job_id, minutes in (("c", 3), ("a", 1), ("b", 2)):
        any_store.add_application(_app(job_id, minutes))

    pending = any_store.fetch_pending_applications(USER, limit=2)

    assert [a.posting.ats_job_id for a in pending] == ["a", "b"]


def test_fetch_pending_includes_paused_of_inactive_campaign_only(any_store):
    live = any_store.save_campaign(Campaign(user_id=USER, status=CampaignStatus.PAUSED))
    gone = any_store.save_campaign(Campaign(user_id=USER, status=CampaignStatus.STOPPED))
    held, _ = any_store.add_application(_app("held", 1))
    orphan, _ = any_store.add_application(_app("orphan", 2))
    any_store.update_application_status(held.id, QueueStatus.PAUSED, queue_batch_id=live.id)
    any_store.update_application_status(orphan.id, QueueStatus.PAUSED, queue_batch_id=gone.id)

    ids = [a.id for a in any_store.fetch_pending_applications(USER)]

    assert ids == [orphan.id]


def test_fetch_pending_reclaims_queued_of_inactive_campaign(any_store):
    live = any_store.save_campaign(Campaign(user_id=USER, status=CampaignStatus.PROCESSING))
    gone = any_store.save_campaign(Campaign(user_id=USER, status=CampaignStatus.STOPPED))
    held, _ = any_store.add_application(_app("held", 1))
    orphan, _ = any_store.add_application(_app("orphan", 2))
    any_store.update_application_status(held.id, QueueStatus.QUEUED, queue_batch_id=live.id)
    any_store.update_application_status(orphan.id, QueueStatus.QUEUED, queue_batch_id=gone.id)

    ids = [a.id for a in any_store.fetch_pending_applications(USER)]

    assert ids == [orphan.id]


def test_status_update_checks_expected_current_status(any_store):
    app, _ = any_store.add_application(_app("1"))
    any_store.update_application_status(app.id, QueueStatus.QUEUED, expected=QueueStatus.PENDING)

    with pytest.raises(InvalidTransition) as err:
        any_store.update_application_status(
            app.id, QueueStatus.COMPLETED, expected=QueueStatus.PROCESSING, last_error="late",
        )

    assert (err.value.current, err.value.target) == ("queued", "completed")
    got = any_store.get_application(app.id)
    assert (got.queue_status, got.last_error) == (QueueStatus.QUEUED, None)


def test_update_application_status_round_trips_fields(any_store):
    app, _ = any_store.add_application(_app("1"))

    any_store.update_application_status(
        app.id, QueueStatus.PAUSED,
        pause_reason=PauseReason.USER_TAKEOVER, last_error="closed", retry_count=1,
        started_at=T0,
    )
    got = any_store.get_application(app.id)

    assert got.queue_status is QueueStatus.PAUSED
    assert got.pause_reason is PauseReason.USER_TAKEOVER
    assert (got.last_error, got.retry_count, got.started_at) == ("closed", 1, T0)
    assert got.posting == app.posting

    with pytest.raises(KeyError):
        any_store.update_application_status("missing", QueueStatus.QUEUED)


def test_returned_records_are_copies(any_store):
    app, _ = any_store.add_application(_app("1"))
    app.queue_status = QueueStatus.FAILED

    assert any_store.get_application(app.id).queue_status is QueueStatus.PENDING


def test_campaign_save_and_list(any_store):
    c = Campaign(user_id=USER, dry_run=False, limit=3)
    any_store.save_campaign(c)
    c.status = CampaignStatus.PROCESSING
    c.completed = 2
    any_store.save_campaign(c)

    got = any_store.get_campaign(c.id)
    assert (got.status, got.completed, got.dry_run, got.limit) == (CampaignStatus.PROCESSING, 2, False, 3)
    assert [x.id for x in any_store.list_campaigns((CampaignStatus.PROCESSING,))] == [c.id]
    assert any_store.list_campaigns((CampaignStatus.STOPPED,)) == []


def test_only_one_campaign_can_be_active(any_store):
    first = any_store.save_campaign(Campaign(user_id=USER, status=CampaignStatus.PAUSED))
    second = Campaign(user_id=USER)
    any_store.save_campaign(second)

    second.status = CampaignStatus.PROCESSING
    with pytest.raises(CampaignActiveError) as err:
        any_store.save_campaign(second)

    assert err.value.campaign_id == first.id
    assert any_store.get_campaign(second.id).status is CampaignStatus.IDLE

    first.status = CampaignStatus.STOPPED
    any_store.save_campaign(first)
    any_store.save_campaign(second)
    assert [c.id for c in any_store.list_campaigns((CampaignStatus.PROCESSING,))] == [second.id]


def test_finished_campaign_status_is_final(any_store):
    c = any_store.save_campaign(Campaign(user_id=USER, status=CampaignStatus.STOPPED))
    c.status = CampaignStatus.COMPLETED

    with pytest.raises(InvalidTransition):
        any_store.save_campaign(c)

    assert any_store.get_campaign(c.id).status is CampaignStatus.STOPPED


def test_application_stats(any_store):
    a, _ = any_store.add_application(_app("1"))
    any_store.add_application(_app("2"))
    any_store.update_application_status(a.id, QueueStatus.FAILED)

    stats = any_store.application_stats(USER)

    assert stats["pending"] == 1
    assert stats["failed"] == 1
    assert stats["total"] == 2


def test_csv_store_persists_across_instances(tmp_path):
    data = tmp_path / "data"
    first = CsvStore(data_dir=data)
    first.upsert_posting(make_posting("1", description="", salary_min=120000), now=T0)
    app, _ = first.add_application(_app("1"))

    second = CsvStore(data_dir=data)

    posting = second.get_posting("greenhouse", "1")
    assert posting.description == ""
    assert posting.salary_min == 120000
    assert posting.salary_max is None
    assert second.get_application(app.id) == app


def test_csv_store_reads_profile_yaml(tmp_path):
    path = tmp_path / "profile.yaml"
    path.write_text(
        "profile:\n  name: Ada Lovelace\n  email: ada@example.com\n"
        "skills: [python, sql]\n"
        "remote_only: true\n"
        "preferences:\n  maxSeniority: [principal]\n",
        encoding="utf-8",
    )

    profile = CsvStore(data_dir=tmp_path / "data", profile_path=path).fetch_profile(USER)

    assert profile.user_id == USER
    assert (profile.first_name, profile.last_name) == ("Ada", "Lovelace")
    assert profile.skills == ["python", "sql"]
    assert profile.preferences.remote_only is True
    assert profile.preferences.max_seniority == ["principal"]


def test_in_memory_store_unknown_profile():
    with pytest.raises(KeyError):
        InMemoryStore().fetch_profile("nobody")
