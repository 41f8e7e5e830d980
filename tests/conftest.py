from __future__ import annotations

import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

os.environ.setdefault("APPLYFLOW_NO_LOG_FILE", "1")

import pytest

from applyflow import campaign
from applyflow.campaign import ActiveCampaignGuard
from applyflow.models import Application, Posting, Preferences, Profile
from applyflow.resume import ResumeGenerator
from applyflow.store import InMemoryStore
from applyflow.submission import SubmissionRunner

USER = "u1"
T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def make_posting(job_id: str = "1", **overrides) -> Posting:
    data = dict(
        company="Acme",
        title="Backend Engineer",
        ats_provider="greenhouse",
        ats_job_id=job_id,
        url=f"https://boards.greenhouse.io/acme/jobs/{job_id}",
        location="San Francisco, CA",
        is_remote=False,
        description="Build Python services.",
    )
    data.update(overrides)
    return Posting(**data)


def make_profile(user_id: str = USER, skills=None, **prefs) -> Profile:
    return Profile(
        user_id=user_id,
        name="Jane Doe",
        email="jane@example.com",
        skills=list(skills or []),
        preferences=Preferences(**prefs),
    )


class FakeResumeGenerator(ResumeGenerator):
    suffix = ".txt"

    def __init__(self) -> None:
        self.fail_for: set[str] = set()

    def generate(self, profile, posting) -> bytes:
        if posting.ats_job_id in self.fail_for:
            raise RuntimeError("template error")
        return f"resume for {posting.title}".encode("utf-8")


class FakeRunner(SubmissionRunner):
    """Records calls; raises queued exceptions per job id; can block on ``gate``."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.artifacts: list[Path] = []
        self.artifact_existed: list[bool] = []
        self.dry_runs: list[bool] = []
        self.errors: dict[str, list[BaseException]] = {}
        self.entered = threading.Event()
        self.gate: threading.Event | None = None

    def submit(self, posting, artifact_path, dry_run, profile=None) -> None:
        self.calls.append(posting.ats_job_id)
        self.artifacts.append(artifact_path)
        self.artifact_existed.append(artifact_path.exists())
        self.dry_runs.append(dry_run)
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        queued = self.errors.get(posting.ats_job_id)
        if queued:
            raise queued.pop(0)


@pytest.fixture(autouse=True)
def fresh_process_guard(monkeypatch) -> ActiveCampaignGuard:
    """Each test gets its own process-wide campaign slot."""
    guard = ActiveCampaignGuard()
    monkeypatch.setattr(campaign, "_process_guard", guard)
    return guard


@pytest.fixture
def profile() -> Profile:
    return make_profile()


@pytest.fixture
def store(profile) -> InMemoryStore:
    return InMemoryStore({profile.user_id: profile})


@pytest.fixture
def generator() -> FakeResumeGenerator:
    return FakeResumeGenerator()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def add_apps(store):
    """Create pending applications for job ids, oldest first."""

    def _add(*job_ids: str, user_id: str = USER) -> list[Application]:
        apps = []
        offset = len(store.list_applications())
        for i, job_id in enumerate(job_ids):
            app = Application(
                user_id=user_id,
                posting=make_posting(job_id, title=f"Engineer {job_id}").snapshot(),
                created_at=T0 + timedelta(minutes=offset + i),
            )
            stored, _ = store.add_application(app)
            apps.append(stored)
        return apps

    return _add
