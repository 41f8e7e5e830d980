"""Mock posting source for local dry runs when no boards are configured."""
from __future__ import annotations

from applyflow.log import get_logger
from applyflow.models import Posting
from applyflow.sources.base import PostingSource

log = get_logger(__name__)


class MockSource(PostingSource):
    provider = "greenhouse"

    def __init__(self, board: str = "mock", company: str | None = None) -> None:
        super().__init__(board, company or "Example Corp")

    def fetch(self, limit: int | None = None) -> list[Posting]:
        log.info("MockSource generating sample postings")
        postings = [
            Posting(
                company=self.company,
                title="Senior Backend Engineer",
                ats_provider=self.provider,
                ats_job_id="mock-1",
                url="https://boards.greenhouse.io/example/jobs/mock-1",
                location="Remote - US",
                is_remote=True,
                description="Python, PostgreSQL, Kubernetes. Own services end to end.",
            ),
            Posting(
                company=self.company,
                title="Frontend Engineer",
                ats_provider=self.provider,
                ats_job_id="mock-2",
                url="https://boards.greenhouse.io/example/jobs/mock-2",
                location="San Francisco, CA",
                description="TypeScript and React. Design systems experience a plus.",
            ),
            Posting(
                company=self.company,
                title="Engineering Manager",
                ats_provider=self.provider,
                ats_job_id="mock-3",
                url="https://boards.greenhouse.io/example/jobs/mock-3",
                location="New York, NY",
                description="Lead a team of eight engineers. PHP legacy migration.",
            ),
        ]
        return postings[:limit]
