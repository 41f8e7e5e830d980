"""Ashby posting API (public, no key required)."""
from __future__ import annotations

from datetime import datetime

import requests

from applyflow.log import get_logger
from applyflow.models import Posting
from applyflow.retry import retry
from applyflow.sources.base import PostingSource, is_client_error

log = get_logger(__name__)

API_URL = "https://api.ashbyhq.com/posting-api/job-board/{board}"


def _salary_bounds(comp: dict | None) -> tuple[int | None, int | None]:
    for tier in (comp or {}).get("summaryComponents", []):
        if tier.get("compensationType") == "Salary":
            lo, hi = tier.get("minValue"), tier.get("maxValue")
            return (int(lo) if lo else None, int(hi) if hi else None)
    return (None, None)


class AshbySource(PostingSource):
    provider = "ashby"

    @retry(max_attempts=3, base_delay=1.5, retryable=(requests.RequestException, OSError), giveup=is_client_error)
    def _get(self) -> dict:
        r = requests.get(API_URL.format(board=self.board), params={"includeCompensation": "true"}, timeout=15)
        r.raise_for_status()
        return r.json()

    def fetch(self, limit: int | None = None) -> list[Posting]:
        postings: list[Posting] = []
        for hit in self._get().get("jobs", [])[:limit]:
            salary_min, salary_max = _salary_bounds(hit.get("compensation"))
            published = hit.get("publishedAt")
            postings.append(
                Posting(
                    company=self.company,
                    title=hit.get("title", ""),
                    ats_provider=self.provider,
                    ats_job_id=str(hit.get("id", "")),
                    url=hit.get("jobUrl") or hit.get("applyUrl", ""),
                    location=hit.get("location", "") or "",
                    is_remote=bool(hit.get("isRemote")),
                    salary_min=salary_min,
                    salary_max=salary_max,
                    employment_type=hit.get("employmentType"),
                    description=hit.get("descriptionPlain", "") or "",
                    posted_at=datetime.fromisoformat(published.replace("Z", "+00:00")) if published else None,
                )
            )
        log.debug("Ashby board %r returned %d postings", self.board, len(postings))
        return postings
