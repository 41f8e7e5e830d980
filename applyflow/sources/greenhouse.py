"""Greenhouse job board API (public, no key required).

Docs: https://developers.greenhouse.io/job-board.html
"""
from __future__ import annotations

from datetime import datetime

import requests

from applyflow.log import get_logger
from applyflow.models import Posting
from applyflow.retry import retry
from applyflow.sources.base import PostingSource, is_client_error, strip_html

log = get_logger(__name__)

API_URL = "https://boards-api.greenhouse.io/v1/boards/{board}/jobs"


def _parse_ts(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


class GreenhouseSource(PostingSource):
    provider = "greenhouse"

    @retry(max_attempts=3, base_delay=1.5, retryable=(requests.RequestException, OSError), giveup=is_client_error)
    def _get(self) -> dict:
        r = requests.get(API_URL.format(board=self.board), params={"content": "true"}, timeout=15)
        r.raise_for_status()
        return r.json()

    def fetch(self, limit: int | None = None) -> list[Posting]:
        data = self._get()
        postings: list[Posting] = []
        for hit in data.get("jobs", [])[:limit]:
            location = (hit.get("location") or {}).get("name", "") or ""
            title = hit.get("title", "")
            postings.append(
                Posting(
                    company=self.company,
                    title=title,
                    ats_provider=self.provider,
                    ats_job_id=str(hit.get("id", "")),
                    url=hit.get("absolute_url", ""),
                    location=location,
                    is_remote="remote" in location.lower() or "remote" in title.lower(),
                    description=strip_html(hit.get("content")),
                    posted_at=_parse_ts(hit.get("updated_at")),
                )
            )
        log.debug("Greenhouse board %r returned %d postings", self.board, len(postings))
        return postings
