"""Lever postings API (public, no key required)."""
from __future__ import annotations

from datetime import datetime, timezone

import requests

from applyflow.log import get_logger
from applyflow.models import Posting
from applyflow.retry import retry
from applyflow.sources.base import PostingSource, is_client_error

log = get_logger(__name__)

API_URL = "https://api.lever.co/v0/postings/{board}"


class LeverSource(PostingSource):
    provider = "lever"

    @retry(max_attempts=3, base_delay=1.5, retryable=(requests.RequestException, OSError), giveup=is_client_error)
    def _get(self) -> list[dict]:
        r = requests.get(API_URL.format(board=self.board), params={"mode": "json"}, timeout=15)
        r.raise_for_status()
        return r.json()

    def fetch(self, limit: int | None = None) -> list[Posting]:
        postings: list[Posting] = []
        for hit in self._get()[:limit]:
            cats = hit.get("categories") or {}
            location = cats.get("location", "") or ""
            created = hit.get("createdAt")
            postings.append(
                Posting(
                    company=self.company,
                    title=hit.get("text", ""),
                    ats_provider=self.provider,
                    ats_job_id=str(hit.get("id", "")),
                    url=hit.get("applyUrl") or hit.get("hostedUrl", ""),
                    location=location,
                    is_remote=hit.get("workplaceType") == "remote" or "remote" in location.lower(),
                    employment_type=cats.get("commitment"),
                    description=hit.get("descriptionPlain", "") or "",
                    posted_at=datetime.fromtimestamp(created / 1000, tz=timezone.utc) if created else None,
                )
            )
        log.debug("Lever board %r returned %d postings", self.board, len(postings))
        return postings
