"""
Ingestion: fetch boards → upsert postings → gate and score → create pending applications.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime

from applyflow.log import get_logger
from applyflow.models import Application, Posting
from applyflow.rules import RuleSet
from applyflow.scorer import rank_postings
from applyflow.sources import PostingSource
from applyflow.store import Store

log = get_logger(__name__)


@dataclass
class IngestResult:
    fetched: int = 0
    new_postings: int = 0
    accepted: int = 0
    queued: int = 0
    stale: int = 0
    purged: int = 0
    errors: dict[str, str] = field(default_factory=dict)


def _fetch_source(source: PostingSource, limit: int | None) -> list[Posting]:
    """Wrapper for parallel board fetching."""
    name = f"{source.provider}:{source.board}"
    try:
        results = source.fetch(limit=limit)
        log.info("[%s] returned %d postings", name, len(results))
        return results
    except Exception as exc:
        log.error("[%s] FAILED: %s", name, exc)
        raise


def ingest(
    store: Store,
    sources: list[PostingSource],
    user_id: str,
    *,
    per_board_limit: int | None = None,
    min_score: int = 0,
    stale_days: int = 7,
    purge_days: int = 90,
    now: datetime | None = None,
) -> IngestResult:
    """Refresh the posting table and enqueue new matches for ``user_id``.

    A board that fails is logged and skipped; the rest still ingest.
    """
    result = IngestResult()
    profile = store.fetch_profile(user_id)

    fetched: list[Posting] = []
    if sources:
        log.info("Fetching %d board(s) in parallel...", len(sources))
        with ThreadPoolExecutor(max_workers=len(sources)) as pool:
            futures = {pool.submit(_fetch_source, src, per_board_limit): src for src in sources}
            for future in as_completed(futures):
                src = futures[future]
                try:
                    fetched.extend(future.result())
                except Exception as exc:
                    result.errors[f"{src.provider}:{src.board}"] = str(exc)[:200]
    result.fetched = len(fetched)

    stored: list[Posting] = []
    for posting in fetched:
        saved, created = store.upsert_posting(posting, now=now)
        if created:
            result.new_postings += 1
        stored.append(saved)

    fresh = [p for p in stored if not store.has_application(user_id, *p.key)]
    ranked = rank_postings(fresh, profile, rule_set=RuleSet.from_preferences(profile.preferences), min_score=min_score)
    result.accepted = len(ranked)

    for s in ranked:
        app = Application(user_id=user_id, posting=s.posting.snapshot(), match_score=s.score)
        _, created = store.add_application(app)
        if created:
            result.queued += 1
            log.debug("Queued %s (score %d)", app.label, s.score)

    result.stale = store.mark_stale_postings(stale_days, now=now)
    result.purged = store.purge_postings(purge_days, now=now)

    log.info(
        "Ingest complete — fetched=%d, new=%d, accepted=%d, queued=%d, stale=%d, purged=%d",
        result.fetched, result.new_postings, result.accepted, result.queued, result.stale, result.purged,
    )
    return result
