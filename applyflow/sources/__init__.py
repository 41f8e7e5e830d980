from .base import PostingSource
from .ashby import AshbySource
from .greenhouse import GreenhouseSource
from .lever import LeverSource
from .mock import MockSource

from applyflow.log import get_logger

log = get_logger(__name__)

__all__ = [
    "PostingSource", "GreenhouseSource", "LeverSource", "AshbySource", "MockSource",
    "get_sources",
]

_PROVIDERS: dict[str, type[PostingSource]] = {
    "greenhouse": GreenhouseSource,
    "lever": LeverSource,
    "ashby": AshbySource,
}


def get_sources(boards: list[dict[str, str]]) -> list[PostingSource]:
    """Build one source per configured board; falls back to MockSource."""
    sources: list[PostingSource] = []
    for board in boards:
        provider = (board.get("provider") or "").lower()
        cls = _PROVIDERS.get(provider)
        if cls is None or not board.get("token"):
            log.warning("Skipping board with unknown provider or missing token: %s", board)
            continue
        sources.append(cls(board["token"], board.get("company")))
        log.info("Registered source: %s board %r", provider, board["token"])

    if not sources:
        sources.append(MockSource())
        log.info("No boards configured — using MockSource")

    return sources
