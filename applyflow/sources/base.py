from __future__ import annotations

import html
from abc import ABC, abstractmethod

import requests
from bs4 import BeautifulSoup

from applyflow.models import Posting


def strip_html(raw: str | None) -> str:
    """Board APIs return entity-escaped HTML; keep the plain text."""
    if not raw:
        return ""
    return BeautifulSoup(html.unescape(raw), "html.parser").get_text(" ", strip=True)


def is_client_error(exc: BaseException) -> bool:
    response = getattr(exc, "response", None)
    return (
        isinstance(exc, requests.HTTPError)
        and response is not None
        and 400 <= response.status_code < 500
    )


class PostingSource(ABC):
    provider: str = ""

    def __init__(self, board: str, company: str | None = None) -> None:
        self.board = board
        self.company = company or board.replace("-", " ").title()

    @abstractmethod
    def fetch(self, limit: int | None = None) -> list[Posting]:
        pass
