"""Structured audit trail on a dedicated logger."""
from __future__ import annotations

import json
from typing import Any

from applyflow.log import get_logger

log = get_logger("applyflow.audit")


def record(action: str, *, subject_id: str | None = None, verdict: str | None = None, **details: Any) -> None:
    """Emit one audit line: ``[AUDIT] FILTER id=... verdict=... {json}``."""
    payload = json.dumps(details, default=str, sort_keys=True)
    log.info("[AUDIT] %s id=%s verdict=%s %s", action, subject_id or "-", verdict or "N/A", payload)
