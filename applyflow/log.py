"""Logging setup — stdlib only.

Everything goes to stdout at ``LOG_LEVEL`` and to a daily DEBUG file under
``logs/``.  Audit lines (``applyflow.audit``) are also copied to their own
daily file so filter verdicts and campaign moves can be reviewed on their own.
"""
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

LOG_DIR = Path(os.environ.get("APPLYFLOW_LOG_DIR", Path(__file__).resolve().parent.parent / "logs"))
AUDIT_LOGGER = "applyflow.audit"

_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; installs handlers on first call."""
    global _configured
    if not _configured:
        _configured = True
        _configure()
    return logging.getLogger(name)


def _formatter() -> logging.Formatter:
    return logging.Formatter(_FORMAT, datefmt=_DATE_FMT)


def _daily_file(prefix: str) -> logging.Handler | None:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(
            LOG_DIR / f"{prefix}_{datetime.now():%Y-%m-%d}.log", encoding="utf-8",
        )
    except OSError:
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_formatter())
    return handler


def _configure() -> None:
    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    # Embedded in an app (or under pytest) that already set up logging.
    if root.handlers:
        return

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(_formatter())
    root.addHandler(console)

    if os.environ.get("APPLYFLOW_NO_LOG_FILE"):
        return
    main = _daily_file("applyflow")
    if main is not None:
        root.addHandler(main)
    audit = _daily_file("audit")
    if audit is not None:
        logging.getLogger(AUDIT_LOGGER).addHandler(audit)
