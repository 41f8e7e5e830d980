"""Load profile, board list and env configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from applyflow.log import get_logger

log = get_logger(__name__)

load_dotenv()

ROOT_DIR: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = ROOT_DIR / "config"
PROFILE_PATH: Path = CONFIG_DIR / "profile.yaml"
BOARDS_PATH: Path = CONFIG_DIR / "boards.yaml"
REPORTS_DIR: Path = ROOT_DIR / "reports"
DATA_DIR: Path = ROOT_DIR / "data"
TEMP_DIR: Path = ROOT_DIR / "temp"
SCREENSHOT_DIR: Path = ROOT_DIR / "screenshots"

DEFAULT_USER_ID = "local"


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def get_bool_env(key: str, default: bool) -> bool:
    raw = get_env(key)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def get_float_env(key: str, default: float) -> float:
    raw = get_env(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Ignoring non-numeric %s=%r, using %s", key, raw, default)
        return default


def load_profile(path: Path | None = None) -> dict[str, Any]:
    path = path or PROFILE_PATH
    if not path.exists():
        log.warning("Profile not found at %s — using defaults", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    # Backward compat: flat remote_only / locations at top level
    prefs = data.setdefault("preferences", {})
    for key in ("remote_only", "locations", "max_seniority", "excluded_keywords"):
        if key in data and key not in prefs:
            prefs[key] = data.pop(key)

    return data


def load_boards(path: Path | None = None) -> list[dict[str, str]]:
    """Board list: [{provider: greenhouse, token: acme, company: Acme}, ...]."""
    path = path or BOARDS_PATH
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    boards = data.get("boards", []) if isinstance(data, dict) else data
    return [b for b in boards if b.get("enabled", True)]


def ensure_dirs() -> None:
    for d in (REPORTS_DIR, DATA_DIR, TEMP_DIR, SCREENSHOT_DIR):
        d.mkdir(parents=True, exist_ok=True)


@dataclass
class Settings:
    apply_delay_seconds: float = 5.0
    dry_run: bool = True
    headless: bool = False
    stale_days: int = 7
    purge_days: int = 90
    boards: list[dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            apply_delay_seconds=get_float_env("APPLY_DELAY_SECONDS", 5.0),
            dry_run=get_bool_env("DRY_RUN", True),
            headless=get_bool_env("RUN_HEADLESS", False),
            stale_days=int(get_float_env("STALE_DAYS", 7)),
            purge_days=int(get_float_env("PURGE_DAYS", 90)),
            boards=load_boards(),
        )
