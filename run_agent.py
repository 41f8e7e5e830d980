#!/usr/bin/env python3
"""Entry point to run the job application agent."""
from __future__ import annotations

import argparse
import sys

from applyflow.config import DEFAULT_USER_ID, PROFILE_PATH
from applyflow.log import get_logger
from applyflow.models import Campaign

log = get_logger(__name__)


def _check_setup() -> bool:
    """Return True if first-run setup is needed."""
    if not PROFILE_PATH.exists():
        print()
        print("  No profile found. Copy the example and fill it in first:")
        print("    cp config/profile.yaml.example config/profile.yaml")
        print()
        return True
    return False


def _ask_resume(campaign: Campaign) -> bool:
    if not sys.stdin.isatty():
        return False
    print()
    print(f"  Campaign paused: {campaign.pause_reason.value if campaign.pause_reason else 'manual'}")
    answer = input("  Solve it in the browser, then press Enter to resume (or type q to stop): ")
    return answer.strip().lower() not in ("q", "quit", "stop")


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest job boards and apply to the best matches.")
    parser.add_argument("--live", action="store_true", help="submit forms (default is dry run)")
    parser.add_argument("--limit", type=_positive_int, default=1, help="applications to process this run")
    parser.add_argument("--no-ingest", action="store_true", help="skip fetching boards")
    parser.add_argument("--user", default=DEFAULT_USER_ID)
    return parser.parse_args(argv)


if __name__ == "__main__":
    if _check_setup():
        sys.exit(1)

    args = _parse_args()

    from applyflow.agent import run

    result = run(
        user_id=args.user,
        limit=args.limit,
        dry_run=False if args.live else None,
        do_ingest=not args.no_ingest,
        on_pause=_ask_resume,
    )
    log.info("Run complete.")
    log.info("  Campaign: %s (%s)", result["campaign_id"], result["status"])
    log.info("  Completed: %d / Failed: %d / Batch: %d", result["completed"], result["failed"], result["total"])
    if result["report_path"]:
        log.info("  Report: %s", result["report_path"])
