"""Markdown report for a finished (or halted) campaign."""
from __future__ import annotations

from datetime import timezone
from pathlib import Path
from urllib.parse import urlparse

from applyflow.config import REPORTS_DIR
from applyflow.log import get_logger
from applyflow.models import Application, Campaign, QueueStatus

log = get_logger(__name__)

_BADGES: dict[QueueStatus, str] = {
    QueueStatus.COMPLETED: "✅",
    QueueStatus.FAILED: "❌",
    QueueStatus.PAUSED: "⏸️",
    QueueStatus.PENDING: "\U0001f552",
    QueueStatus.QUEUED: "\U0001f552",
    QueueStatus.PROCESSING: "⏳",
}

_FAIL_HINTS: dict[str, str] = {
    "executable doesn't exist": "Browser not installed — run `playwright install chromium`",
    "timeout": "Page timed out",
    "upload field not found": "No resume upload field on the form",
    "interrupted": "Process exited mid-submission",
    "captcha": "CAPTCHA wall — solve it in the browser, then resume",
}


def _short_reason(reason: str) -> str:
    low = reason.lower()
    for key, msg in _FAIL_HINTS.items():
        if key in low:
            return msg
    return reason[:80] + ("…" if len(reason) > 80 else "")


def _short_url_label(url: str) -> str:
    host = (urlparse(url).hostname or "").replace("www.", "")
    parts = host.split(".")
    return parts[0].capitalize() if parts and parts[0] else "Link"


def build_campaign_report(campaign: Campaign, applications: list[Application]) -> str:
    started = campaign.started_at or campaign.created_at
    date = started.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    mode = "dry run" if campaign.dry_run else "live"
    lines: list[str] = [f"# Campaign {campaign.id} — {date}", ""]

    lines.append(
        f"**{campaign.status.value}** ({mode}) | **{campaign.completed}** completed | "
        f"**{campaign.failed}** failed | **{campaign.total}** in batch"
    )
    if campaign.pause_reason:
        lines.append("")
        lines.append(f"_Paused: {campaign.pause_reason.value}. Resume to continue from the halted item._")
    lines.append("")

    if applications:
        lines.append("## Applications")
        lines.append("")
        lines.append("| # | Role | Company | Score | Status | Retries | Link |")
        lines.append("|--:|------|---------|------:|--------|--------:|------|")
        for i, a in enumerate(applications, 1):
            title = a.posting.title[:40] + ("…" if len(a.posting.title) > 40 else "")
            company = a.posting.company[:22] + ("…" if len(a.posting.company) > 22 else "")
            score = "—" if a.match_score is None else str(a.match_score)
            badge = _BADGES.get(a.queue_status, "")
            url = a.posting.url
            link = f"[{_short_url_label(url)}]({url})" if url else "—"
            lines.append(
                f"| {i} | {title} | {company} | {score} | {badge} {a.queue_status.value} | {a.retry_count} | {link} |"
            )
        lines.append("")

    errored = [a for a in applications if a.last_error]
    if errored:
        lines.append("## Errors")
        lines.append("")
        for a in errored:
            lines.append(f"- **{a.label}** — _{a.queue_status.value}_ — {_short_reason(a.last_error)}")
        lines.append("")

    log.info("Built report for campaign %s: %d application(s)", campaign.id, len(applications))
    return "\n".join(lines)


def write_campaign_report(campaign: Campaign, content: str, reports_dir: Path | None = None) -> Path:
    reports_dir = reports_dir or REPORTS_DIR
    reports_dir.mkdir(parents=True, exist_ok=True)
    path = reports_dir / f"campaign_{campaign.id}.md"
    path.write_text(content, encoding="utf-8")
    log.info("Report written → %s", path)
    return path
