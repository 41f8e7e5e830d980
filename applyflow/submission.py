"""
Browser automation to submit applications.
Uses Playwright to open the posting, stop on CAPTCHA walls, fill the ATS form
(Greenhouse, Lever or Ashby), save a verification screenshot and, outside dry
runs, click submit.
"""
from __future__ import annotations

import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from applyflow import audit
from applyflow.config import SCREENSHOT_DIR
from applyflow.errors import CaptchaDetected, UserTakeover
from applyflow.log import get_logger
from applyflow.models import PostingSnapshot, Profile

log = get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

CAPTCHA_TITLE_MARKERS = ("just a moment", "attention required")
CAPTCHA_CONTENT_MARKERS = ("cf-turnstile", "g-recaptcha", "h-captcha", "challenge-platform")


class SubmissionRunner(ABC):
    """Submits one application.

    Returns normally on success, raises ``CaptchaDetected`` / ``UserTakeover``
    for halting failures, anything else for a retryable failure.
    """

    @abstractmethod
    def submit(
        self,
        posting: PostingSnapshot,
        artifact_path: Path,
        dry_run: bool,
        profile: Profile,
    ) -> None:
        pass


class SubmissionFailed(RuntimeError):
    pass


def detect_captcha(title: str, content: str) -> bool:
    t = title.lower()
    c = content.lower()
    return any(m in t for m in CAPTCHA_TITLE_MARKERS) or any(m in c for m in CAPTCHA_CONTENT_MARKERS)


def _visible(locator) -> bool:
    """Safe visibility check that never throws."""
    try:
        return locator.count() > 0 and locator.first.is_visible(timeout=2000)
    except Exception:
        return False


def _fill_first_visible(page, selectors: list[str], value: str, field_name: str) -> bool:
    if not value:
        return False
    for sel in selectors:
        loc = page.locator(sel).first
        if _visible(loc):
            loc.fill(value)
            log.debug("Filled %s using %s", field_name, sel)
            return True
    log.warning("Could not fill field: %s", field_name)
    return False


def _upload(page, selectors: list[str], path: Path) -> None:
    # File inputs are often hidden, so presence in the DOM is enough.
    for sel in selectors:
        loc = page.locator(sel)
        if loc.count() > 0:
            loc.first.set_input_files(str(path))
            log.debug("Uploaded resume using %s", sel)
            return
    raise SubmissionFailed("Resume upload field not found")


def _click_first_visible(page, selectors: list[str]) -> bool:
    for sel in selectors:
        loc = page.locator(sel).first
        if _visible(loc):
            loc.click()
            return True
    return False


# ---------------------------------------------------------------------------
# ATS-specific form fillers. Each returns the selectors for its submit button.
# ---------------------------------------------------------------------------

def _fill_greenhouse(page, profile: Profile, resume: Path) -> list[str]:
    _fill_first_visible(page, ["#first_name", 'input[name="first_name"]'], profile.first_name, "first name")
    _fill_first_visible(page, ["#last_name", 'input[name="last_name"]'], profile.last_name, "last name")
    _fill_first_visible(page, ["#email", 'input[type="email"]'], profile.email, "email")
    _fill_first_visible(page, ["#phone", 'input[type="tel"]'], profile.phone, "phone")
    _fill_first_visible(page, ['input[name*="linkedin" i]', 'input[id*="linkedin" i]'], profile.linkedin, "LinkedIn")
    _fill_first_visible(page, ['input[name*="website" i]', 'input[id*="website" i]'], profile.portfolio, "website")
    _upload(page, ['#resume_fieldset input[type="file"]', '[data-source="attach"]', 'input[type="file"]'], resume)
    return ['#submit_app', 'button[type="submit"]', 'input[type="submit"]']


def _fill_lever(page, profile: Profile, resume: Path) -> list[str]:
    if not page.locator('input[name="email"]').count():
        _click_first_visible(page, ['a.postings-btn', 'a:has-text("Apply for this job")'])
        time.sleep(2)
    _fill_first_visible(page, ['input[name="name"]'], profile.name, "name")
    _fill_first_visible(page, ['input[name="email"]'], profile.email, "email")
    _fill_first_visible(page, ['input[name="phone"]'], profile.phone, "phone")
    _fill_first_visible(page, ['input[name="urls[LinkedIn]"]'], profile.linkedin, "LinkedIn")
    _fill_first_visible(page, ['input[name="urls[Portfolio]"]', 'input[name="urls[Other]"]'], profile.portfolio, "website")
    _upload(page, ['input[name="resume"]', 'input[type="file"]'], resume)
    return ['button:has-text("Submit application")', 'button[type="submit"]']


def _fill_ashby(page, profile: Profile, resume: Path) -> list[str]:
    _click_first_visible(page, ['a:has-text("Apply for this Job")', 'button:has-text("Application")'])
    _fill_first_visible(page, ['input[name="_systemfield_name"]'], profile.name, "name")
    _fill_first_visible(page, ['input[name="_systemfield_email"]', 'input[type="email"]'], profile.email, "email")
    _fill_first_visible(page, ['input[type="tel"]'], profile.phone, "phone")
    _fill_first_visible(page, ['input[name*="linkedin" i]'], profile.linkedin, "LinkedIn")
    _upload(page, ['input[id="_systemfield_resume"]', 'input[type="file"]'], resume)
    return ['button:has-text("Submit Application")', 'button[type="submit"]']


FORM_FILLERS: dict[str, Callable[..., list[str]]] = {
    "greenhouse": _fill_greenhouse,
    "lever": _fill_lever,
    "ashby": _fill_ashby,
}


class BrowserSubmissionRunner(SubmissionRunner):
    def __init__(
        self,
        *,
        headless: bool = False,
        screenshot_dir: Path | None = None,
        timeout_ms: int = 20_000,
    ) -> None:
        self.headless = headless
        self.screenshot_dir = screenshot_dir or SCREENSHOT_DIR
        self.timeout_ms = timeout_ms

    def submit(
        self,
        posting: PostingSnapshot,
        artifact_path: Path,
        dry_run: bool,
        profile: Profile,
    ) -> None:
        filler = FORM_FILLERS.get(posting.ats_provider)
        if filler is None:
            raise SubmissionFailed(f"ATS {posting.ats_provider} not supported for submission")
        if not posting.url:
            raise SubmissionFailed("No URL for this posting")

        _pw = os.environ.get("PLAYWRIGHT_BROWSERS_PATH", "")
        if _pw and not Path(_pw).exists():
            os.environ.pop("PLAYWRIGHT_BROWSERS_PATH", None)
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import sync_playwright

        log.info("Submitting: %s @ %s → %s (dry run: %s)", posting.title, posting.company,
                 posting.ats_provider, dry_run)
        closed_by_user = False

        def _on_close(_page) -> None:
            nonlocal closed_by_user
            closed_by_user = True

        with sync_playwright() as p:
            browser = p.chromium.launch(headless=self.headless)
            try:
                context = browser.new_context(viewport={"width": 1280, "height": 900}, user_agent=USER_AGENT)
                page = context.new_page()
                page.set_default_timeout(self.timeout_ms)
                page.on("close", _on_close)
                try:
                    page.goto(posting.url, wait_until="domcontentloaded", timeout=25_000)
                    page.wait_for_load_state("networkidle")
                    self._check_captcha(page, posting)

                    submit_selectors = filler(page, profile, artifact_path)
                    screenshot = self._screenshot(page, posting)

                    if not dry_run:
                        if not _click_first_visible(page, submit_selectors):
                            raise SubmissionFailed(f"{posting.ats_provider} submit button not found")
                        time.sleep(3)
                        self._check_captcha(page, posting)
                except PlaywrightError as exc:
                    if closed_by_user or page.is_closed():
                        raise UserTakeover(f"Browser closed during {posting.url}") from exc
                    raise
            finally:
                if browser.is_connected():
                    browser.close()

        audit.record(
            "DRY_RUN" if dry_run else "SUBMIT",
            subject_id=f"{posting.ats_provider}:{posting.ats_job_id}",
            verdict="REVIEW_OPTIONAL",
            screenshot=str(screenshot),
        )
        log.info("Form processed for %s @ %s, screenshot → %s", posting.title, posting.company, screenshot)

    def _check_captcha(self, page, posting: PostingSnapshot) -> None:
        if detect_captcha(page.title(), page.content()):
            raise CaptchaDetected(f"CAPTCHA detected on {posting.url}")

    def _screenshot(self, page, posting: PostingSnapshot) -> Path:
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        path = self.screenshot_dir / f"{posting.ats_provider}_{posting.ats_job_id}_filled.png"
        page.screenshot(path=str(path))
        return path
