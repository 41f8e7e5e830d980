"""Render a per-posting resume artifact, with an optional Groq-written summary."""
from __future__ import annotations

import os
from abc import ABC, abstractmethod

from applyflow.log import get_logger
from applyflow.models import PostingSnapshot, Profile
from applyflow.retry import retry

log = get_logger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "llama-3.3-70b-versatile"


class ResumeGenerator(ABC):
    """Produces the file uploaded with an application."""

    suffix: str = ".txt"

    @abstractmethod
    def generate(self, profile: Profile, posting: PostingSnapshot) -> bytes:
        pass


@retry(max_attempts=2, base_delay=2.0, retryable=(Exception,))
def _call_groq(api_key: str, model: str, prompt: str) -> str:
    from openai import OpenAI

    client = OpenAI(api_key=api_key, base_url=GROQ_BASE_URL)
    r = client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": prompt}],
        max_tokens=250,
    )
    return (r.choices[0].message.content or "").strip()


def _relevant_skills(profile: Profile, posting: PostingSnapshot) -> list[str]:
    """Profile skills, the ones the posting mentions first. Never adds skills."""
    text = f"{posting.title} {posting.description}".lower()
    hits = [s for s in profile.skills if s.lower() in text]
    rest = [s for s in profile.skills if s not in hits]
    return hits + rest


class TextResumeGenerator(ResumeGenerator):
    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self.api_key = api_key if api_key is not None else os.environ.get("GROQ_API_KEY", "").strip()
        self.model = model or os.environ.get("GROQ_LLM_MODEL", DEFAULT_MODEL).strip()

    def generate(self, profile: Profile, posting: PostingSnapshot) -> bytes:
        skills = _relevant_skills(profile, posting)
        summary = self._summary(profile, posting, skills)
        lines = [
            profile.name or "Candidate",
            " | ".join(p for p in (profile.location, profile.phone, profile.email,
                                   profile.linkedin, profile.portfolio) if p),
            "",
            "PROFESSIONAL SUMMARY",
            summary,
            "",
            "SKILLS",
            ", ".join(skills),
            "",
        ]
        log.info("Generated resume for %s @ %s", posting.title, posting.company)
        return "\n".join(lines).encode("utf-8")

    def _summary(self, profile: Profile, posting: PostingSnapshot, skills: list[str]) -> str:
        if not self.api_key:
            log.debug("No GROQ_API_KEY — using template summary")
            return _fallback_summary(profile, posting, skills)

        prompt = f"""Write a resume professional summary (3 sentences, under 70 words).
Candidate summary: {profile.summary}
Key skills: {', '.join(skills[:8])}
Target role: {posting.title} at {posting.company}
Job description (excerpt): {posting.description[:1500]}

Only mention skills from the key skills list. No placeholders, no greeting, plain text."""
        try:
            text = _call_groq(self.api_key, self.model, prompt)
        except Exception as exc:
            log.warning("Summary generation failed (%s), using template", exc)
            return _fallback_summary(profile, posting, skills)
        return text or _fallback_summary(profile, posting, skills)


def _fallback_summary(profile: Profile, posting: PostingSnapshot, skills: list[str]) -> str:
    base = profile.summary or f"Experienced professional with strong expertise in {', '.join(skills[:3]) or 'delivery'}."
    return f"{base} Seeking to bring these skills to the {posting.title} role at {posting.company}."
