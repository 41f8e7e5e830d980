"""Score postings against a profile and rank the ones that pass the hard gates."""
from __future__ import annotations

from dataclasses import dataclass

from applyflow.log import get_logger
from applyflow.models import MatchScoreBreakdown, Posting, Profile
from applyflow.rules import FilterResult, RuleSet

log = get_logger(__name__)

BASE_SCORE = 50

REMOTE_REQUIRED_MATCH = 15
REMOTE_REQUIRED_MISS = -10
REMOTE_BONUS = 5

LOCATION_MATCH = 10
LOCATION_REMOTE_FALLBACK = 5

SKILLS_WEIGHT = 25
SENIORITY_PENALTY = -20
KEYWORD_PENALTY = -30


def _normalize(s: str | None) -> str:
    return (s or "").lower().strip()


def _clean(items: list[str]) -> list[str]:
    return [_normalize(i) for i in items if _normalize(i)]


def _remote_term(posting: Posting, remote_only: bool) -> int:
    if remote_only:
        return REMOTE_REQUIRED_MATCH if posting.is_remote else REMOTE_REQUIRED_MISS
    return REMOTE_BONUS if posting.is_remote else 0


def _location_term(posting: Posting, locations: list[str]) -> int:
    job_loc = _normalize(posting.location)
    # Bidirectional containment: "San Francisco" matches "San Francisco, CA" and vice versa.
    if job_loc and any(job_loc in loc or loc in job_loc for loc in locations):
        return LOCATION_MATCH
    if posting.is_remote:
        return LOCATION_REMOTE_FALLBACK
    return 0


def _skills_term(text: str, skills: list[str]) -> int:
    matched = sum(1 for s in skills if s in text)
    total = max(len(skills), 1)
    # round-half-up of matched / total * SKILLS_WEIGHT in integer arithmetic
    return (2 * matched * SKILLS_WEIGHT + total) // (2 * total)


def score_posting(posting: Posting, profile: Profile) -> MatchScoreBreakdown:
    prefs = profile.preferences
    title = _normalize(posting.title)
    text = f"{title} {_normalize(posting.description)} {_normalize(posting.company)}"

    remote = _remote_term(posting, prefs.remote_only)
    location = _location_term(posting, _clean(prefs.locations))
    skills = _skills_term(text, _clean(profile.skills))
    seniority = SENIORITY_PENALTY if any(t in title for t in _clean(prefs.max_seniority)) else 0
    keywords = KEYWORD_PENALTY if any(k in text for k in _clean(prefs.excluded_keywords)) else 0

    total = BASE_SCORE + remote + location + skills + seniority + keywords
    return MatchScoreBreakdown(
        total=max(0, min(100, total)),
        remote=remote,
        location=location,
        skills=skills,
        seniority=seniority,
        keywords=keywords,
    )


@dataclass
class ScoredPosting:
    posting: Posting
    breakdown: MatchScoreBreakdown
    verdict: FilterResult

    @property
    def score(self) -> int:
        return self.breakdown.total


def rank_postings(
    postings: list[Posting],
    profile: Profile,
    *,
    rule_set: RuleSet | None = None,
    min_score: int = 0,
) -> list[ScoredPosting]:
    """Gate, score and sort; a posting identity appearing twice is ranked once."""
    rule_set = rule_set or RuleSet.from_preferences(profile.preferences)
    seen: set[tuple[str, str]] = set()
    scored: list[ScoredPosting] = []
    rejected = 0

    for p in postings:
        if p.key in seen:
            log.debug("Skipping duplicate posting %s:%s", *p.key)
            continue
        seen.add(p.key)
        verdict = rule_set.evaluate(p)
        if not verdict.accepted:
            rejected += 1
            continue
        breakdown = score_posting(p, profile)
        if breakdown.total >= min_score:
            scored.append(ScoredPosting(posting=p, breakdown=breakdown, verdict=verdict))

    # sorted() is stable, so equal scores keep their input order
    result = sorted(scored, key=lambda s: -s.score)
    log.info(
        "Ranked %d postings → %d accepted, %d rejected by hard gates",
        len(seen), len(result), rejected,
    )
    return result
