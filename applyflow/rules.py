"""Hard-gate rules: each one can reject a posting outright, independent of score."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from applyflow import audit
from applyflow.log import get_logger
from applyflow.models import Posting, Preferences, Verdict

log = get_logger(__name__)

PASSED_ALL = "passed all hard gates"


@dataclass(frozen=True)
class RuleResult:
    verdict: Verdict
    reason: str

    @property
    def rejected(self) -> bool:
        return self.verdict is Verdict.REJECTED


@dataclass(frozen=True)
class RuleOutcome:
    rule: str
    result: RuleResult


@dataclass
class FilterResult:
    verdict: Verdict
    reason: str
    trigger: str
    breakdown: list[RuleOutcome] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.verdict is Verdict.ACCEPTED


def _accept(reason: str) -> RuleResult:
    return RuleResult(Verdict.ACCEPTED, reason)


def _reject(reason: str) -> RuleResult:
    return RuleResult(Verdict.REJECTED, reason)


class Rule(ABC):
    name: str = ""

    @abstractmethod
    def evaluate(self, posting: Posting) -> RuleResult:
        pass


class TechStackRule(Rule):
    name = "Excluded Technology"

    def __init__(self, excluded_keywords: list[str] | None = None) -> None:
        self.excluded = [k.lower() for k in excluded_keywords or [] if k.strip()]

    def evaluate(self, posting: Posting) -> RuleResult:
        text = f"{posting.title} {posting.description}".lower()
        for keyword in self.excluded:
            if keyword in text:
                return _reject(f"Contains excluded technology: {keyword}")
        return _accept("Tech stack compatible")


class RemoteRule(Rule):
    name = "Remote Policy"

    def __init__(self, remote_only: bool = False) -> None:
        self.remote_only = remote_only

    def evaluate(self, posting: Posting) -> RuleResult:
        if not self.remote_only:
            return _accept("Remote not required")
        # Scrapers set is_remote from structured data; the title is a fallback signal.
        if posting.is_remote or "remote" in posting.title.lower():
            return _accept("Remote position")
        return _reject("Position is not marked as remote")


class SeniorityRule(Rule):
    name = "Seniority Mismatch"

    def __init__(self, excluded_levels: list[str] | None = None) -> None:
        self.excluded = [lvl.lower() for lvl in excluded_levels or [] if lvl.strip()]

    def evaluate(self, posting: Posting) -> RuleResult:
        title = posting.title.lower()
        for level in self.excluded:
            if level in title:
                return _reject(f"Seniority level excluded: {level}")
        return _accept("Seniority level acceptable")


class RuleSet:
    """Evaluates every rule in registration order; the first rejection wins."""

    def __init__(self, rules: list[Rule]) -> None:
        self.rules = list(rules)

    @classmethod
    def from_preferences(cls, prefs: Preferences) -> "RuleSet":
        return cls([
            TechStackRule(prefs.excluded_keywords),
            RemoteRule(prefs.remote_only),
            SeniorityRule(prefs.max_seniority),
        ])

    def evaluate(self, posting: Posting) -> FilterResult:
        breakdown = [RuleOutcome(rule.name, rule.evaluate(posting)) for rule in self.rules]

        first_reject = next((o for o in breakdown if o.result.rejected), None)
        if first_reject is not None:
            result = FilterResult(
                verdict=Verdict.REJECTED,
                reason=first_reject.result.reason,
                trigger=first_reject.rule,
                breakdown=breakdown,
            )
        else:
            result = FilterResult(Verdict.ACCEPTED, PASSED_ALL, "All Rules", breakdown)

        self._audit(posting, result)
        return result

    def _audit(self, posting: Posting, result: FilterResult) -> None:
        audit.record(
            "FILTER",
            subject_id=f"{posting.ats_provider}:{posting.ats_job_id}",
            verdict=result.verdict.value,
            reason=result.reason,
            trigger_rule=result.trigger,
            title=posting.title,
            rules=[
                {"rule": o.rule, "passed": not o.result.rejected, "reason": o.result.reason}
                for o in result.breakdown
            ],
        )
        log.debug(
            "Filter verdict for %s @ %s: %s (%s)",
            posting.title, posting.company, result.verdict.value, result.reason,
        )
