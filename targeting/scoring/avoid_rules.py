"""Avoid-list rule table.

The ICP avoid list is free text. Each rule decides whether it is triggered by
that text and, if so, whether a candidate matches it. Any match zeroes the
avoid-list factor; it never removes the candidate.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from targeting.core.schemas import Candidate

ENTERPRISE_EMPLOYEE_THRESHOLD = 1000


@dataclass(frozen=True)
class AvoidRule:
    """``applies(avoid_text, candidate)`` → detail line when the candidate is avoided."""

    name: str
    applies: Callable[[str, Candidate], bool]
    detail: str


def avoid_tokens(avoid_text: str) -> list[str]:
    """Split the avoid list on commas; blank tokens are dropped."""
    return [t.strip() for t in avoid_text.lower().split(",") if t.strip()]


def _company_named(avoid_text: str, candidate: Candidate) -> bool:
    company = candidate.company_name.lower()
    if not company:
        return False
    return any(token in company for token in avoid_tokens(avoid_text))


def _large_enterprise(avoid_text: str, candidate: Candidate) -> bool:
    return (
        "enterprise" in avoid_text.lower()
        and candidate.employee_count > ENTERPRISE_EMPLOYEE_THRESHOLD
    )


def _consumer_business(avoid_text: str, candidate: Candidate) -> bool:
    return "b2c" in avoid_text.lower() and "consumer" in candidate.industry.lower()


DEFAULT_AVOID_RULES: tuple[AvoidRule, ...] = (
    AvoidRule("company_name", _company_named, "✗ Company in avoid list"),
    AvoidRule("enterprise", _large_enterprise, "⚠ Large enterprise (in avoid criteria)"),
    AvoidRule("b2c", _consumer_business, "⚠ B2C company (in avoid criteria)"),
)


def evaluate_avoid_rules(
    avoid_text: str,
    candidate: Candidate,
    rules: Sequence[AvoidRule] = DEFAULT_AVOID_RULES,
) -> list[str]:
    """Return the detail line of every rule the candidate trips, in table order."""
    if not avoid_text.strip():
        return []
    return [rule.detail for rule in rules if rule.applies(avoid_text, candidate)]
