"""Deterministic ICP match scoring.

Score range: 0-100, the sum of six capped factors:

  title 25 · industry 20 · size 20 · location 15 · avoid-list 10 · data quality 10

Every branch appends one explanation line to ``match_details``; the glyph
prefix tells the reader how it went (✓ hit, ⚠ partial, ✗ miss).
"""

import logging
import re
from collections.abc import Sequence

from targeting.core.schemas import (
    Candidate,
    IdealCustomerProfile,
    ScoreBreakdown,
    ScoredCandidate,
    ScoreResult,
)
from targeting.scoring.avoid_rules import DEFAULT_AVOID_RULES, AvoidRule, evaluate_avoid_rules

logger = logging.getLogger(__name__)

SENIORITY_KEYWORDS = (
    "vp", "vice president", "director", "head", "chief", "manager",
    "ceo", "cfo", "cto", "president", "owner", "founder",
)
NATIONWIDE_SCOPES = ("All US", "Remote")

_RANGE_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")
_OPEN_RANGE_RE = re.compile(r"^\s*(\d+)\s*\+\s*$")
_CITY_SUFFIXES = (" metro", " area")


def score_candidate(
    candidate: Candidate,
    icp: IdealCustomerProfile,
    avoid_rules: Sequence[AvoidRule] = DEFAULT_AVOID_RULES,
) -> ScoreResult:
    """Score a single candidate against an ICP.

    Args:
        candidate: Normalized directory record.
        icp: The user's Ideal Customer Profile.
        avoid_rules: Rule table for the avoid-list factor.

    Returns:
        ScoreResult whose score is the sum of its breakdown.
    """
    details: list[str] = []

    breakdown = ScoreBreakdown(
        title=_title_points(candidate, icp, details),
        industry=_industry_points(candidate, icp, details),
        size=_size_points(candidate, icp, details),
        location=_location_points(candidate, icp, details),
        not_avoid=_not_avoid_points(candidate, icp, details, avoid_rules),
        data_quality=_data_quality_points(candidate, details),
    )
    return ScoreResult(score=breakdown.total(), breakdown=breakdown, match_details=details)


def score_candidates(
    candidates: Sequence[Candidate],
    icp: IdealCustomerProfile,
) -> list[ScoredCandidate]:
    """Score a batch, returning ScoredCandidate list sorted by score desc (stable)."""
    scored = [ScoredCandidate(candidate=c, result=score_candidate(c, icp)) for c in candidates]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored


def score_distribution(scored: Sequence[ScoredCandidate]) -> dict[str, int]:
    """Bucket scores the way the review screens summarize them."""
    buckets = {"excellent": 0, "good": 0, "moderate": 0, "low": 0}
    for s in scored:
        if s.score >= 85:
            buckets["excellent"] += 1
        elif s.score >= 70:
            buckets["good"] += 1
        elif s.score >= 50:
            buckets["moderate"] += 1
        else:
            buckets["low"] += 1
    return buckets


def parse_size_range(size_range: str) -> tuple[int, int | None] | None:
    """Parse "51-200" → (51, 200) and "1000+" → (1000, None).

    Thousands separators are ignored. Returns None for anything malformed.
    """
    cleaned = size_range.replace(",", "")
    match = _RANGE_RE.match(cleaned)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        if low > high:
            return None
        return low, high
    match = _OPEN_RANGE_RE.match(cleaned)
    if match:
        return int(match.group(1)), None
    return None


def _title_points(candidate: Candidate, icp: IdealCustomerProfile, details: list[str]) -> int:
    title = candidate.title.strip().lower()
    shown = candidate.title or "Unknown"

    if title:
        targets = [t.strip().lower() for t in icp.job_titles if t.strip()]
        if title in targets:
            details.append(f"✓ Exact title match ({shown})")
            return 25
        if any(target in title or title in target for target in targets):
            details.append(f"✓ Close title match ({shown})")
            return 20

        if any(kw in title for kw in SENIORITY_KEYWORDS):
            details.append(f"⚠ Related title ({shown})")
            return 12

    details.append(f"✗ Title outside target roles ({shown})")
    return 0


def _industry_points(candidate: Candidate, icp: IdealCustomerProfile, details: list[str]) -> int:
    industry = candidate.industry.strip().lower()
    if not industry:
        details.append("✗ Industry unknown")
        return 0

    for target_industry in icp.industries:
        target = target_industry.strip().lower()
        if target and (target in industry or industry in target):
            details.append(f"✓ Perfect industry ({candidate.industry})")
            return 20

    details.append(f"⚠ Different industry ({candidate.industry})")
    return 8


def _size_points(candidate: Candidate, icp: IdealCustomerProfile, details: list[str]) -> int:
    employees = candidate.employee_count
    if employees <= 0:
        details.append("✗ Company size unknown")
        return 0

    for size_range in icp.company_sizes:
        bounds = parse_size_range(size_range)
        if bounds is None:
            logger.debug("Skipping malformed size range %r", size_range)
            continue
        low, high = bounds
        if employees >= low and (high is None or employees <= high):
            details.append(f"✓ Ideal company size ({employees} employees)")
            return 20

    details.append(f"⚠ Size outside target range ({employees} employees)")
    return 10


def _location_points(candidate: Candidate, icp: IdealCustomerProfile, details: list[str]) -> int:
    if any(scope in icp.location_scope for scope in NATIONWIDE_SCOPES):
        details.append(f"✓ Location: {', '.join(icp.location_scope)}")
        return 15

    state = candidate.state.strip().lower()
    city = candidate.city.strip().lower()
    country = candidate.country.strip().lower()

    if state:
        for target_state in icp.target_states:
            target = target_state.strip().lower()
            if target and (target in state or state in target):
                details.append(f"✓ Target state ({candidate.state})")
                return 15

    if city:
        for target_city in icp.target_cities:
            target = _strip_city_suffix(target_city.strip().lower())
            if target and (target in city or city in target):
                details.append(f"✓ Target metro ({candidate.city})")
                return 15

    if "united states" in country:
        where = candidate.state or candidate.city or "Unknown"
        details.append(f"⚠ US location but not target area ({where})")
        return 5

    details.append(
        f"✗ Outside target locations ({candidate.state or candidate.country or 'Unknown'})"
    )
    return 0


def _strip_city_suffix(city: str) -> str:
    for suffix in _CITY_SUFFIXES:
        city = city.replace(suffix, "")
    return city.strip()


def _not_avoid_points(
    candidate: Candidate,
    icp: IdealCustomerProfile,
    details: list[str],
    rules: Sequence[AvoidRule],
) -> int:
    hits = evaluate_avoid_rules(icp.avoid_list, candidate, rules)
    if hits:
        details.extend(hits)
        return 0
    details.append("✓ Not in avoid list")
    return 10


def _data_quality_points(candidate: Candidate, details: list[str]) -> int:
    points = 0
    if candidate.email:
        points += 5
        details.append("✓ Email available")
    if candidate.linkedin_url:
        points += 3
        details.append("✓ LinkedIn profile")
    if candidate.phone_numbers:
        points += 2
        details.append("✓ Phone number")
    if points == 0:
        details.append("✗ No contact data")
    return min(points, 10)
