"""LLM task definitions for the mission: prompts, schemas, result mapping.

Each task has a ``*_spec`` builder returning a ``GenerationSpec`` and a parser
that maps the validated object back onto mission types. Where a task has a
non-LLM answer (suggestions, rankings) the fallback lives here too, so the
orchestrator can apply it explicitly.
"""

from collections.abc import Sequence
from typing import Any

from targeting.core.errors import SchemaViolation
from targeting.core.schemas import Candidate, IdealCustomerProfile, ScoredCandidate
from targeting.generation.adapter import GenerationSpec, TaskKind
from targeting.mission.models import CampaignAsset, CampaignType, ContactRanking, EmailVariation

SYSTEM_PROMPT = (
    "You are an expert B2B sales development assistant. "
    "Answer with one JSON object and nothing else."
)

LINKEDIN_CONNECTION_LIMIT = 300
EMAIL_STYLES = ("direct", "value", "curiosity")

_FALLBACK_BASE_SCORE = 70
_SENIORITY_BONUS = {"manager": 10, "director": 8}
_DEFAULT_SENIORITY_BONUS = 5


def _icp_lines(icp: IdealCustomerProfile) -> str:
    return (
        f"- Target industries: {', '.join(icp.industries) or 'Various'}\n"
        f"- Target company sizes: {', '.join(icp.company_sizes) or 'Various'}\n"
        f"- Target titles: {', '.join(icp.job_titles) or 'Various'}\n"
        f"- Locations: {', '.join([*icp.location_scope, *icp.target_states]) or 'Any'}"
    )


def _contact_line(index: int, c: Candidate, score: int | None = None) -> str:
    parts = [f"{index}. {c.name or 'Unknown'} - {c.title or 'Unknown title'}"]
    parts.append(f"({c.seniority or 'unknown'} level)")
    parts.append(f"at {c.company_name or 'Unknown'}")
    if score is not None:
        parts.append(f"[match {score}]")
    parts.append(f"email={'yes' if c.email else 'no'}")
    parts.append(f"linkedin={'yes' if c.linkedin_url else 'no'}")
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Contact suggestions
# ---------------------------------------------------------------------------


def suggestion_spec(
    company: Candidate,
    batch: Sequence[ScoredCandidate],
    icp: IdealCustomerProfile,
    max_suggestions: int,
    max_tokens: int,
) -> GenerationSpec:
    """Ask which 3..max_suggestions contacts of the batch to put in front of the user."""
    listing = "\n".join(
        _contact_line(i, s.candidate, s.score) for i, s in enumerate(batch)
    )
    prompt = f"""Select the best 3-{max_suggestions} people to contact at this company.

COMPANY:
- Name: {company.name}
- Size: {company.employee_count or 'Unknown'} employees
- Industry: {company.industry or 'Unknown'}

IDEAL CUSTOMER PROFILE:
{_icp_lines(icp)}

AVAILABLE CONTACTS ({len(batch)} total):
{listing}

Prefer founders and owners at companies under 50 people, directors and VPs at
51-200, managers and directors above that. Mix decision makers and influencers.

Return JSON:
{{"suggestions": [{{"index": 0, "reason": "why this person"}}]}}"""

    return GenerationSpec(
        task=TaskKind.CLASSIFICATION,
        prompt=prompt,
        system=SYSTEM_PROMPT,
        required_keys=("suggestions", "suggestions[].index"),
        bounds={"suggestions[].index": (0, max(len(batch) - 1, 0))},
        max_tokens=max_tokens,
    )


def parse_suggestions(
    data: dict[str, Any],
    batch: Sequence[ScoredCandidate],
    max_suggestions: int,
) -> list[tuple[str, str]]:
    """Map suggestion indexes to ``(contact_id, reason)``; duplicates dropped."""
    picked: list[tuple[str, str]] = []
    seen: set[str] = set()
    for item in data["suggestions"]:
        contact = batch[int(item["index"])].candidate
        if contact.id in seen:
            continue
        seen.add(contact.id)
        picked.append((contact.id, str(item.get("reason") or "")))
        if len(picked) >= max_suggestions:
            break
    return picked


def fallback_suggestions(batch: Sequence[ScoredCandidate], count: int) -> list[tuple[str, str]]:
    """Top ``count`` contacts by match score."""
    ordered = sorted(batch, key=lambda s: s.score, reverse=True)
    return [(s.candidate.id, f"Match score {s.score}") for s in ordered[:count]]


# ---------------------------------------------------------------------------
# Contact ranking
# ---------------------------------------------------------------------------


def ranking_spec(
    contacts: Sequence[Candidate],
    icp: IdealCustomerProfile,
    max_tokens: int,
) -> GenerationSpec:
    listing = "\n".join(_contact_line(i, c) for i, c in enumerate(contacts))
    prompt = f"""Rank these {len(contacts)} contacts from BEST (100) to WORST (1) for outreach.

IDEAL CUSTOMER PROFILE:
{_icp_lines(icp)}

CONTACTS:
{listing}

Weigh decision-making authority, fit with the profile and reachability
(verified email, LinkedIn). Rank ALL contacts.

Return JSON:
{{"rankings": [{{"index": 0, "score": 95, "reasoning": "why"}}]}}"""

    return GenerationSpec(
        task=TaskKind.RANKING,
        prompt=prompt,
        system=SYSTEM_PROMPT,
        required_keys=("rankings", "rankings[].index", "rankings[].score"),
        bounds={
            "rankings[].score": (1, 100),
            "rankings[].index": (0, max(len(contacts) - 1, 0)),
        },
        max_tokens=max_tokens,
    )


def fallback_score(contact: Candidate) -> int:
    """Heuristic outreach score used when ranking is unavailable."""
    score = _FALLBACK_BASE_SCORE
    if contact.email:
        score += 10
    if contact.linkedin_url:
        score += 5
    seniority = (contact.seniority or "").lower()
    score += _SENIORITY_BONUS.get(seniority, _DEFAULT_SENIORITY_BONUS)
    return min(score, 100)


def parse_rankings(data: dict[str, Any], contacts: Sequence[Candidate]) -> list[ContactRanking]:
    """Build rankings for every contact, sorted best first.

    Contacts the model skipped get the heuristic score; repeated indexes keep
    the first entry.
    """
    by_id: dict[str, ContactRanking] = {}
    for item in data["rankings"]:
        contact = contacts[int(item["index"])]
        if contact.id in by_id:
            continue
        by_id[contact.id] = ContactRanking(
            contact_id=contact.id,
            score=int(item["score"]),
            reasoning=str(item.get("reasoning") or ""),
        )
    for contact in contacts:
        if contact.id not in by_id:
            by_id[contact.id] = ContactRanking(
                contact_id=contact.id,
                score=fallback_score(contact),
                reasoning="Not ranked by the model; heuristic score",
            )
    return _assign_ranks(list(by_id.values()))


def fallback_rankings(contacts: Sequence[Candidate]) -> list[ContactRanking]:
    rankings = [
        ContactRanking(
            contact_id=c.id,
            score=fallback_score(c),
            reasoning="Heuristic score from seniority and contact data",
        )
        for c in contacts
    ]
    return _assign_ranks(rankings)


def _assign_ranks(rankings: list[ContactRanking]) -> list[ContactRanking]:
    ordered = sorted(rankings, key=lambda r: r.score, reverse=True)
    return [r.model_copy(update={"rank": i}) for i, r in enumerate(ordered, start=1)]


# ---------------------------------------------------------------------------
# Campaign copy
# ---------------------------------------------------------------------------


def campaign_spec(
    contact: Candidate,
    campaign_type: CampaignType,
    icp: IdealCustomerProfile,
    max_tokens: int,
) -> GenerationSpec:
    who = (
        f"- Name: {contact.name or 'Unknown'}\n"
        f"- Title: {contact.title or 'Unknown'}\n"
        f"- Company: {contact.company_name or 'Unknown'}"
        f" ({contact.industry or 'unknown industry'}, "
        f"{contact.employee_count or 'unknown'} employees)\n"
        f"- Location: {contact.location}"
    )

    if campaign_type is CampaignType.EMAIL:
        task = f"""Write 3 cold email variations, one per style: {', '.join(EMAIL_STYLES)}.
Each needs a 5-8 word subject line without spam words and a body under 150 words
that references the contact's role and ends with a soft call to action.

Return JSON:
{{"variations": [{{"subject": "...", "body": "...", "style": "direct"}}]}}"""
        required: tuple[str, ...] = ("variations", "variations[].subject", "variations[].body")
    else:
        task = """Write a LinkedIn connection request under 250 characters and a
follow-up message to send once they accept.

Return JSON:
{"connectionRequest": "...", "followUp": "..."}"""
        required = ("connectionRequest", "followUp")

    prompt = f"""Write personalized outreach for this contact.

CONTACT:
{who}

IDEAL CUSTOMER PROFILE:
{_icp_lines(icp)}

{task}"""

    return GenerationSpec(
        task=TaskKind.COPY,
        prompt=prompt,
        system=SYSTEM_PROMPT,
        required_keys=required,
        max_tokens=max_tokens,
    )


def parse_campaign(
    data: dict[str, Any],
    contact_id: str,
    campaign_type: CampaignType,
) -> CampaignAsset:
    if campaign_type is CampaignType.EMAIL:
        variations = [
            EmailVariation(
                subject=str(v["subject"]),
                body=str(v["body"]),
                style=str(v.get("style") or ""),
            )
            for v in data["variations"]
        ]
        if not variations:
            msg = "'variations' must hold at least one email"
            raise SchemaViolation(msg, field="variations")
        return CampaignAsset(contact_id=contact_id, type=campaign_type, variations=variations)

    return CampaignAsset(
        contact_id=contact_id,
        type=campaign_type,
        connection_request=str(data["connectionRequest"])[:LINKEDIN_CONNECTION_LIMIT],
        follow_up=str(data["followUp"]),
    )
