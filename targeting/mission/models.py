"""Mission aggregate and its per-phase state."""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from targeting.core.schemas import Candidate, ScoredCandidate


class MissionPhase(StrEnum):
    DISCOVERY = "discovery"
    VALIDATION = "validation"
    VALIDATION_SUMMARY = "validation_summary"
    PER_TARGET_CONTACT_DISCOVERY = "per_target_contact_discovery"
    PER_TARGET_CONTACT_REVIEW = "per_target_contact_review"
    COMPANY_SUMMARY = "company_summary"
    CAMPAIGN_SELECTION = "campaign_selection"
    CAMPAIGN_GENERATION = "campaign_generation"
    CAMPAIGN_EXPORT = "campaign_export"


class CampaignType(StrEnum):
    EMAIL = "email"
    LINKEDIN = "linkedin"


class ValidationDecision(BaseModel):
    company_id: str
    reasons: list[str] = Field(default_factory=list)


class ValidationTally(BaseModel):
    """Human accept/reject decisions on the validation sample."""

    accepted: list[ValidationDecision] = Field(default_factory=list)
    rejected: list[ValidationDecision] = Field(default_factory=list)
    accept_reasons: dict[str, int] = Field(default_factory=dict)
    reject_reasons: dict[str, int] = Field(default_factory=dict)

    def decided(self, company_id: str) -> bool:
        return any(d.company_id == company_id for d in [*self.accepted, *self.rejected])

    def record(self, company_id: str, accepted: bool, reasons: list[str]) -> None:
        decision = ValidationDecision(company_id=company_id, reasons=reasons)
        bucket, counts = (
            (self.accepted, self.accept_reasons) if accepted
            else (self.rejected, self.reject_reasons)
        )
        bucket.append(decision)
        for reason in reasons:
            counts[reason] = counts.get(reason, 0) + 1

    def top_reasons(self, n: int = 3) -> tuple[list[str], list[str]]:
        """Most frequent accept and reject reasons, ties in first-seen order."""
        top_accept = [r for r, _ in Counter(self.accept_reasons).most_common(n)]
        top_reject = [r for r, _ in Counter(self.reject_reasons).most_common(n)]
        return top_accept, top_reject


class ValidationSummary(BaseModel):
    accepted: int
    rejected: int
    top_accept_reasons: list[str]
    top_reject_reasons: list[str]
    top_companies: list[ScoredCandidate] = Field(default_factory=list)


class CompanySelection(BaseModel):
    """Contact decisions for one selected company.

    ``seen_ids`` holds every contact put up for review. It is the exclusion
    set for "fetch more" and only ever grows. ``directory_page`` is the
    directory page the last fresh batch came from.
    """

    company_id: str
    company_name: str = ""
    accepted: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)
    seen_ids: list[str] = Field(default_factory=list)
    directory_page: int = 1
    exhausted: bool = False

    def decided(self, contact_id: str) -> bool:
        return contact_id in self.accepted or contact_id in self.rejected


class ContactRanking(BaseModel):
    contact_id: str
    score: int = Field(ge=1, le=100)
    rank: int = 0
    reasoning: str = ""


class EmailVariation(BaseModel):
    subject: str
    body: str
    style: str = ""


class CampaignAsset(BaseModel):
    """Generated outreach copy for one contact."""

    contact_id: str
    type: CampaignType
    variations: list[EmailVariation] = Field(default_factory=list)
    connection_request: str | None = None
    follow_up: str | None = None
    generated_at: datetime = Field(default_factory=datetime.now)


class MissionError(BaseModel):
    """A per-entity failure caught inside a phase loop."""

    phase: MissionPhase
    entity_id: str
    code: str
    message: str
    at: datetime = Field(default_factory=datetime.now)


class Mission(BaseModel):
    """One end-to-end targeting run for a ``(user_id, slot)`` pair.

    ``version`` mirrors the store's row version and is not part of the
    persisted document.
    """

    user_id: str
    slot: str
    phase: MissionPhase = MissionPhase.DISCOVERY
    version: int | None = Field(default=None, exclude=True)

    # Discovery / validation
    companies: list[Candidate] = Field(default_factory=list)
    total_companies: int = 0
    validation_sample: list[str] = Field(default_factory=list)
    validation_index: int = 0
    tally: ValidationTally = Field(default_factory=ValidationTally)
    ranked_companies: list[ScoredCandidate] = Field(default_factory=list)

    # Per-company contact loop
    selected_company_ids: list[str] = Field(default_factory=list)
    company_index: int = 0
    contact_batch: list[ScoredCandidate] = Field(default_factory=list)
    review_queue: list[str] = Field(default_factory=list)
    suggestion_reasons: dict[str, str] = Field(default_factory=dict)
    contact_index: int = 0
    selections: dict[str, CompanySelection] = Field(default_factory=dict)
    contacts: dict[str, Candidate] = Field(default_factory=dict)

    # Campaign
    rankings: list[ContactRanking] = Field(default_factory=list)
    campaign_contact_ids: list[str] = Field(default_factory=list)
    campaign_type: CampaignType | None = None
    campaigns: dict[str, CampaignAsset] = Field(default_factory=dict)

    errors: list[MissionError] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase is MissionPhase.CAMPAIGN_EXPORT

    def company(self, company_id: str) -> Candidate | None:
        return next((c for c in self.companies if c.id == company_id), None)

    @property
    def current_sample_id(self) -> str | None:
        if self.validation_index < len(self.validation_sample):
            return self.validation_sample[self.validation_index]
        return None

    @property
    def current_company_id(self) -> str | None:
        if self.company_index < len(self.selected_company_ids):
            return self.selected_company_ids[self.company_index]
        return None

    @property
    def current_contact_id(self) -> str | None:
        if self.contact_index < len(self.review_queue):
            return self.review_queue[self.contact_index]
        return None

    def accepted_contacts(self) -> list[Candidate]:
        """Accepted contacts across all companies, in selection order."""
        result: list[Candidate] = []
        for company_id in self.selected_company_ids:
            selection = self.selections.get(company_id)
            if selection is None:
                continue
            result.extend(self.contacts[cid] for cid in selection.accepted if cid in self.contacts)
        return result

    def record_error(self, entity_id: str, code: str, message: str) -> None:
        self.errors.append(
            MissionError(phase=self.phase, entity_id=entity_id, code=code, message=message)
        )


@dataclass
class StepResult:
    """Outcome of one control-surface operation."""

    mission: Mission
    message: str = ""
    persistence_degraded: bool = False
