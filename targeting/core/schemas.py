"""Core data models: ICP, directory candidates and match scores."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Max points per scoring factor; order is the breakdown order.
FACTOR_MAX: dict[str, int] = {
    "title": 25,
    "industry": 20,
    "size": 20,
    "location": 15,
    "not_avoid": 10,
    "data_quality": 10,
}


class IdealCustomerProfile(BaseModel):
    """User-owned targeting configuration. Read-only to scoring.

    Accepts the camelCase keys the profile documents are stored with
    (``jobTitles``, ``companySizes``, ...) as well as snake_case.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    industries: list[str] = Field(default_factory=list)
    company_sizes: list[str] = Field(default_factory=list)
    job_titles: list[str] = Field(default_factory=list)
    location_scope: list[str] = Field(default_factory=list)
    target_states: list[str] = Field(default_factory=list)
    target_cities: list[str] = Field(default_factory=list)
    avoid_list: str = ""

    @model_validator(mode="before")
    @classmethod
    def nulls_to_defaults(cls, data: object) -> object:
        # Stored profiles carry explicit nulls for unanswered questions.
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class Candidate(BaseModel):
    """A company or contact record normalized from the directory.

    Frozen: scores live in ScoredCandidate, not on the record.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: Literal["company", "contact"] = "contact"
    name: str = ""
    title: str = ""
    company_name: str = ""
    organization_id: str | None = None
    website_url: str = ""
    industry: str = ""
    employee_count: int = Field(default=0, ge=0)
    city: str = ""
    state: str = ""
    country: str = ""
    email: str | None = None
    email_status: str | None = None
    linkedin_url: str | None = None
    phone_numbers: list[str] = Field(default_factory=list)
    seniority: str | None = None
    headline: str = ""

    @property
    def location(self) -> str:
        parts = [p for p in (self.city, self.state) if p]
        if not parts and self.country:
            parts.append(self.country)
        return ", ".join(parts) or "Unknown"


class ScoreBreakdown(BaseModel):
    """Per-factor point allocation."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    title: int = Field(default=0, ge=0, le=FACTOR_MAX["title"])
    industry: int = Field(default=0, ge=0, le=FACTOR_MAX["industry"])
    size: int = Field(default=0, ge=0, le=FACTOR_MAX["size"])
    location: int = Field(default=0, ge=0, le=FACTOR_MAX["location"])
    not_avoid: int = Field(default=0, ge=0, le=FACTOR_MAX["not_avoid"])
    data_quality: int = Field(default=0, ge=0, le=FACTOR_MAX["data_quality"])

    def total(self) -> int:
        return (
            self.title + self.industry + self.size
            + self.location + self.not_avoid + self.data_quality
        )


class ScoreResult(BaseModel):
    """Match score with its breakdown and ordered explanation lines."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    score: int = Field(ge=0, le=100)
    breakdown: ScoreBreakdown
    match_details: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def score_is_sum_of_breakdown(self) -> "ScoreResult":
        if self.score != self.breakdown.total():
            msg = f"score {self.score} != breakdown total {self.breakdown.total()}"
            raise ValueError(msg)
        return self


class ScoredCandidate(BaseModel):
    """Wrapper that pairs a frozen Candidate with its match score."""

    model_config = ConfigDict(frozen=True)

    candidate: Candidate
    result: ScoreResult

    @property
    def score(self) -> int:
        return self.result.score
