"""Evidence gathered by the web-search passes before reconciliation."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.countries import UNKNOWN_COUNTRY, normalize_country_code

Confidence = Literal["high", "medium", "low"]
EntityScope = Literal["operating_company", "ultimate_parent"]
SourceType = Literal[
    "filing",
    "investor_relations",
    "company_site",
    "media",
    "estimate_site",
    "directory",
    "unknown",
]
RelationshipType = Literal["standalone", "subsidiary", "division", "brand", "unknown"]


class RevenueEvidence(BaseModel):
    """A single revenue figure reported by a source."""

    model_config = ConfigDict(frozen=True)

    amount: str
    amount_usd: float | None = Field(default=None, gt=0)
    source: str = "unknown"
    year: int | None = None
    is_estimate: bool = False
    scope: EntityScope = "operating_company"
    source_type: SourceType = "unknown"
    evidence_url: str | None = None
    evidence_excerpt: str | None = None


class EmployeeEvidence(BaseModel):
    """A headcount figure reported by a source."""

    model_config = ConfigDict(frozen=True)

    amount: str
    source: str = "unknown"
    scope: EntityScope = "operating_company"
    source_type: SourceType = "unknown"

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value


class Headquarters(BaseModel):
    model_config = ConfigDict(frozen=True)

    city: str | None = None
    state: str | None = None
    country: str | None = None
    country_code: str = UNKNOWN_COUNTRY

    @field_validator("country_code", mode="before")
    @classmethod
    def _normalize_code(cls, value: object) -> str:
        if value is None:
            return UNKNOWN_COUNTRY
        return normalize_country_code(str(value))

    @property
    def has_city(self) -> bool:
        return bool(self.city and self.city.strip() and self.city.strip().lower() != "unknown")

    @property
    def is_unknown(self) -> bool:
        """True when neither a country code nor a usable city is known."""
        return self.country_code == UNKNOWN_COUNTRY and not self.has_city


class LinkCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    confidence: Confidence = "medium"


class CanonicalWebsite(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    confidence: Confidence = "low"
    reasoning: str = ""


class FirstPassResult(BaseModel):
    """Structured output of the first web-search pass."""

    model_config = ConfigDict(frozen=True)

    company_name: str
    parent_company: str | None = None
    entity_scope: EntityScope = "operating_company"
    relationship_type: RelationshipType = "unknown"
    headquarters: Headquarters = Field(default_factory=Headquarters)
    urls_to_crawl: list[str] = Field(default_factory=list)
    revenue_found: list[RevenueEvidence] = Field(default_factory=list)
    employee_count_found: list[EmployeeEvidence] = Field(
        default_factory=list,
        description="Newest first; deep research prepends to this list.",
    )
    linkedin_url_candidates: list[LinkCandidate] = Field(default_factory=list)
    canonical_website: CanonicalWebsite | None = None
    is_public_company: bool = False
    search_queries: list[str] = Field(default_factory=list)

    @property
    def operating_revenue(self) -> list[RevenueEvidence]:
        """Revenue items describing the operating company with a usable USD value."""
        return [
            item
            for item in self.revenue_found
            if item.scope == "operating_company" and item.amount_usd is not None and item.amount_usd > 0
        ]
