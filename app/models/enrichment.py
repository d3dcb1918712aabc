"""Domain models for reconciled company enrichment records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.countries import UNKNOWN_COUNTRY, normalize_country_code
from app.models.evidence import Confidence, EmployeeEvidence, RevenueEvidence

REVENUE_BANDS: Final[tuple[str, ...]] = (
    "0-500K",
    "500K-1M",
    "1M-5M",
    "5M-10M",
    "10M-25M",
    "25M-75M",
    "75M-200M",
    "200M-500M",
    "500M-1B",
    "1B-10B",
    "10B-100B",
    "100B-1T",
)

SIZE_BANDS: Final[tuple[str, ...]] = (
    "0-1 Employees",
    "2-10 Employees",
    "11-50 Employees",
    "51-200 Employees",
    "201-500 Employees",
    "501-1,000 Employees",
    "1,001-5,000 Employees",
    "5,001-10,000 Employees",
    "10,001+ Employees",
)

UNKNOWN_SIZE: Final[str] = "unknown"


class QualityMetric(BaseModel):
    model_config = ConfigDict(frozen=True)

    confidence: Confidence = "low"
    reasoning: str = ""


class RecordQuality(BaseModel):
    """One confidence note per reconciled field."""

    model_config = ConfigDict(frozen=True)

    location: QualityMetric = Field(default_factory=QualityMetric)
    revenue: QualityMetric = Field(default_factory=QualityMetric)
    size: QualityMetric = Field(default_factory=QualityMetric)
    industry: QualityMetric = Field(default_factory=QualityMetric)


class IndustryCode(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str = Field(pattern=r"^\d{6}$")
    description: str = ""


class DomainVerification(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_domain: str
    final_domain: str
    domain_changed: bool = False
    verification_source: str = "input"
    confidence: Confidence = "low"
    reasoning: str = ""


class DeepResearchSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    triggered: bool = False
    forced: bool = False
    reasons: list[str] = Field(default_factory=list)
    revenue_found: str | None = None
    employees_found: str | None = None
    location_found: str | None = None


class SizeAdjustment(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_band: str | None
    adjusted_band: str
    reason: str


class EntityCheckSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    signal: str = "none"
    reason: str = ""
    strict_retry: bool = False


class IdentityLinkSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str | None = None
    source: str | None = None
    validated: bool = False
    rejected: list[dict[str, str]] = Field(default_factory=list)


class Diagnostics(BaseModel):
    """Audit trail of the raw evidence and each reconciliation decision."""

    model_config = ConfigDict(frozen=True)

    revenue_sources_found: list[RevenueEvidence] = Field(default_factory=list)
    employee_sources_found: list[EmployeeEvidence] = Field(default_factory=list)
    revenue_decision: str | None = None
    deep_research: DeepResearchSummary | None = None
    size_adjustment: SizeAdjustment | None = None
    entity_check: EntityCheckSummary | None = None
    identity_link: IdentityLinkSummary | None = None
    domain_verification: DomainVerification | None = None
    parse_status: dict[str, str] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)


class EnrichmentRecord(BaseModel):
    """Reconciled business profile for a single company domain."""

    model_config = ConfigDict(frozen=True)

    company_name: str
    website: str
    domain: str
    linkedin_url: str | None = None
    description: str = ""
    company_size: str | None = UNKNOWN_SIZE
    company_revenue: str | None = None
    naics_codes_6_digit: list[IndustryCode] = Field(default_factory=list, max_length=3)
    city: str | None = None
    state: str | None = None
    hq_country: str = UNKNOWN_COUNTRY
    is_us_hq: bool = False
    is_us_subsidiary: bool = False
    source_urls: list[str] = Field(default_factory=list)
    quality: RecordQuality = Field(default_factory=RecordQuality)
    target_icp: bool = False
    target_icp_matches: list[IndustryCode] = Field(default_factory=list)
    revenue_pass: bool = False
    industry_pass: bool = False
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)
    parent_company_name: str | None = None
    parent_company_domain: str | None = None
    parent_company_revenue: str | None = None
    inherited_revenue: bool = False
    inherited_size: bool = False

    @field_validator("company_revenue")
    @classmethod
    def _revenue_in_bands(cls, value: str | None) -> str | None:
        if value is not None and value not in REVENUE_BANDS:
            raise ValueError(f"Unsupported revenue band: {value!r}")
        return value

    @field_validator("company_size")
    @classmethod
    def _size_in_bands(cls, value: str | None) -> str | None:
        if value is not None and value != UNKNOWN_SIZE and value not in SIZE_BANDS:
            raise ValueError(f"Unsupported size band: {value!r}")
        return value

    @field_validator("hq_country", mode="before")
    @classmethod
    def _normalize_country(cls, value: object) -> str:
        return normalize_country_code(str(value)) if value else UNKNOWN_COUNTRY

    @property
    def has_known_size(self) -> bool:
        return self.company_size in SIZE_BANDS


class StageCost(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    credits: int = 0
    cost_usd: float = 0.0


class CostBreakdown(BaseModel):
    """Per-stage cost lines; totals are sums over the lines."""

    model_config = ConfigDict(frozen=True)

    stages: dict[str, StageCost] = Field(default_factory=dict)
    ai_cost_usd: float = 0.0
    scrape_credits: int = 0
    scrape_cost_usd: float = 0.0
    total_cost_usd: float = 0.0


class PerformanceMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage_ms: dict[str, float] = Field(default_factory=dict)
    total_ms: float = 0.0
    scrape_count: int = 0
    avg_scrape_ms: float = 0.0


class EnrichmentResult(BaseModel):
    """Record plus the telemetry persisted alongside it."""

    model_config = ConfigDict(frozen=True)

    record: EnrichmentRecord
    cost: CostBreakdown = Field(default_factory=CostBreakdown)
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    raw_api_responses: dict[str, Any] = Field(default_factory=dict)
    enriched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
