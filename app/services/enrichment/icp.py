"""Ideal-customer-profile match: target industry, target region and passing revenue."""

from __future__ import annotations

from dataclasses import dataclass

from app.models.enrichment import EnrichmentRecord, IndustryCode
from app.services.enrichment.bands import is_passing_revenue
from app.services.enrichment.config import EnrichmentConfig


@dataclass(frozen=True)
class IcpAssessment:
    matches: list[IndustryCode]
    industry_pass: bool
    region_pass: bool
    revenue_pass: bool

    @property
    def target_icp(self) -> bool:
        return self.industry_pass and self.region_pass and self.revenue_pass


def assess_icp(record: EnrichmentRecord, config: EnrichmentConfig) -> IcpAssessment:
    matches = [code for code in record.naics_codes_6_digit if code.code in config.target_naics_codes]
    region_pass = record.hq_country in config.target_regions or record.is_us_hq or record.is_us_subsidiary
    return IcpAssessment(
        matches=matches,
        industry_pass=bool(matches),
        region_pass=region_pass,
        revenue_pass=is_passing_revenue(record.company_revenue, config.passing_revenue_threshold),
    )


def apply_icp(record: EnrichmentRecord, config: EnrichmentConfig) -> EnrichmentRecord:
    """Recompute the ICP flags from the record's current fields."""
    assessment = assess_icp(record, config)
    return record.model_copy(
        update={
            "target_icp": assessment.target_icp,
            "target_icp_matches": assessment.matches,
            "industry_pass": assessment.industry_pass,
            "revenue_pass": assessment.revenue_pass,
        }
    )
