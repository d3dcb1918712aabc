"""Reconcile revenue and headcount bands from evidence, estimates and sanity rules."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

from app.models.enrichment import (
    SIZE_BANDS,
    EnrichmentRecord,
    IndustryCode,
    QualityMetric,
    SizeAdjustment,
)
from app.models.evidence import Confidence, RevenueEvidence
from app.services.enrichment.bands import (
    employee_count_to_band,
    parse_employee_count,
    revenue_band_index,
    revenue_band_lower_bound,
    size_band_index,
    size_band_lower_bound,
    usd_to_revenue_band,
)
from app.services.enrichment.config import EnrichmentConfig
from app.services.enrichment.deep_research import CONFLICT_RATIO

logger = logging.getLogger(__name__)

AUTHORITATIVE_SOURCE_RE: Final = re.compile(r"sec|10-k|annual report|earnings|results", re.IGNORECASE)

# (minimum revenue band index, minimum size band) checked from the largest revenue down.
SANITY_FLOORS: Final[tuple[tuple[int, str], ...]] = (
    (10, "5,001-10,000 Employees"),
    (9, "1,001-5,000 Employees"),
    (7, "201-500 Employees"),
)


@dataclass(frozen=True)
class RevenueDecision:
    """Outcome of picking a band from first-pass evidence; ``band`` is None on conflict."""

    band: str | None
    confidence: Confidence
    reasoning: str
    evidence: RevenueEvidence | None = None
    conflict: bool = False


def _describe(item: RevenueEvidence) -> str:
    return f"{item.amount} ({item.year or 'year unknown'}, {item.source})"


def pick_revenue_band(evidence: Sequence[RevenueEvidence]) -> RevenueDecision | None:
    """Choose a band from operating-company evidence, or None when there is none.

    Figures more than 5x apart produce a deliberate null. Otherwise the most recent
    year wins, then reported over estimated, then the larger amount.
    """
    usable = [
        item
        for item in evidence
        if item.scope == "operating_company" and item.amount_usd is not None and item.amount_usd > 0
    ]
    if not usable:
        return None

    low = min(usable, key=lambda item: item.amount_usd or 0.0)
    high = max(usable, key=lambda item: item.amount_usd or 0.0)
    if (high.amount_usd or 0.0) / (low.amount_usd or 1.0) > CONFLICT_RATIO:
        return RevenueDecision(
            band=None,
            confidence="low",
            reasoning=(
                f"Conflicting revenue sources differ by more than {CONFLICT_RATIO:g}x: "
                f"{_describe(low)} vs {_describe(high)}"
            ),
            conflict=True,
        )

    ranked = sorted(
        usable,
        key=lambda item: (item.year or 0, not item.is_estimate, item.amount_usd or 0.0),
        reverse=True,
    )
    chosen = ranked[0]
    band = usd_to_revenue_band(chosen.amount_usd)
    if AUTHORITATIVE_SOURCE_RE.search(chosen.source) or not chosen.is_estimate:
        confidence: Confidence = "high"
    else:
        confidence = "medium"
    return RevenueDecision(
        band=band,
        confidence=confidence,
        reasoning=f"Mapped revenue evidence {_describe(chosen)} to {band}",
        evidence=chosen,
    )


def industry_prefix(codes: Sequence[IndustryCode]) -> str | None:
    return codes[0].code[:2] if codes else None


def revenue_per_employee(codes: Sequence[IndustryCode], config: EnrichmentConfig) -> float:
    prefix = industry_prefix(codes)
    if prefix is None:
        return config.default_revenue_per_employee
    return config.revenue_per_employee.get(prefix, config.default_revenue_per_employee)


def estimate_revenue_from_size(
    size_band: str | None, codes: Sequence[IndustryCode], config: EnrichmentConfig
) -> tuple[str, str] | None:
    """Band and reasoning for the size band's lower bound times revenue per employee."""
    employees = size_band_lower_bound(size_band)
    if not employees:
        return None
    per_employee = revenue_per_employee(codes, config)
    band = usd_to_revenue_band(employees * per_employee)
    if band is None:
        return None
    reasoning = (
        f"Estimated from {employees}+ employees at ${per_employee:,.0f} revenue per employee. "
        "This is an estimate (no explicit revenue figure found)."
    )
    return band, reasoning


def estimate_size_from_revenue(
    revenue_usd: float | None, codes: Sequence[IndustryCode], config: EnrichmentConfig
) -> tuple[str, str] | None:
    if not revenue_usd or revenue_usd <= 0:
        return None
    per_employee = revenue_per_employee(codes, config)
    employees = int(revenue_usd / per_employee)
    band = employee_count_to_band(employees)
    reasoning = f"Estimated ~{employees:,} employees from ${revenue_usd:,.0f} revenue at ${per_employee:,.0f} per employee"
    return band, reasoning


def industry_average(codes: Sequence[IndustryCode], config: EnrichmentConfig) -> tuple[str, str]:
    prefix = industry_prefix(codes)
    if prefix is None:
        return config.default_industry_average
    return config.industry_averages.get(prefix, config.default_industry_average)


def sanity_floor(revenue_band: str | None) -> str | None:
    """Minimum size band plausible for a revenue band, or None when any size is plausible."""
    index = revenue_band_index(revenue_band)
    for min_revenue_index, floor in SANITY_FLOORS:
        if index >= min_revenue_index:
            return floor
    return None


def apply_sanity_adjustment(record: EnrichmentRecord) -> EnrichmentRecord:
    """Raise the size band to the minimum its revenue implies; a no-op when already consistent."""
    floor = sanity_floor(record.company_revenue)
    if floor is None:
        return record
    current = size_band_index(record.company_size)
    if current >= size_band_index(floor):
        return record

    reason = f"{record.company_revenue} revenue implies at least {floor}; was {record.company_size or 'unknown'}"
    logger.info(
        "estimation.size_adjusted",
        extra={"domain": record.domain, "from": record.company_size, "to": floor},
    )
    adjustment = SizeAdjustment(original_band=record.company_size, adjusted_band=floor, reason=reason)
    return record.model_copy(
        update={
            "company_size": floor,
            "quality": record.quality.model_copy(
                update={"size": QualityMetric(confidence="medium", reasoning=reason)}
            ),
            "diagnostics": record.diagnostics.model_copy(update={"size_adjustment": adjustment}),
        }
    )


def _with_revenue(record: EnrichmentRecord, band: str | None, confidence: Confidence, reasoning: str) -> EnrichmentRecord:
    return record.model_copy(
        update={
            "company_revenue": band,
            "quality": record.quality.model_copy(
                update={"revenue": QualityMetric(confidence=confidence, reasoning=reasoning)}
            ),
        }
    )


def _with_size(record: EnrichmentRecord, band: str, confidence: Confidence, reasoning: str) -> EnrichmentRecord:
    return record.model_copy(
        update={
            "company_size": band,
            "quality": record.quality.model_copy(
                update={"size": QualityMetric(confidence=confidence, reasoning=reasoning)}
            ),
        }
    )


def reconcile(
    record: EnrichmentRecord,
    evidence: Sequence[RevenueEvidence],
    *,
    config: EnrichmentConfig,
    identity_headcount: str | None = None,
) -> EnrichmentRecord:
    """Fill revenue and size in priority order, then apply the sanity adjustment.

    Revenue: first-pass evidence, then the headcount estimate, then the industry average.
    Size (only when unknown): identity-link headcount, then the revenue estimate, then the
    industry average. Industry averages require at least one industry code.
    """
    codes = record.naics_codes_6_digit
    decision = pick_revenue_band(evidence)
    revenue_usd: float | None = None

    if decision is not None:
        record = _with_revenue(record, decision.band, decision.confidence, decision.reasoning)
        record = record.model_copy(
            update={"diagnostics": record.diagnostics.model_copy(update={"revenue_decision": decision.reasoning})}
        )
        if decision.evidence is not None:
            revenue_usd = decision.evidence.amount_usd

    if record.company_size not in SIZE_BANDS and identity_headcount:
        count = parse_employee_count(identity_headcount)
        if count is not None:
            record = _with_size(
                record,
                employee_count_to_band(count),
                "high",
                f"Employee count {identity_headcount} from LinkedIn company page",
            )

    revenue_open = record.company_revenue is None and not (decision is not None and decision.conflict)
    if revenue_open:
        estimate = estimate_revenue_from_size(record.company_size, codes, config)
        if estimate is not None:
            record = _with_revenue(record, estimate[0], "low", estimate[1])

    if record.company_size not in SIZE_BANDS and record.company_revenue is not None:
        usd = revenue_usd or revenue_band_lower_bound(record.company_revenue)
        estimate = estimate_size_from_revenue(usd, codes, config)
        if estimate is not None:
            record = _with_size(record, estimate[0], "medium", estimate[1])

    if codes:
        size_average, revenue_average = industry_average(codes, config)
        if record.company_size not in SIZE_BANDS:
            record = _with_size(
                record,
                size_average,
                "low",
                f"Industry average for NAICS {codes[0].code[:2]} (no headcount found)",
            )
        if revenue_open and record.company_revenue is None:
            record = _with_revenue(
                record,
                revenue_average,
                "low",
                f"Industry average for NAICS {codes[0].code[:2]} (no revenue figure found)",
            )

    return apply_sanity_adjustment(record)
