"""Second pass: turn scraped pages plus first-pass context into a structured record."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, Literal

from pydantic import ValidationError

from app.clients.llm import LanguageModel, ModelProviderError, TokenUsage
from app.models.countries import UNKNOWN_COUNTRY, normalize_country_code
from app.models.enrichment import (
    REVENUE_BANDS,
    Diagnostics,
    EnrichmentRecord,
    IndustryCode,
    QualityMetric,
    RecordQuality,
)
from app.models.evidence import FirstPassResult
from app.observability.metrics import metrics
from app.services.enrichment.bands import employee_count_to_band, normalize_size_band
from app.services.enrichment.deep_research import max_employee_count
from app.services.enrichment.errors import EnrichmentConfigurationError
from app.services.enrichment.parsing import parse_json_object, salvage_string_fields
from app.services.enrichment.prompts import ANALYSIS_SYSTEM_PROMPT, ANALYSIS_USER_PROMPT

logger = logging.getLogger(__name__)

AnalysisStatus = Literal["parsed", "salvaged", "fallback"]

REVENUE_EVIDENCE_RE: Final = re.compile(
    r"\$|million|billion|thousand|zoominfo|press release|annual report|sec filing|10-k|"
    r"crunchbase|owler|growjo|revenue of",
    re.IGNORECASE,
)
UNSUPPORTED_REVENUE_REASON: Final[str] = "Revenue band selected without explicit evidence - nulled for accuracy"
SMALL_SIZE_BANDS: Final[frozenset[str]] = frozenset(
    {"unknown", "0-1 Employees", "2-10 Employees", "11-50 Employees"}
)
HEADCOUNT_OVERRIDE_MIN: Final[int] = 100
MAX_INDUSTRY_CODES: Final[int] = 3
SALVAGE_FIELDS: Final[tuple[str, ...]] = (
    "business_description",
    "city",
    "state",
    "hq_country",
    "company_revenue",
    "company_size",
    "linkedin_url",
)


@dataclass(frozen=True)
class AnalysisOutcome:
    record: EnrichmentRecord
    status: AnalysisStatus
    raw_text: str
    usage: TokenUsage


def build_context(
    company_name: str,
    domain: str,
    pages: Mapping[str, str],
    first_pass: FirstPassResult | None,
    *,
    page_char_budget: int = 5_000,
) -> str:
    """Render the analysis context: first-pass findings, then each page truncated to the budget."""
    lines = [f"Company: {company_name}", f"Domain: {domain}"]
    if first_pass is not None:
        hq = first_pass.headquarters
        if not hq.is_unknown:
            place = ", ".join(part for part in (hq.city, hq.state, hq.country) if part)
            lines.append(f"HEADQUARTERS found during web search: {place} ({hq.country_code})")
        if first_pass.parent_company:
            lines.append(
                f"PARENT COMPANY: {first_pass.parent_company} (relationship: {first_pass.relationship_type})"
            )
        for item in first_pass.revenue_found:
            flag = "estimate" if item.is_estimate else "reported"
            year = item.year or "year unknown"
            lines.append(f"REVENUE found: {item.amount} ({year}, {item.source}, {flag}, scope={item.scope})")
        for item in first_pass.employee_count_found:
            lines.append(f"EMPLOYEES found: {item.amount} ({item.source})")
    lines.append("")
    lines.append("=== SCRAPED CONTENT ===")
    for url, content in pages.items():
        lines.append(f"--- {url} ---")
        lines.append(content[:page_char_budget])
    return "\n".join(lines)


def _quality_metric(value: Any, default_reason: str) -> QualityMetric:
    if not isinstance(value, Mapping):
        return QualityMetric(confidence="low", reasoning=default_reason)
    confidence = str(value.get("confidence") or "low").lower()
    if confidence not in ("high", "medium", "low"):
        confidence = "low"
    return QualityMetric(confidence=confidence, reasoning=str(value.get("reasoning") or ""))


def _quality(payload: Mapping[str, Any]) -> RecordQuality:
    raw = payload.get("quality")
    raw = raw if isinstance(raw, Mapping) else {}
    return RecordQuality(
        location=_quality_metric(raw.get("location"), "Could not determine location"),
        revenue=_quality_metric(raw.get("revenue"), "Could not determine revenue"),
        size=_quality_metric(raw.get("size"), "Could not determine company size"),
        industry=_quality_metric(raw.get("industry"), "Could not determine industry"),
    )


def parse_industry_codes(value: Any) -> list[IndustryCode]:
    """Keep only 6-digit codes, at most three, first occurrence wins."""
    codes: list[IndustryCode] = []
    seen: set[str] = set()
    items = value if isinstance(value, list) else []
    for item in items:
        if isinstance(item, (str, int)) and not isinstance(item, bool):
            code, description = str(item).strip(), ""
        elif isinstance(item, Mapping):
            code = str(item.get("code") or "").strip()
            description = str(item.get("description") or "")
        else:
            continue
        if not re.fullmatch(r"\d{6}", code) or code in seen:
            continue
        seen.add(code)
        codes.append(IndustryCode(code=code, description=description))
        if len(codes) == MAX_INDUSTRY_CODES:
            break
    return codes


def checked_revenue_band(value: Any, quality: QualityMetric) -> tuple[str | None, QualityMetric]:
    """Null a hallucinated band or a band whose reasoning cites no evidence."""
    if not value:
        return None, quality
    band = str(value).strip()
    if band not in REVENUE_BANDS:
        return None, QualityMetric(
            confidence="low",
            reasoning=f'Invalid revenue band "{band}" returned by analysis - not in valid list',
        )
    if not REVENUE_EVIDENCE_RE.search(quality.reasoning or ""):
        return None, QualityMetric(confidence="low", reasoning=UNSUPPORTED_REVENUE_REASON)
    return band, quality


def reconciled_size(value: Any, first_pass: FirstPassResult | None, quality: QualityMetric) -> tuple[str, QualityMetric]:
    """Normalize the size band; a first-pass headcount above 100 beats a small or unknown band."""
    size = normalize_size_band(str(value) if value is not None else None)
    if first_pass is None or size not in SMALL_SIZE_BANDS:
        return size, quality
    headcount = max_employee_count(first_pass.employee_count_found)
    if headcount is None or headcount <= HEADCOUNT_OVERRIDE_MIN:
        return size, quality
    override = employee_count_to_band(headcount)
    return override, QualityMetric(
        confidence="medium",
        reasoning=f"Second pass returned {size}; web search reported {headcount} employees",
    )


def _text_field(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("unknown", "null", "none", "n/a"):
        return None
    return text


def record_from_payload(
    payload: Mapping[str, Any],
    *,
    domain: str,
    company_name: str,
    first_pass: FirstPassResult | None,
    status: AnalysisStatus,
) -> EnrichmentRecord:
    """Apply post-processing rules to a decoded (or salvaged) analysis payload."""
    quality = _quality(payload)
    revenue, revenue_quality = checked_revenue_band(payload.get("company_revenue"), quality.revenue)
    size, size_quality = reconciled_size(payload.get("company_size"), first_pass, quality.size)

    hq = first_pass.headquarters if first_pass is not None else None
    known_hq = hq if hq is not None and hq.has_city else None
    answered_city = _text_field(payload.get("city"))
    answered_state = _text_field(payload.get("state"))
    answered_country = normalize_country_code(_text_field(payload.get("hq_country")))
    if status != "parsed" and known_hq is not None:
        # salvaged fields are partial; first-pass location wins
        city, state = known_hq.city, known_hq.state
    else:
        city = answered_city or (known_hq.city if known_hq else None)
        state = answered_state or (known_hq.state if known_hq else None)
    first_pass_country = hq.country_code if hq is not None else UNKNOWN_COUNTRY
    if status != "parsed" and first_pass_country != UNKNOWN_COUNTRY:
        country = first_pass_country
    elif answered_country != UNKNOWN_COUNTRY:
        country = answered_country
    else:
        country = first_pass_country

    source_urls = payload.get("source_urls")
    diagnostics = Diagnostics(
        revenue_sources_found=list(first_pass.revenue_found) if first_pass else [],
        employee_sources_found=list(first_pass.employee_count_found) if first_pass else [],
        parse_status={"analysis": status},
    )
    return EnrichmentRecord(
        company_name=company_name,
        website=f"https://{domain}",
        domain=domain,
        linkedin_url=_text_field(payload.get("linkedin_url")),
        description=_text_field(payload.get("business_description")) or "unknown",
        company_size=size,
        company_revenue=revenue,
        naics_codes_6_digit=parse_industry_codes(payload.get("naics_codes_6_digit")),
        city=city,
        state=state,
        hq_country=country,
        is_us_hq=payload.get("is_us_hq") is True,
        is_us_subsidiary=payload.get("is_us_subsidiary") is True,
        source_urls=[str(url) for url in source_urls if url] if isinstance(source_urls, list) else [],
        quality=quality.model_copy(update={"revenue": revenue_quality, "size": size_quality}),
        diagnostics=diagnostics,
    )


def fallback_record(domain: str, company_name: str, first_pass: FirstPassResult | None) -> EnrichmentRecord:
    """All-unknown, low-confidence record; keeps the first-pass headquarters when it is usable."""
    reason = "Could not parse structured response"
    unknown = QualityMetric(confidence="low", reasoning=reason)
    hq = first_pass.headquarters if first_pass is not None else None
    usable_hq = hq if hq is not None and hq.has_city else None
    return EnrichmentRecord(
        company_name=company_name,
        website=f"https://{domain}",
        domain=domain,
        description="unknown",
        company_size="unknown",
        city=usable_hq.city if usable_hq else None,
        state=usable_hq.state if usable_hq else None,
        hq_country=hq.country_code if hq is not None else UNKNOWN_COUNTRY,
        quality=RecordQuality(location=unknown, revenue=unknown, size=unknown, industry=unknown),
        diagnostics=Diagnostics(
            revenue_sources_found=list(first_pass.revenue_found) if first_pass else [],
            employee_sources_found=list(first_pass.employee_count_found) if first_pass else [],
            parse_status={"analysis": "fallback"},
        ),
    )


class ContentAnalyzer:
    """Runs the analysis model over scraped pages and post-processes its answer."""

    def __init__(self, model: LanguageModel, *, page_char_budget: int = 5_000) -> None:
        self._model = model
        self._page_char_budget = page_char_budget

    async def analyze(
        self,
        domain: str,
        company_name: str,
        pages: Mapping[str, str],
        first_pass: FirstPassResult | None = None,
    ) -> AnalysisOutcome:
        if not pages:
            logger.warning("analysis.no_pages", extra={"domain": domain})
        context = build_context(
            company_name, domain, pages, first_pass, page_char_budget=self._page_char_budget
        )
        prompt = ANALYSIS_USER_PROMPT.format(company_name=company_name, domain=domain, context=context)
        try:
            completion = await self._model.complete(system_prompt=ANALYSIS_SYSTEM_PROMPT, user_prompt=prompt)
        except ModelProviderError as exc:
            if exc.is_configuration_error:
                raise EnrichmentConfigurationError(str(exc)) from exc
            logger.warning("analysis.model_failed", extra={"domain": domain, "code": exc.code})
            metrics.increment("analysis.fallback", tags={"status": "fallback", "reason": exc.code})
            return AnalysisOutcome(
                record=fallback_record(domain, company_name, first_pass),
                status="fallback",
                raw_text="",
                usage=TokenUsage(),
            )

        try:
            payload = parse_json_object(completion.text)
            status: AnalysisStatus = "parsed"
        except ValueError:
            payload = salvage_string_fields(completion.text, SALVAGE_FIELDS)
            status = "salvaged" if payload else "fallback"

        record: EnrichmentRecord | None = None
        if payload:
            try:
                record = record_from_payload(
                    payload,
                    domain=domain,
                    company_name=company_name,
                    first_pass=first_pass,
                    status=status,
                )
            except ValidationError as exc:
                logger.warning(
                    "analysis.record_invalid",
                    extra={"domain": domain, "errors": exc.error_count()},
                )
                status = "fallback"
        else:
            status = "fallback"

        if record is None:
            record = fallback_record(domain, company_name, first_pass)
        if status != "parsed":
            metrics.increment("analysis.fallback", tags={"status": status})
            logger.warning("analysis.parse_degraded", extra={"domain": domain, "status": status})
        return AnalysisOutcome(record=record, status=status, raw_text=completion.text, usage=completion.usage)
