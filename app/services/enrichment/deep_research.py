"""Outlier detection on first-pass evidence and the targeted deep-research round."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from app.clients.llm import LanguageModel, ModelProviderError, TokenUsage
from app.models.countries import normalize_country_code
from app.models.evidence import (
    Confidence,
    EmployeeEvidence,
    FirstPassResult,
    Headquarters,
    RevenueEvidence,
)
from app.observability.metrics import metrics
from app.services.enrichment.bands import parse_employee_count, parse_revenue_amount_to_usd
from app.services.enrichment.parsing import parse_json_object
from app.services.enrichment.prompts import (
    EMPLOYEE_RESEARCH_PROMPT,
    LOCATION_RESEARCH_PROMPT,
    REVENUE_RESEARCH_PROMPT,
    SEARCH_SYSTEM_PROMPT,
)

logger = logging.getLogger(__name__)

CONFLICT_RATIO = 5.0


@dataclass(frozen=True)
class OutlierReport:
    missing_revenue: bool = False
    missing_employees: bool = False
    missing_location: bool = False
    source_conflict: bool = False
    revenue_size_mismatch: bool = False
    is_public_company: bool = False

    @property
    def reasons(self) -> list[str]:
        flags = (
            ("revenue_size_mismatch", self.revenue_size_mismatch),
            ("missing_revenue", self.missing_revenue),
            ("missing_employees", self.missing_employees),
            ("missing_location", self.missing_location),
            ("source_conflict", self.source_conflict),
            ("public_company", self.is_public_company),
        )
        return [name for name, raised in flags if raised]

    @property
    def should_research(self) -> bool:
        return bool(self.reasons)


def revenue_conflict(amounts: list[float]) -> bool:
    """True when positive amounts disagree by more than the conflict ratio."""
    positive = [amount for amount in amounts if amount > 0]
    if len(positive) < 2:
        return False
    return max(positive) / min(positive) > CONFLICT_RATIO


def max_employee_count(evidence: list[EmployeeEvidence]) -> int | None:
    counts = [count for count in (parse_employee_count(item.amount) for item in evidence) if count]
    return max(counts) if counts else None


def detect_outliers(first_pass: FirstPassResult) -> OutlierReport:
    operating = first_pass.operating_revenue
    amounts = [item.amount_usd for item in operating if item.amount_usd]
    employees = max_employee_count(first_pass.employee_count_found)
    max_revenue = max(amounts) if amounts else 0.0
    mismatch = False
    if employees:
        mismatch = (max_revenue > 100_000_000 and employees < 50) or (
            max_revenue > 1_000_000_000 and employees < 500
        )
    return OutlierReport(
        missing_revenue=not amounts,
        missing_employees=employees is None,
        missing_location=first_pass.headquarters.country_code == "unknown",
        source_conflict=revenue_conflict(amounts),
        revenue_size_mismatch=mismatch,
        is_public_company=first_pass.is_public_company,
    )


@dataclass(frozen=True)
class RevenueFinding:
    amount: str
    amount_usd: float
    source: str
    year: int | None
    confidence: Confidence


@dataclass(frozen=True)
class EmployeeFinding:
    count: int
    source: str
    confidence: Confidence


@dataclass(frozen=True)
class LocationFinding:
    city: str | None
    state: str | None
    country: str | None
    country_code: str
    is_us_hq: bool = False
    is_us_subsidiary: bool = False


@dataclass(frozen=True)
class DeepResearchOutcome:
    triggered: bool
    forced: bool = False
    reasons: list[str] = field(default_factory=list)
    revenue: RevenueFinding | None = None
    employees: EmployeeFinding | None = None
    location: LocationFinding | None = None
    usage: TokenUsage = TokenUsage()
    raw: dict[str, str] = field(default_factory=dict)


def _confidence(value: Any) -> Confidence:
    text = str(value or "").lower()
    return text if text in ("high", "medium", "low") else "low"  # type: ignore[return-value]


def _revenue_finding(payload: dict[str, Any]) -> RevenueFinding | None:
    amount = payload.get("revenue")
    if not amount:
        return None
    usd = parse_revenue_amount_to_usd(str(amount))
    if usd is None:
        return None
    year_text = str(payload.get("year") or "")
    return RevenueFinding(
        amount=str(amount),
        amount_usd=usd,
        source=str(payload.get("source") or "unknown"),
        year=int(year_text) if year_text.isdigit() else None,
        confidence=_confidence(payload.get("confidence")),
    )


def _employee_finding(payload: dict[str, Any]) -> EmployeeFinding | None:
    raw = payload.get("employees")
    if raw is None or isinstance(raw, bool):
        return None
    count = parse_employee_count(raw if isinstance(raw, int) else str(raw))
    if not count:
        return None
    return EmployeeFinding(
        count=count,
        source=str(payload.get("source") or "unknown"),
        confidence=_confidence(payload.get("confidence")),
    )


def _location_finding(payload: dict[str, Any]) -> LocationFinding | None:
    city = payload.get("city")
    country = payload.get("country")
    code = normalize_country_code(payload.get("country_code") or country)
    if not city and code == "unknown":
        return None
    return LocationFinding(
        city=str(city) if city else None,
        state=str(payload["state"]) if payload.get("state") else None,
        country=str(country) if country else None,
        country_code=code,
        is_us_hq=bool(payload.get("is_us_hq")),
        is_us_subsidiary=bool(payload.get("is_us_subsidiary")),
    )


class DeepResearchRunner:
    """Issues the revenue/employee/location queries concurrently and collects what settles."""

    def __init__(self, model: LanguageModel) -> None:
        self._model = model

    async def run(
        self,
        domain: str,
        company_name: str,
        first_pass: FirstPassResult,
        *,
        force: bool = False,
    ) -> DeepResearchOutcome:
        report = detect_outliers(first_pass)
        if not (force or report.should_research):
            return DeepResearchOutcome(triggered=False, reasons=[])

        reasons = report.reasons or ["forced"]
        metrics.increment("deep_research.triggered", tags={"forced": str(force).lower()})
        logger.info("deep_research.triggered", extra={"domain": domain, "reasons": reasons})

        queries: dict[str, tuple[str, Callable[[dict[str, Any]], Any]]] = {}
        needs_revenue = report.missing_revenue or report.source_conflict or report.revenue_size_mismatch
        if force or needs_revenue or report.is_public_company:
            queries["revenue"] = (REVENUE_RESEARCH_PROMPT, _revenue_finding)
        if force or report.missing_employees or report.revenue_size_mismatch or report.is_public_company:
            queries["employees"] = (EMPLOYEE_RESEARCH_PROMPT, _employee_finding)
        if force or report.missing_location:
            queries["location"] = (LOCATION_RESEARCH_PROMPT, _location_finding)

        names = list(queries)
        settled = await asyncio.gather(
            *(self._query(domain, company_name, name, *queries[name]) for name in names),
            return_exceptions=True,
        )

        findings: dict[str, Any] = {}
        raw: dict[str, str] = {}
        usage = TokenUsage()
        for name, outcome in zip(names, settled):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "deep_research.query_failed",
                    extra={"domain": domain, "query": name, "error": type(outcome).__name__},
                )
                continue
            finding, text, query_usage = outcome
            findings[name] = finding
            raw[name] = text
            usage = usage + query_usage

        return DeepResearchOutcome(
            triggered=True,
            forced=force,
            reasons=reasons,
            revenue=findings.get("revenue"),
            employees=findings.get("employees"),
            location=findings.get("location"),
            usage=usage,
            raw=raw,
        )

    async def _query(
        self,
        domain: str,
        company_name: str,
        name: str,
        template: str,
        convert: Callable[[dict[str, Any]], Any],
    ) -> tuple[Any, str, TokenUsage]:
        prompt = template.format(company_name=company_name, domain=domain)
        try:
            completion = await self._model.complete(system_prompt=SEARCH_SYSTEM_PROMPT, user_prompt=prompt)
        except ModelProviderError as exc:
            logger.warning("deep_research.model_failed", extra={"query": name, "code": exc.code})
            return None, "", TokenUsage()
        try:
            payload = parse_json_object(completion.text)
        except ValueError:
            logger.info("deep_research.unparseable", extra={"query": name, "domain": domain})
            return None, completion.text, completion.usage
        return convert(payload), completion.text, completion.usage


def merge_deep_research(first_pass: FirstPassResult, outcome: DeepResearchOutcome) -> FirstPassResult:
    """Fold findings into the evidence: revenue/employees are prepended, location only fills a blank HQ."""
    if not outcome.triggered:
        return first_pass
    update: dict[str, Any] = {}
    if outcome.revenue:
        finding = outcome.revenue
        evidence = RevenueEvidence(
            amount=finding.amount,
            amount_usd=finding.amount_usd,
            source=f"Deep Research: {finding.source}",
            year=finding.year,
            is_estimate=finding.confidence != "high",
            scope="operating_company",
        )
        update["revenue_found"] = [evidence, *first_pass.revenue_found]
    if outcome.employees:
        finding = outcome.employees
        evidence = EmployeeEvidence(amount=str(finding.count), source=f"Deep Research: {finding.source}")
        update["employee_count_found"] = [evidence, *first_pass.employee_count_found]
    if outcome.location and first_pass.headquarters.is_unknown:
        location = outcome.location
        update["headquarters"] = Headquarters(
            city=location.city,
            state=location.state,
            country=location.country,
            country_code=location.country_code,
        )
    return first_pass.model_copy(update=update) if update else first_pass
