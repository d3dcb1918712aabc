"""Boundary parsers that turn loosely-structured model text into typed evidence."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from app.models.countries import normalize_country_code
from app.models.evidence import (
    CanonicalWebsite,
    EmployeeEvidence,
    FirstPassResult,
    Headquarters,
    LinkCandidate,
    RevenueEvidence,
)
from app.services.enrichment.bands import parse_revenue_amount_to_usd

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_CITATION_AFTER_BRACE_RE = re.compile(r"}\s*\[\d+\]")
_CITATION_AFTER_QUOTE_RE = re.compile(r'"\s*\[\d+\]')
_CITATION_RE = re.compile(r"\[\d+\]")

_SCOPES = {"operating_company", "ultimate_parent"}
_SOURCE_TYPES = {
    "filing",
    "investor_relations",
    "company_site",
    "media",
    "estimate_site",
    "directory",
    "unknown",
}
_RELATIONSHIPS = {"standalone", "subsidiary", "division", "brand", "unknown"}
_CONFIDENCE = {"high", "medium", "low"}


@dataclass(frozen=True)
class ParseSuccess(Generic[_T]):
    value: _T
    raw: str


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    raw: str


ParseResult = ParseSuccess[_T] | ParseFailure


def strip_citations(text: str) -> str:
    """Remove ``[1]``-style citation markers the search model appends to values."""
    cleaned = _CITATION_AFTER_BRACE_RE.sub("}", text)
    cleaned = _CITATION_AFTER_QUOTE_RE.sub('"', cleaned)
    return _CITATION_RE.sub("", cleaned)


def parse_json_object(raw_text: str) -> dict[str, Any]:
    """Best-effort JSON decoding that tolerates code fences, citations or prose."""
    candidate = strip_citations(raw_text or "").strip()
    if candidate.startswith("```"):
        candidate = "\n".join(line for line in candidate.splitlines() if not line.strip().startswith("```")).strip()
    if candidate.startswith("{") and candidate.endswith("}"):
        payload = json.loads(candidate)
    else:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("Response did not contain JSON object.")
        payload = json.loads(candidate[start : end + 1])
    if not isinstance(payload, dict):
        raise ValueError("Response JSON was not an object.")
    return payload


def salvage_string_fields(raw_text: str, fields: Sequence[str]) -> dict[str, str]:
    """Pull ``"field": "value"`` pairs out of text that failed to parse as JSON."""
    salvaged: dict[str, str] = {}
    for field in fields:
        match = re.search(rf'"{re.escape(field)}"\s*:\s*"((?:[^"\\]|\\.)*)"', raw_text or "")
        if match:
            value = match.group(1).strip()
            if value:
                salvaged[field] = value
    return salvaged


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        cleaned = _CITATION_RE.sub("", value).strip()
        return cleaned or None
    return str(value)


def _choice(value: Any, allowed: set[str], default: str) -> str:
    text = (_text(value) or "").lower().replace(" ", "_").replace("-", "_")
    return text if text in allowed else default


def _year(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = re.search(r"(19|20)\d{2}", str(value or ""))
    return int(match.group(0)) if match else None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("true", "yes", "1")


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def parse_revenue_item(item: Any) -> RevenueEvidence | None:
    """Build a RevenueEvidence from one loosely-typed model entry; None when unusable."""
    if isinstance(item, str):
        item = {"amount": item}
    if not isinstance(item, Mapping):
        return None
    amount = _text(item.get("amount"))
    if not amount or amount.lower() in ("null", "none", "unknown", "not found", "n/a"):
        return None
    amount_usd: float | None = None
    raw_usd = item.get("amount_usd")
    if isinstance(raw_usd, (int, float)) and not isinstance(raw_usd, bool) and raw_usd > 0:
        amount_usd = float(raw_usd)
    else:
        amount_usd = parse_revenue_amount_to_usd(amount)
    try:
        return RevenueEvidence(
            amount=amount,
            amount_usd=amount_usd,
            source=_text(item.get("source")) or "unknown",
            year=_year(item.get("year")),
            is_estimate=_as_bool(item.get("is_estimate")),
            scope=_choice(item.get("scope"), _SCOPES, "operating_company"),
            source_type=_choice(item.get("source_type"), _SOURCE_TYPES, "unknown"),
            evidence_url=_text(item.get("evidence_url")),
            evidence_excerpt=_text(item.get("evidence_excerpt")),
        )
    except ValidationError:
        logger.debug("parsing.revenue_item_rejected", extra={"amount": amount})
        return None


def parse_employee_item(item: Any) -> EmployeeEvidence | None:
    if isinstance(item, (str, int)) and not isinstance(item, bool):
        item = {"amount": item}
    if not isinstance(item, Mapping):
        return None
    amount = _text(item.get("amount") if "amount" in item else item.get("count"))
    if not amount or not re.search(r"\d", amount):
        return None
    lowered = amount.lower()
    if "not found" in lowered or "unknown" in lowered:
        return None
    return EmployeeEvidence(
        amount=amount,
        source=_text(item.get("source")) or "unknown",
        scope=_choice(item.get("scope"), _SCOPES, "operating_company"),
        source_type=_choice(item.get("source_type"), _SOURCE_TYPES, "unknown"),
    )


def parse_headquarters(value: Any) -> Headquarters:
    if not isinstance(value, Mapping):
        return Headquarters()
    country = _text(value.get("country"))
    code = _text(value.get("country_code")) or country
    return Headquarters(
        city=_text(value.get("city")),
        state=_text(value.get("state")),
        country=country,
        country_code=normalize_country_code(code),
    )


def _parse_link_candidates(value: Any) -> list[LinkCandidate]:
    candidates: list[LinkCandidate] = []
    for item in _as_list(value):
        if isinstance(item, str):
            url, confidence = item, "medium"
        elif isinstance(item, Mapping):
            url = _text(item.get("url")) or ""
            confidence = _choice(item.get("confidence"), _CONFIDENCE, "medium")
        else:
            continue
        if url:
            candidates.append(LinkCandidate(url=url.strip(), confidence=confidence))
    rank = {"high": 0, "medium": 1, "low": 2}
    return sorted(candidates, key=lambda candidate: rank[candidate.confidence])


def _parse_canonical_website(value: Any) -> CanonicalWebsite | None:
    if isinstance(value, str) and value.strip():
        return CanonicalWebsite(url=value.strip())
    if isinstance(value, Mapping) and _text(value.get("url")):
        return CanonicalWebsite(
            url=_text(value.get("url")) or "",
            confidence=_choice(value.get("confidence"), _CONFIDENCE, "low"),
            reasoning=_text(value.get("reasoning")) or "",
        )
    return None


def first_pass_from_payload(payload: Mapping[str, Any], *, domain: str) -> FirstPassResult:
    """Coerce a decoded first-pass JSON object into a FirstPassResult."""
    revenue = [item for item in map(parse_revenue_item, _as_list(payload.get("revenue_found"))) if item]
    employees = [
        item for item in map(parse_employee_item, _as_list(payload.get("employee_count_found"))) if item
    ]
    urls = [url.strip() for url in _as_list(payload.get("urls_to_crawl")) if isinstance(url, str) and url.strip()]
    return FirstPassResult(
        company_name=_text(payload.get("company_name")) or company_name_from_domain(domain),
        parent_company=_text(payload.get("parent_company")),
        entity_scope=_choice(payload.get("entity_scope"), _SCOPES, "operating_company"),
        relationship_type=_choice(payload.get("relationship_type"), _RELATIONSHIPS, "unknown"),
        headquarters=parse_headquarters(payload.get("headquarters")),
        urls_to_crawl=urls,
        revenue_found=revenue,
        employee_count_found=employees,
        linkedin_url_candidates=_parse_link_candidates(payload.get("linkedin_url_candidates")),
        canonical_website=_parse_canonical_website(payload.get("canonical_website")),
        is_public_company=_as_bool(payload.get("is_public_company")),
        search_queries=[str(query) for query in _as_list(payload.get("search_queries")) if query],
    )


def parse_first_pass(raw_text: str, *, domain: str) -> ParseResult[FirstPassResult]:
    """Parse first-pass output; failures come back as ParseFailure, never raised."""
    if not raw_text or not raw_text.strip():
        return ParseFailure(reason="empty response", raw=raw_text or "")
    try:
        payload = parse_json_object(raw_text)
    except ValueError as exc:
        return ParseFailure(reason=f"invalid JSON: {exc}", raw=raw_text)
    try:
        return ParseSuccess(value=first_pass_from_payload(payload, domain=domain), raw=raw_text)
    except ValidationError as exc:
        return ParseFailure(reason=f"schema mismatch: {exc.error_count()} errors", raw=raw_text)


def company_name_from_domain(domain: str) -> str:
    """``acme-foods.com`` -> ``acme-foods``; the deterministic fallback company name."""
    host = domain.lower().removeprefix("www.")
    return host.split(".")[0] if "." in host else host
