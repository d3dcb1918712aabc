"""Classify candidate URLs and choose which ones are worth a scrape credit."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Final
from urllib.parse import urlparse

from app.models.evidence import FirstPassResult
from app.services.enrichment.bands import parse_employee_count

AGGREGATOR_HOSTS: Final[tuple[str, ...]] = ("zoominfo", "crunchbase", "owler", "growjo", "cbinsights")


class UrlTier(IntEnum):
    ESSENTIAL = 1
    SUPPLEMENTAL = 2
    EXCLUDED = 3


@dataclass(frozen=True)
class UrlSelection:
    selected: list[str]
    essential: list[str]
    supplemental: list[str]
    excluded: list[str]
    has_revenue: bool
    has_employees: bool

    @property
    def supplemental_budget(self) -> int:
        return supplemental_budget(self.has_revenue, self.has_employees)


def supplemental_budget(has_revenue: bool, has_employees: bool) -> int:
    missing = int(not has_revenue) + int(not has_employees)
    return (0, 2, 4)[missing]


def normalize_url(url: str) -> str:
    cleaned = url.strip()
    if not cleaned.startswith(("http://", "https://")):
        cleaned = f"https://{cleaned}"
    parsed = urlparse(cleaned)
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{parsed.scheme}://{parsed.netloc.lower()}{path}{query}"


def is_own_site(url: str, domain: str) -> bool:
    """True for the company domain and its subdomains."""
    host = urlparse(normalize_url(url)).netloc.removeprefix("www.")
    bare = domain.lower().removeprefix("www.")
    return host == bare or host.endswith(f".{bare}")


def classify_url(url: str, domain: str) -> UrlTier:
    lowered = url.lower()
    if is_own_site(url, domain) or "linkedin.com/company" in lowered:
        return UrlTier.ESSENTIAL
    host = urlparse(normalize_url(url)).netloc
    if any(name in host for name in AGGREGATOR_HOSTS):
        return UrlTier.SUPPLEMENTAL
    return UrlTier.EXCLUDED


def has_revenue_evidence(first_pass: FirstPassResult) -> bool:
    return bool(first_pass.operating_revenue)


def has_employee_evidence(first_pass: FirstPassResult) -> bool:
    for item in first_pass.employee_count_found:
        lowered = item.amount.lower()
        if "not found" in lowered or "unknown" in lowered:
            continue
        if parse_employee_count(item.amount) is not None:
            return True
    return False


def select_urls(urls: list[str], domain: str, first_pass: FirstPassResult) -> UrlSelection:
    """Tier-1 always; Tier-2 capped at 0, 2 or 4 by how much evidence is missing; Tier-3 never.

    The company root page is added when no candidate points at the company's own site.
    """
    essential: list[str] = []
    supplemental: list[str] = []
    excluded: list[str] = []
    seen: set[str] = set()
    for raw in urls:
        if not raw or not raw.strip():
            continue
        url = normalize_url(raw)
        if url in seen:
            continue
        seen.add(url)
        tier = classify_url(url, domain)
        if tier is UrlTier.ESSENTIAL:
            essential.append(url)
        elif tier is UrlTier.SUPPLEMENTAL:
            supplemental.append(url)
        else:
            excluded.append(url)

    root = normalize_url(domain)
    if all("linkedin.com" in url for url in essential):
        essential.insert(0, root)

    has_revenue = has_revenue_evidence(first_pass)
    has_employees = has_employee_evidence(first_pass)
    budget = supplemental_budget(has_revenue, has_employees)
    return UrlSelection(
        selected=[*essential, *supplemental[:budget]],
        essential=essential,
        supplemental=supplemental,
        excluded=excluded,
        has_revenue=has_revenue,
        has_employees=has_employees,
    )
