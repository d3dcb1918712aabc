"""Locate the company's LinkedIn page and cross-check it against what we already know."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final, Literal, Protocol

from app.clients.firecrawl import FirecrawlError, SearchResponse
from app.models.countries import detect_country
from app.models.evidence import FirstPassResult, LinkCandidate
from app.services.enrichment.bands import employee_text_to_band, size_band_index
from app.services.enrichment.scraping import PageFetcher

logger = logging.getLogger(__name__)

LINKEDIN_COMPANY_RE: Final = re.compile(
    r"https?://(?:[a-z]{2,3}\.|www\.)?linkedin\.com/company/([a-zA-Z0-9_\-'%]+)/?",
    re.IGNORECASE,
)
EXCLUDED_SLUGS: Final[frozenset[str]] = frozenset({"crunchbase", "zoominfo", "linkedin", "glassdoor", "indeed"})

_WEBSITE_RE: Final = re.compile(r"Website[:\s]*\n?\s*(https?://[^\s\n)\]]+|www\.[^\s\n)\]]+)", re.IGNORECASE)
_PROFILE_EMPLOYEES_RE: Final = re.compile(r"(\d[\d,]*\s*[-–]\s*\d[\d,]*|\d[\d,]*\+?)\s*employees", re.IGNORECASE)
_HEADQUARTERS_RE: Final = re.compile(r"Headquarters[:\s]*\n?\s*([^\n]+)", re.IGNORECASE)
_FOLLOWERS_RE: Final = re.compile(r"(\d+(?:\.\d+)?)\s*([KkMm])?\+?\s*followers", re.IGNORECASE)

LinkSource = Literal["company_site", "first_pass_candidate", "first_pass_urls", "linkedin_search"]


class WebSearcher(Protocol):
    async def search(self, query: str, *, limit: int = 5) -> SearchResponse:
        ...


def canonical_linkedin_url(slug: str) -> str:
    return f"https://www.linkedin.com/company/{slug}"


def extract_company_links(text: str) -> list[str]:
    """Company-page URLs in text, excluding aggregator/platform slugs, in order of appearance."""
    links: list[str] = []
    for match in LINKEDIN_COMPANY_RE.finditer(text or ""):
        slug = match.group(1)
        if slug.lower() in EXCLUDED_SLUGS:
            continue
        url = canonical_linkedin_url(slug)
        if url not in links:
            links.append(url)
    return links


def linkedin_slug(url: str) -> str | None:
    match = LINKEDIN_COMPANY_RE.search(url if url.startswith("http") else f"https://{url}")
    return match.group(1).lower() if match else None


def find_site_link(domain: str, pages: Mapping[str, str]) -> str | None:
    bare = domain.lower().removeprefix("www.")
    for url, content in pages.items():
        if bare not in url.lower():
            continue
        links = extract_company_links(content)
        if links:
            return links[0]
    return None


@dataclass(frozen=True)
class LinkedInProfile:
    website: str | None = None
    employees: str | None = None
    location: str | None = None


def parse_linkedin_profile(text: str) -> LinkedInProfile:
    website = _WEBSITE_RE.search(text)
    employees = _PROFILE_EMPLOYEES_RE.search(text)
    location = _HEADQUARTERS_RE.search(text)
    return LinkedInProfile(
        website=website.group(1).lower() if website else None,
        employees=employees.group(1).replace(" ", "") if employees else None,
        location=location.group(1).strip() if location else None,
    )


def _host(url: str) -> str:
    cleaned = re.sub(r"^(https?://)?(www\.)?", "", url.strip().lower())
    return cleaned.split("/")[0]


def websites_overlap(stated: str, domain: str) -> bool:
    stated_host = _host(stated)
    expected = _host(domain)
    if not stated_host or not expected:
        return True
    return expected in stated_host or stated_host in expected


def validate_profile(
    profile: LinkedInProfile,
    *,
    domain: str,
    expected_size_band: str | None,
    expected_country: str | None,
) -> str | None:
    """Return a rejection reason, or None when the profile is consistent with the company."""
    issues: list[str] = []
    if profile.website and not websites_overlap(profile.website, domain):
        issues.append(f"website mismatch: page lists {profile.website}, expected {domain}")
    if profile.employees and expected_size_band:
        stated_band = employee_text_to_band(profile.employees)
        expected_index = size_band_index(expected_size_band)
        if stated_band and expected_index >= 0 and size_band_index(stated_band) < expected_index - 1:
            issues.append(f"headcount mismatch: page shows {profile.employees}, expected {expected_size_band}")
    if profile.location and expected_country and expected_country != "unknown":
        stated_country = detect_country(profile.location)
        if stated_country and stated_country != expected_country:
            issues.append(f"location mismatch: page shows {profile.location}, expected {expected_country}")
    return "; ".join(issues) or None


def find_headcount(pages: Mapping[str, str]) -> str | None:
    """First ``N employees`` phrase across scraped pages."""
    for content in pages.values():
        match = _PROFILE_EMPLOYEES_RE.search(content)
        if match:
            return match.group(1).replace(" ", "")
    return None


def follower_count(text: str) -> float:
    match = _FOLLOWERS_RE.search(text or "")
    if not match:
        return 0.0
    multiplier = {"k": 1_000, "m": 1_000_000}.get((match.group(2) or "").lower(), 1)
    return float(match.group(1)) * multiplier


@dataclass(frozen=True)
class LinkedInSearchResult:
    candidates: list[LinkCandidate] = field(default_factory=list)
    credits_used: int = 0


class LinkedInSearcher:
    """Find LinkedIn company pages via web search, ranked by follower count."""

    def __init__(self, searcher: WebSearcher | None) -> None:
        self._searcher = searcher

    async def search(self, company_name: str) -> LinkedInSearchResult:
        if self._searcher is None or not company_name:
            return LinkedInSearchResult()
        credits = 0
        for query in (f'"{company_name}" site:linkedin.com/company', f"{company_name} LinkedIn company page"):
            try:
                response = await self._searcher.search(query, limit=5)
            except FirecrawlError as exc:
                logger.warning("linkedin_search.failed", extra={"query": query, "code": exc.code})
                continue
            credits += response.credits_used
            ranked: list[tuple[float, str]] = []
            for hit in response.hits:
                url = hit.url
                if "linkedin.com/company/" not in url or "/posts" in url or "/jobs" in url:
                    continue
                slug = linkedin_slug(url)
                if not slug or slug in EXCLUDED_SLUGS:
                    continue
                ranked.append((follower_count(f"{hit.title} {hit.description}"), canonical_linkedin_url(slug)))
            if ranked:
                ranked.sort(key=lambda pair: pair[0], reverse=True)
                candidates = [LinkCandidate(url=url, confidence="medium") for _, url in ranked]
                return LinkedInSearchResult(candidates=candidates, credits_used=credits)
        return LinkedInSearchResult(credits_used=credits)


@dataclass(frozen=True)
class IdentityLinkDecision:
    url: str | None
    source: LinkSource | None
    validated: bool
    rejected: list[tuple[str, str]] = field(default_factory=list)
    headcount: str | None = None
    credits_used: int = 0
    pages: dict[str, str] = field(default_factory=dict)


class IdentityLinkResolver:
    """Choose a LinkedIn URL by source priority and validate non-authoritative candidates."""

    def __init__(self, fetcher: PageFetcher | None) -> None:
        self._fetcher = fetcher

    async def resolve(
        self,
        domain: str,
        pages: Mapping[str, str],
        first_pass: FirstPassResult,
        *,
        expected_size_band: str | None = None,
        searched: Sequence[LinkCandidate] = (),
    ) -> IdentityLinkDecision:
        known_pages = dict(pages)
        credits = 0

        if not known_pages and self._fetcher is not None:
            root = f"https://{domain}"
            try:
                page = await self._fetcher.scrape(root)
                credits += page.credits_used
                if page.content.strip():
                    known_pages[root] = page.content
            except FirecrawlError as exc:
                logger.warning("identity_link.root_scrape_failed", extra={"domain": domain, "code": exc.code})

        site_link = find_site_link(domain, known_pages)
        if site_link:
            return IdentityLinkDecision(
                url=site_link,
                source="company_site",
                validated=False,
                headcount=find_headcount(known_pages),
                credits_used=credits,
                pages=known_pages,
            )

        candidates: list[tuple[str, LinkSource]] = []
        for candidate in first_pass.linkedin_url_candidates:
            slug = linkedin_slug(candidate.url)
            if slug and slug not in EXCLUDED_SLUGS:
                candidates.append((canonical_linkedin_url(slug), "first_pass_candidate"))
        for candidate in searched:
            slug = linkedin_slug(candidate.url)
            if slug and slug not in EXCLUDED_SLUGS:
                candidates.append((canonical_linkedin_url(slug), "linkedin_search"))
        for url in first_pass.urls_to_crawl:
            slug = linkedin_slug(url)
            if slug and slug not in EXCLUDED_SLUGS:
                candidates.append((canonical_linkedin_url(slug), "first_pass_urls"))

        rejected: list[tuple[str, str]] = []
        tried: set[str] = set()
        for url, source in candidates:
            if url in tried:
                continue
            tried.add(url)
            content, fetched_credits = await self._profile_content(url, known_pages)
            credits += fetched_credits
            if content is None:
                logger.info("identity_link.unverifiable", extra={"url": url, "source": source})
                return IdentityLinkDecision(
                    url=url,
                    source=source,
                    validated=False,
                    rejected=rejected,
                    headcount=find_headcount(known_pages),
                    credits_used=credits,
                    pages=known_pages,
                )
            profile = parse_linkedin_profile(content)
            reason = validate_profile(
                profile,
                domain=domain,
                expected_size_band=expected_size_band,
                expected_country=first_pass.headquarters.country_code,
            )
            if reason:
                logger.info("identity_link.rejected", extra={"url": url, "reason": reason})
                rejected.append((url, reason))
                continue
            return IdentityLinkDecision(
                url=url,
                source=source,
                validated=True,
                rejected=rejected,
                headcount=profile.employees or find_headcount(known_pages),
                credits_used=credits,
                pages=known_pages,
            )

        return IdentityLinkDecision(
            url=None,
            source=None,
            validated=False,
            rejected=rejected,
            headcount=find_headcount(known_pages),
            credits_used=credits,
            pages=known_pages,
        )

    async def _profile_content(self, url: str, pages: Mapping[str, str]) -> tuple[str | None, int]:
        slug = linkedin_slug(url)
        for page_url, content in pages.items():
            if slug and linkedin_slug(page_url) == slug:
                return content, 0
        if self._fetcher is None:
            return None, 0
        try:
            page = await self._fetcher.scrape(url)
        except FirecrawlError as exc:
            logger.info("identity_link.fetch_failed", extra={"url": url, "code": exc.code})
            return None, 0
        return (page.content or None), page.credits_used
