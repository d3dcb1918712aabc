"""Resolve a submitted (often email) domain to the company's actual website."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Final, Literal
from urllib.parse import urlparse

from app.clients.firecrawl import FirecrawlError
from app.models.enrichment import DomainVerification
from app.models.evidence import FirstPassResult
from app.services.enrichment.identity_links import WebSearcher

logger = logging.getLogger(__name__)

ResolutionMethod = Literal["search", "direct", "failed"]

BLACKLISTED_HOSTS: Final[frozenset[str]] = frozenset(
    {
        # social
        "linkedin.com", "facebook.com", "twitter.com", "x.com", "instagram.com", "youtube.com",
        "pinterest.com", "tiktok.com", "reddit.com", "threads.net",
        # news
        "wikipedia.org", "bloomberg.com", "reuters.com", "forbes.com", "wsj.com", "nytimes.com",
        "cnbc.com", "bbc.com",
        # data aggregators
        "crunchbase.com", "zoominfo.com", "apollo.io", "dnb.com", "owler.com", "growjo.com",
        "datanyze.com", "pitchbook.com", "cbinsights.com", "craft.co", "rocketreach.co", "lusha.com",
        "clearbit.com",
        # reviews and directories
        "yelp.com", "bbb.org", "trustpilot.com", "g2.com", "capterra.com", "yellowpages.com",
        "manta.com", "mapquest.com", "tripadvisor.com", "angi.com", "thumbtack.com", "foursquare.com",
        "google.com", "apple.com", "bing.com",
        # lookalike-site lists
        "sitelike.org", "similarweb.com", "similarsites.com", "alternativeto.net", "siteslike.com",
        "sitelikethis.com", "moreofit.com", "alexa.com",
        # jobs
        "glassdoor.com", "indeed.com", "ziprecruiter.com", "salary.com", "payscale.com", "levels.fyi",
        "comparably.com",
        # registries
        "sec.gov", "opencorporates.com", "buzzfile.com",
        # marketplaces
        "amazon.com", "ebay.com", "walmart.com", "alibaba.com",
    }
)
MIN_FUZZY_LABEL: Final[int] = 4
MIN_OVERLAP: Final[float] = 0.5
DOMINANT_HOST_HITS: Final[int] = 3


def normalize_domain(value: str) -> str:
    """``https://WWW.Acme.com/about`` -> ``acme.com``."""
    cleaned = value.strip().lower()
    cleaned = re.sub(r"^[a-z]+://", "", cleaned)
    cleaned = cleaned.split("/")[0].split("?")[0].split("#")[0]
    cleaned = cleaned.split("@")[-1].split(":")[0]
    return cleaned.removeprefix("www.").rstrip(".")


def _host(url: str) -> str | None:
    parsed = urlparse(url if "://" in url else f"https://{url}")
    host = (parsed.hostname or "").lower().removeprefix("www.")
    return host or None


@dataclass(frozen=True)
class DomainResolution:
    submitted_domain: str
    resolved_domain: str
    method: ResolutionMethod
    credits_used: int = 0
    discovered: list[str] = field(default_factory=list)
    reasoning: str = ""

    @property
    def domain_changed(self) -> bool:
        return self.resolved_domain != self.submitted_domain


def choose_domain(submitted: str, hosts: list[str]) -> tuple[str, str]:
    """Apply the resolution rules to search-result hosts (in result order, duplicates kept)."""
    valid = [host for host in hosts if host not in BLACKLISTED_HOSTS]
    unique = list(dict.fromkeys(valid))
    if submitted in unique:
        return submitted, "submitted domain found in search results"

    submitted_label = submitted.split(".")[0]
    for host in unique:
        label = host.split(".")[0]
        if (
            len(submitted_label) >= MIN_FUZZY_LABEL
            and submitted_label in label
            and len(submitted_label) / len(label) >= MIN_OVERLAP
        ):
            return host, f"{host} extends the submitted name {submitted_label}"
        if label and label in submitted_label and len(label) / len(submitted_label) >= MIN_OVERLAP:
            return submitted, f"submitted domain is the fuller form of {host}"

    counts = Counter(valid)
    if counts:
        host, hits = counts.most_common(1)[0]
        if hits >= DOMINANT_HOST_HITS:
            return host, f"{host} dominates search results ({hits} hits)"
    return submitted, "no better candidate in search results"


class DomainResolver:
    """One web search (one credit) to confirm or replace the submitted domain."""

    def __init__(self, searcher: WebSearcher | None, *, limit: int = 5) -> None:
        self._searcher = searcher
        self._limit = limit

    async def resolve(self, domain: str) -> DomainResolution:
        submitted = normalize_domain(domain)
        if self._searcher is None:
            return DomainResolution(submitted, submitted, "direct", reasoning="no search client configured")
        try:
            response = await self._searcher.search(f'"{submitted}" company website', limit=self._limit)
        except FirecrawlError as exc:
            logger.warning("domain_resolution.failed", extra={"domain": submitted, "code": exc.code})
            return DomainResolution(submitted, submitted, "failed", reasoning=f"search failed: {exc.code}")

        hosts = [host for host in (_host(hit.url) for hit in response.hits) if host]
        if not hosts:
            return DomainResolution(
                submitted,
                submitted,
                "failed",
                credits_used=response.credits_used,
                reasoning="no search results",
            )

        resolved, reasoning = choose_domain(submitted, hosts)
        if resolved != submitted:
            logger.info("domain_resolution.switched", extra={"submitted": submitted, "resolved": resolved})
        return DomainResolution(
            submitted,
            resolved,
            "search",
            credits_used=response.credits_used,
            discovered=list(dict.fromkeys(hosts)),
            reasoning=reasoning,
        )


def verify_domain(resolution: DomainResolution, first_pass: FirstPassResult) -> DomainVerification:
    """Final enrichment domain: a high-confidence canonical website from the first pass may override."""
    current = resolution.resolved_domain
    canonical = first_pass.canonical_website
    if canonical is not None and canonical.confidence == "high":
        host = _host(canonical.url)
        if host and host != current and host not in BLACKLISTED_HOSTS:
            return DomainVerification(
                input_domain=resolution.submitted_domain,
                final_domain=host,
                domain_changed=host != resolution.submitted_domain,
                verification_source="canonical_website",
                confidence="high",
                reasoning=canonical.reasoning or f"web search reports {host} as the canonical website",
            )
    return DomainVerification(
        input_domain=resolution.submitted_domain,
        final_domain=current,
        domain_changed=resolution.domain_changed,
        verification_source="domain_resolver" if resolution.domain_changed else "input",
        confidence="medium" if resolution.method == "search" else "low",
        reasoning=f"Domain resolver ({resolution.method}): {resolution.reasoning}",
    )
