"""Check that the scraped site plausibly belongs to the company the search model named."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Final

PLATFORM_NAMES: Final[tuple[str, ...]] = (
    "linkedin",
    "facebook",
    "twitter",
    "instagram",
    "youtube",
    "pinterest",
    "tiktok",
    "reddit",
    "wikipedia",
    "google",
    "crunchbase",
    "bloomberg",
    "reuters",
    "forbes",
    "yelp",
)


class MismatchSignal(str, Enum):
    NONE = "none"
    WEAK = "weak"
    STRONG = "strong"


@dataclass(frozen=True)
class EntityCheck:
    signal: MismatchSignal
    reason: str

    @property
    def mismatch(self) -> bool:
        return self.signal is not MismatchSignal.NONE


def domain_token(domain: str) -> str:
    return domain.lower().removeprefix("www.").split(".")[0]


def site_text(domain: str, pages: Mapping[str, str]) -> str:
    """Concatenated, lowercased text of scraped pages hosted on the company's own domain."""
    bare = domain.lower().removeprefix("www.")
    return " ".join(content for url, content in pages.items() if bare in url.lower()).lower()


def is_platform_name(company_name: str) -> bool:
    lowered = company_name.strip().lower()
    return any(lowered == name or lowered.startswith(f"{name} ") for name in PLATFORM_NAMES)


def check_entity_consistency(company_name: str, domain: str, pages: Mapping[str, str]) -> EntityCheck:
    text = site_text(domain, pages)
    if not text:
        return EntityCheck(MismatchSignal.NONE, "no pages from the company site to compare against")

    if is_platform_name(company_name):
        return EntityCheck(MismatchSignal.STRONG, f'"{company_name}" is a platform name, not the company')

    name = company_name.strip().lower()
    token = domain_token(domain)
    has_company = len(name) > 3 and name in text
    has_token = len(token) > 2 and token in text

    if has_company:
        return EntityCheck(MismatchSignal.NONE, f'"{company_name}" appears on the company site')
    if has_token:
        return EntityCheck(
            MismatchSignal.STRONG,
            f'site mentions "{token}" but never "{company_name}"',
        )
    return EntityCheck(MismatchSignal.WEAK, f'neither "{company_name}" nor "{token}" appears on the site')
