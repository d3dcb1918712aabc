"""Inherit revenue and size from a known parent company when the child's data is weak."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from app.models.enrichment import EnrichmentRecord, QualityMetric
from app.services.enrichment.bands import is_passing_revenue, revenue_band_index, size_band_index
from app.services.enrichment.config import EnrichmentConfig
from app.services.enrichment.errors import StoreError
from app.services.enrichment.icp import apply_icp
from app.services.enrichment.store import CompanyStore

logger = logging.getLogger(__name__)

_LEGAL_SUFFIX_RE: Final = re.compile(
    r"\s*\b(inc\.?|llc|ltd\.?|corp\.?|corporation|company|co\.?|holdings?|group|enterprises?)\s*$",
    re.IGNORECASE,
)
WEAK_SIZE_MAX_INDEX: Final[int] = 2  # 11-50 Employees


def resolve_parent_domain(parent_name: str | None, known: Mapping[str, str]) -> str | None:
    """Curated exact match, then whole-word fuzzy match, then a ``<name>.com`` guess."""
    if not parent_name or not parent_name.strip():
        return None
    normalized = " ".join(re.sub(r"['’]", " ", parent_name.lower()).split())
    if normalized in known:
        return known[normalized]
    for key, domain in known.items():
        if re.search(rf"\b{re.escape(key)}\b", normalized) or re.search(rf"\b{re.escape(normalized)}\b", key):
            return domain

    cleaned = normalized
    while True:
        stripped = _LEGAL_SUFFIX_RE.sub("", cleaned).strip(" ,")
        if stripped == cleaned:
            break
        cleaned = stripped
    cleaned = re.sub(r"[^a-z0-9]", "", cleaned)
    if len(cleaned) >= 3:
        return f"{cleaned}.com"
    return None


def is_weak_child(record: EnrichmentRecord, config: EnrichmentConfig) -> bool:
    if not is_passing_revenue(record.company_revenue, config.passing_revenue_threshold):
        return True
    return size_band_index(record.company_size) <= WEAK_SIZE_MAX_INDEX


def inherit_from_parent(
    child: EnrichmentRecord,
    parent: EnrichmentRecord,
    *,
    parent_domain: str,
    config: EnrichmentConfig,
) -> EnrichmentRecord:
    """Copy the parent's stronger revenue/size onto the child; never downgrades either."""
    reasoning = f"Inherited from parent company: {parent.company_name}"
    update: dict[str, object] = {
        "parent_company_name": parent.company_name,
        "parent_company_domain": parent_domain,
        "parent_company_revenue": parent.company_revenue,
    }
    quality = child.quality

    child_revenue_passing = is_passing_revenue(child.company_revenue, config.passing_revenue_threshold)
    if not child_revenue_passing and revenue_band_index(parent.company_revenue) > revenue_band_index(
        child.company_revenue
    ):
        update["company_revenue"] = parent.company_revenue
        update["inherited_revenue"] = True
        quality = quality.model_copy(update={"revenue": QualityMetric(confidence="medium", reasoning=reasoning)})

    child_size = size_band_index(child.company_size)
    if child_size <= WEAK_SIZE_MAX_INDEX and size_band_index(parent.company_size) > child_size:
        update["company_size"] = parent.company_size
        update["inherited_size"] = True
        quality = quality.model_copy(update={"size": QualityMetric(confidence="medium", reasoning=reasoning)})

    update["quality"] = quality
    return apply_icp(child.model_copy(update=update), config)


@dataclass(frozen=True)
class ParentOutcome:
    record: EnrichmentRecord
    parent_domain: str | None = None
    found: bool = False

    @property
    def inherited(self) -> bool:
        return self.record.inherited_revenue or self.record.inherited_size


class ParentInheritanceResolver:
    """Looks the parent up in the company store and applies inheritance."""

    def __init__(self, store: CompanyStore | None, config: EnrichmentConfig) -> None:
        self._store = store
        self._config = config

    async def resolve(self, record: EnrichmentRecord, parent_name: str | None) -> ParentOutcome:
        if not parent_name or not is_weak_child(record, self._config):
            return ParentOutcome(record=record)

        parent_domain = resolve_parent_domain(parent_name, self._config.parent_domains)
        if parent_domain is None or parent_domain == record.domain:
            return ParentOutcome(record=record.model_copy(update={"parent_company_name": parent_name}))

        noted = record.model_copy(
            update={"parent_company_name": parent_name, "parent_company_domain": parent_domain}
        )
        if self._store is None:
            return ParentOutcome(record=noted, parent_domain=parent_domain)

        try:
            stored = await self._store.get(parent_domain)
        except StoreError as exc:
            logger.warning("parent.lookup_failed", extra={"parent_domain": parent_domain, "code": exc.code})
            return ParentOutcome(record=noted, parent_domain=parent_domain)

        if stored is None or not stored.record.company_revenue:
            logger.info("parent.not_found", extra={"parent_domain": parent_domain})
            return ParentOutcome(record=noted, parent_domain=parent_domain)

        inherited = inherit_from_parent(
            record, stored.record, parent_domain=parent_domain, config=self._config
        )
        logger.info(
            "parent.inherited",
            extra={
                "domain": record.domain,
                "parent_domain": parent_domain,
                "revenue": inherited.inherited_revenue,
                "size": inherited.inherited_size,
            },
        )
        return ParentOutcome(record=inherited, parent_domain=parent_domain, found=True)
