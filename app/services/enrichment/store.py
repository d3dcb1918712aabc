"""Cache of enriched companies keyed by normalized domain."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from app.config import Settings
from app.models.enrichment import CostBreakdown, EnrichmentRecord, EnrichmentResult, PerformanceMetrics
from app.services.enrichment.errors import StoreError

logger = logging.getLogger(__name__)


class CompanyStore(Protocol):
    async def get(self, domain: str) -> EnrichmentResult | None:
        ...

    async def upsert(self, result: EnrichmentResult) -> None:
        ...


class InMemoryCompanyStore:
    """Process-local store; last write wins."""

    def __init__(self, results: dict[str, EnrichmentResult] | None = None) -> None:
        self._results: dict[str, EnrichmentResult] = dict(results or {})

    async def get(self, domain: str) -> EnrichmentResult | None:
        return self._results.get(domain.lower())

    async def upsert(self, result: EnrichmentResult) -> None:
        self._results[result.record.domain.lower()] = result

    def __len__(self) -> int:
        return len(self._results)


def result_to_row(result: EnrichmentResult) -> dict[str, Any]:
    """Flatten a result into one table row: record columns plus JSON telemetry columns."""
    row = result.record.model_dump(mode="json")
    row["cost"] = result.cost.model_dump(mode="json")
    row["performance"] = result.performance.model_dump(mode="json")
    row["raw_api_responses"] = result.raw_api_responses
    row["enriched_at"] = result.enriched_at.isoformat()
    return row


def row_to_result(row: dict[str, Any]) -> EnrichmentResult:
    payload: dict[str, Any] = {
        "record": EnrichmentRecord.model_validate(row),
        "cost": CostBreakdown.model_validate(row.get("cost") or {}),
        "performance": PerformanceMetrics.model_validate(row.get("performance") or {}),
        "raw_api_responses": row.get("raw_api_responses") or {},
    }
    if row.get("enriched_at"):
        payload["enriched_at"] = row["enriched_at"]
    return EnrichmentResult.model_validate(payload)


class SupabaseCompanyStore:
    """Reads and upserts enriched companies via Supabase REST."""

    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        table: str,
        http_client: httpx.AsyncClient,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._table = table
        self._client = http_client
        self._headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates",
        }

    @classmethod
    def from_settings(cls, config: Settings, http_client: httpx.AsyncClient) -> "SupabaseCompanyStore":
        if not config.supabase_url or not config.supabase_service_key:
            raise StoreError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required.", code="E_SUPABASE_CONFIG")
        return cls(
            base_url=config.supabase_url,
            service_key=config.supabase_service_key,
            table=config.supabase_companies_table,
            http_client=http_client,
        )

    @property
    def _table_url(self) -> str:
        return f"{self._base}/rest/v1/{self._table}"

    async def get(self, domain: str) -> EnrichmentResult | None:
        params = {"select": "*", "domain": f"eq.{domain.lower()}", "limit": "1"}
        try:
            response = await self._client.get(self._table_url, headers=self._headers, params=params)
        except httpx.HTTPError as exc:
            raise StoreError(f"Supabase query failed: {exc}", code="E_SUPABASE_FETCH") from exc
        if response.status_code >= 400:
            raise StoreError(
                f"Supabase query failed with status {response.status_code}",
                code="E_SUPABASE_FETCH",
            )
        rows = response.json()
        if not rows:
            return None
        try:
            return row_to_result(rows[0])
        except ValidationError as exc:
            logger.warning("store.row_invalid", extra={"domain": domain, "errors": exc.error_count()})
            raise StoreError(f"Stored row for {domain} is invalid", code="E_SUPABASE_SCHEMA") from exc

    async def upsert(self, result: EnrichmentResult) -> None:
        try:
            response = await self._client.post(
                self._table_url,
                json=[result_to_row(result)],
                params={"on_conflict": "domain"},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"Supabase upsert failed: {exc}", code="E_SUPABASE_WRITE") from exc
        if response.status_code >= 400:
            raise StoreError(
                f"Supabase upsert failed with status {response.status_code}",
                code="E_SUPABASE_WRITE",
            )
