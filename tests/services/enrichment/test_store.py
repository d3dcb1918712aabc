import json

import httpx
import pytest

from app.models.enrichment import CostBreakdown, EnrichmentRecord, EnrichmentResult
from app.services.enrichment.errors import StoreError
from app.services.enrichment.store import (
    InMemoryCompanyStore,
    SupabaseCompanyStore,
    result_to_row,
    row_to_result,
)

BASE_URL = "https://supabase.test"


def _result(**overrides) -> EnrichmentResult:
    record = EnrichmentRecord(
        company_name="Acme Foods",
        website="https://acmefoods.com",
        domain="acmefoods.com",
        company_revenue="25M-75M",
        company_size="201-500 Employees",
        hq_country="US",
        **overrides,
    )
    return EnrichmentResult(record=record, cost=CostBreakdown(total_cost_usd=0.0123), raw_api_responses={"first_pass": "{}"})


def _store(handler) -> SupabaseCompanyStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseCompanyStore(base_url=BASE_URL, service_key="service-key", table="enriched_companies", http_client=client)


def test_row_round_trip_keeps_record_and_telemetry():
    result = _result()
    restored = row_to_result(json.loads(json.dumps(result_to_row(result))))

    assert restored.record == result.record
    assert restored.cost.total_cost_usd == pytest.approx(0.0123)
    assert restored.enriched_at == result.enriched_at


@pytest.mark.asyncio
async def test_in_memory_store_last_write_wins():
    store = InMemoryCompanyStore()
    await store.upsert(_result())
    await store.upsert(_result(description="Snack maker"))

    assert len(store) == 1
    cached = await store.get("AcmeFoods.com")
    assert cached is not None and cached.record.description == "Snack maker"


@pytest.mark.asyncio
async def test_supabase_upsert_merges_on_domain():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(201)

    await _store(handler).upsert(_result())

    assert captured["url"] == f"{BASE_URL}/rest/v1/enriched_companies?on_conflict=domain"
    assert captured["headers"]["Prefer"] == "resolution=merge-duplicates"
    assert captured["headers"]["Authorization"] == "Bearer service-key"
    assert captured["body"][0]["domain"] == "acmefoods.com"


@pytest.mark.asyncio
async def test_supabase_get_returns_cached_result():
    row = result_to_row(_result())

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["domain"] == "eq.acmefoods.com"
        return httpx.Response(200, json=[row])

    cached = await _store(handler).get("AcmeFoods.com")
    assert cached is not None
    assert cached.record.company_revenue == "25M-75M"


@pytest.mark.asyncio
async def test_supabase_get_miss_returns_none():
    assert await _store(lambda request: httpx.Response(200, json=[])).get("acmefoods.com") is None


@pytest.mark.asyncio
async def test_supabase_errors_raise_store_error():
    with pytest.raises(StoreError) as write_error:
        await _store(lambda request: httpx.Response(500, text="boom")).upsert(_result())
    assert write_error.value.code == "E_SUPABASE_WRITE"

    with pytest.raises(StoreError) as schema_error:
        await _store(lambda request: httpx.Response(200, json=[{"domain": "acmefoods.com"}])).get("acmefoods.com")
    assert schema_error.value.code == "E_SUPABASE_SCHEMA"


def test_from_settings_requires_credentials():
    from app.config import Settings

    config = Settings(supabase_url=None, supabase_service_key=None)
    with pytest.raises(StoreError) as excinfo:
        SupabaseCompanyStore.from_settings(config, httpx.AsyncClient())
    assert excinfo.value.code == "E_SUPABASE_CONFIG"
