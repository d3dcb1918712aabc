import json

import httpx
import pytest

from app.clients.firecrawl import (
    FirecrawlClient,
    FirecrawlCreditsExhaustedError,
    FirecrawlError,
    FirecrawlRateLimitError,
    FirecrawlSchemaError,
    FirecrawlTimeoutError,
)


def _client(handler) -> FirecrawlClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.firecrawl.dev")
    return FirecrawlClient("fc-test", http_client=http_client)


@pytest.mark.asyncio
async def test_scrape_returns_markdown_and_credits():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"success": True, "data": {"markdown": "# Acme Foods", "metadata": {"creditsUsed": 2}}},
        )

    page = await _client(handler).scrape("acmefoods.com/about")

    assert captured["path"] == "/v2/scrape"
    assert captured["auth"] == "Bearer fc-test"
    assert captured["body"]["url"] == "https://acmefoods.com/about"
    assert captured["body"]["formats"] == ["markdown"]
    assert page.url == "acmefoods.com/about"
    assert page.content == "# Acme Foods"
    assert page.credits_used == 2


@pytest.mark.asyncio
async def test_scrape_defaults_to_one_credit():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": {"markdown": "hello"}})

    page = await _client(handler).scrape("https://acmefoods.com")

    assert page.credits_used == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error_type", "code"),
    [
        (429, FirecrawlRateLimitError, "FIRECRAWL_429"),
        (402, FirecrawlCreditsExhaustedError, "FIRECRAWL_402"),
        (504, FirecrawlTimeoutError, "FIRECRAWL_TIMEOUT"),
        (500, FirecrawlError, "FIRECRAWL_ERROR"),
    ],
)
async def test_http_status_mapping(status, error_type, code):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": "nope"})

    with pytest.raises(error_type) as excinfo:
        await _client(handler).scrape("acmefoods.com")

    assert excinfo.value.code == code


@pytest.mark.asyncio
async def test_transport_timeout_maps_to_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(FirecrawlTimeoutError):
        await _client(handler).scrape("acmefoods.com")


@pytest.mark.asyncio
async def test_unsuccessful_scrape_and_bad_schema():
    def failed(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False})

    def missing_data(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": "oops"})

    with pytest.raises(FirecrawlError) as excinfo:
        await _client(failed).scrape("acmefoods.com")
    assert excinfo.value.code == "FIRECRAWL_SCRAPE_FAILED"

    with pytest.raises(FirecrawlSchemaError):
        await _client(missing_data).scrape("acmefoods.com")


@pytest.mark.asyncio
async def test_search_parses_hits_and_skips_entries_without_url():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": [
                    {"url": "https://www.linkedin.com/company/acme-foods", "title": "Acme Foods | LinkedIn"},
                    {"title": "no url"},
                ],
            },
        )

    response = await _client(handler).search("Acme Foods linkedin", limit=3)

    assert captured["path"] == "/v1/search"
    assert captured["body"] == {"query": "Acme Foods linkedin", "limit": 3}
    assert [hit.url for hit in response.hits] == ["https://www.linkedin.com/company/acme-foods"]
    assert response.hits[0].title == "Acme Foods | LinkedIn"
    assert response.credits_used == 1


@pytest.mark.asyncio
async def test_search_rejects_bad_limit_and_schema():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True})

    client = _client(handler)
    with pytest.raises(ValueError):
        await client.search("acme", limit=0)
    with pytest.raises(FirecrawlSchemaError):
        await client.search("acme")


def test_requires_api_key():
    with pytest.raises(ValueError):
        FirecrawlClient("")
