"""Async client for the Firecrawl scrape and search APIs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from app.config import Settings


class FirecrawlError(RuntimeError):
    """Base error for Firecrawl client failures."""

    def __init__(self, message: str, code: str = "FIRECRAWL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class FirecrawlRateLimitError(FirecrawlError):
    """Raised when Firecrawl responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Firecrawl") -> None:
        super().__init__(message, code="FIRECRAWL_429")


class FirecrawlCreditsExhaustedError(FirecrawlError):
    """Raised when Firecrawl responds with HTTP 402."""

    def __init__(self, message: str = "Firecrawl credits exhausted") -> None:
        super().__init__(message, code="FIRECRAWL_402")


class FirecrawlTimeoutError(FirecrawlError):
    """Raised when a Firecrawl request times out."""

    def __init__(self, message: str = "Firecrawl request timed out") -> None:
        super().__init__(message, code="FIRECRAWL_TIMEOUT")


class FirecrawlSchemaError(FirecrawlError):
    """Raised when the Firecrawl response schema does not match expectations."""

    def __init__(self, message: str = "Unexpected Firecrawl response schema") -> None:
        super().__init__(message, code="FIRECRAWL_SCHEMA_ERR")


@dataclass(frozen=True)
class ScrapedPage:
    url: str
    content: str
    credits_used: int = 1


@dataclass(frozen=True)
class SearchHit:
    url: str
    title: str = ""
    description: str = ""


@dataclass(frozen=True)
class SearchResponse:
    hits: list[SearchHit]
    credits_used: int = 1


class FirecrawlClient:
    """Minimal Firecrawl API wrapper (markdown scrape plus web search)."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("FIRECRAWL_API_KEY is required to create a FirecrawlClient.")
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._timeout_ms = int(timeout * 1000)
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_settings(cls, config: Settings) -> "FirecrawlClient":
        return cls(
            api_key=config.firecrawl_api_key or "",
            base_url=config.firecrawl_base_url,
            timeout=config.scrape_timeout_seconds,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            await self._http.aclose()

    async def scrape(self, url: str) -> ScrapedPage:
        """Fetch one page as markdown. Each successful scrape consumes one credit."""
        full_url = url if url.startswith("http") else f"https://{url}"
        payload = {
            "url": full_url,
            "formats": ["markdown"],
            "onlyMainContent": False,
            "timeout": self._timeout_ms,
        }
        data = await self._post("/v2/scrape", payload)
        if not data.get("success"):
            raise FirecrawlError(f"Firecrawl could not scrape {full_url}.", code="FIRECRAWL_SCRAPE_FAILED")
        body = data.get("data")
        if not isinstance(body, dict):
            raise FirecrawlSchemaError("`data` missing from Firecrawl scrape response.")
        metadata = body.get("metadata") or {}
        credits = metadata.get("creditsUsed") if isinstance(metadata, dict) else None
        return ScrapedPage(
            url=url,
            content=body.get("markdown") or "",
            credits_used=int(credits) if isinstance(credits, int) else 1,
        )

    async def search(self, query: str, *, limit: int = 5) -> SearchResponse:
        """Run a web search; one credit per request."""
        if limit <= 0:
            raise ValueError("limit must be a positive integer.")
        data = await self._post("/v1/search", {"query": query, "limit": limit})
        results = data.get("data")
        if not isinstance(results, list):
            raise FirecrawlSchemaError("`data` missing from Firecrawl search response.")
        hits = [
            SearchHit(
                url=str(item.get("url") or ""),
                title=str(item.get("title") or ""),
                description=str(item.get("description") or ""),
            )
            for item in results
            if isinstance(item, dict) and item.get("url")
        ]
        return SearchResponse(hits=hits, credits_used=1)

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.post(path, json=payload, headers=self._headers)
        except httpx.TimeoutException as exc:
            raise FirecrawlTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise FirecrawlError(f"HTTP error calling Firecrawl: {exc}") from exc

        if response.status_code == 429:
            raise FirecrawlRateLimitError()
        if response.status_code == 402:
            raise FirecrawlCreditsExhaustedError()
        if response.status_code in (408, 504):
            raise FirecrawlTimeoutError()
        if response.status_code >= 400:
            detail = response.text[:200]
            try:
                detail_json = response.json()
                if isinstance(detail_json, dict):
                    detail = detail_json.get("error") or detail_json.get("message") or detail
            except ValueError:
                pass
            raise FirecrawlError(f"Firecrawl request failed: {response.status_code} - {detail}")

        try:
            data = response.json()
        except ValueError as exc:
            raise FirecrawlSchemaError("Failed to decode Firecrawl response JSON.") from exc
        if not isinstance(data, dict):
            raise FirecrawlSchemaError("Firecrawl response must be a JSON object.")
        return data

    async def __aenter__(self) -> "FirecrawlClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
