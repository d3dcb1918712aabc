"""Fetch selected pages in fixed-width concurrent batches."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from app.clients.firecrawl import FirecrawlCreditsExhaustedError, FirecrawlError, ScrapedPage
from app.observability.metrics import metrics

logger = logging.getLogger(__name__)


class PageFetcher(Protocol):
    """Anything that can turn a URL into page text (FirecrawlClient in production)."""

    async def scrape(self, url: str) -> ScrapedPage:
        ...


@dataclass(frozen=True)
class ScrapeBatchResult:
    pages: dict[str, str]
    credits_used: int = 0
    failures: list[str] = field(default_factory=list)
    fetch_ms: list[float] = field(default_factory=list)

    @property
    def scrape_count(self) -> int:
        return len(self.fetch_ms)


class ScrapeCoordinator:
    """Scrapes URLs with bounded concurrency; a failed page is omitted, never fatal."""

    def __init__(self, fetcher: PageFetcher | None, *, batch_size: int = 3) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._fetcher = fetcher
        self._batch_size = batch_size

    @property
    def enabled(self) -> bool:
        return self._fetcher is not None

    async def scrape(self, urls: Sequence[str]) -> ScrapeBatchResult:
        unique = list(dict.fromkeys(url for url in urls if url))
        fetcher = self._fetcher
        if fetcher is None or not unique:
            return ScrapeBatchResult(pages={})

        pages: dict[str, str] = {}
        failures: list[str] = []
        fetch_ms: list[float] = []
        credits = 0
        for start in range(0, len(unique), self._batch_size):
            batch = unique[start : start + self._batch_size]
            settled = await asyncio.gather(
                *(_timed_fetch(fetcher, url) for url in batch),
                return_exceptions=True,
            )
            for url, outcome in zip(batch, settled):
                if isinstance(outcome, BaseException):
                    failures.append(url)
                    self._log_failure(url, outcome)
                    continue
                page, elapsed_ms = outcome
                fetch_ms.append(elapsed_ms)
                credits += page.credits_used
                if page.content.strip():
                    pages[url] = page.content
                else:
                    failures.append(url)

        metrics.increment("scrape.pages", len(pages))
        if failures:
            metrics.increment("scrape.failures", len(failures))
        logger.info(
            "scrape.completed",
            extra={"requested": len(unique), "scraped": len(pages), "failed": len(failures), "credits": credits},
        )
        return ScrapeBatchResult(pages=pages, credits_used=credits, failures=failures, fetch_ms=fetch_ms)

    @staticmethod
    def _log_failure(url: str, exc: BaseException) -> None:
        code = getattr(exc, "code", type(exc).__name__)
        logger.warning("scrape.page_failed", extra={"url": url, "code": code})
        if isinstance(exc, FirecrawlCreditsExhaustedError):
            metrics.alert("scrape.credits_exhausted", value=1, threshold=0, severity="critical", tags={"url": url})
        elif not isinstance(exc, (FirecrawlError, OSError, asyncio.TimeoutError)):
            logger.exception("scrape.unexpected_error", exc_info=exc, extra={"url": url})


async def _timed_fetch(fetcher: PageFetcher, url: str) -> tuple[ScrapedPage, float]:
    start = time.perf_counter()
    page = await fetcher.scrape(url)
    return page, (time.perf_counter() - start) * 1000
