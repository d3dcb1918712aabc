"""Ordered enrichment stages for one company domain."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar, cast

from app.clients.llm import LanguageModel
from app.models.enrichment import (
    DeepResearchSummary,
    Diagnostics,
    DomainVerification,
    EnrichmentRecord,
    EnrichmentResult,
    EntityCheckSummary,
    IdentityLinkSummary,
    PerformanceMetrics,
)
from app.models.evidence import FirstPassResult, LinkCandidate
from app.observability.metrics import metrics
from app.services.enrichment.bands import employee_count_to_band
from app.services.enrichment.config import EnrichmentConfig, default_enrichment_config
from app.services.enrichment.content_analysis import ContentAnalyzer
from app.services.enrichment.costs import CostAccumulator
from app.services.enrichment.deep_research import (
    DeepResearchOutcome,
    DeepResearchRunner,
    max_employee_count,
    merge_deep_research,
)
from app.services.enrichment.domain_resolution import (
    DomainResolution,
    DomainResolver,
    normalize_domain,
    verify_domain,
)
from app.services.enrichment.entity import EntityCheck, check_entity_consistency
from app.services.enrichment.errors import (
    EnrichmentConfigurationError,
    EnrichmentPipelineError,
    StoreError,
)
from app.services.enrichment.estimation import reconcile
from app.services.enrichment.first_pass import FirstPassSearcher, merge_first_pass
from app.services.enrichment.icp import apply_icp
from app.services.enrichment.identity_links import (
    IdentityLinkDecision,
    IdentityLinkResolver,
    LinkedInSearcher,
    WebSearcher,
)
from app.services.enrichment.parent import ParentInheritanceResolver
from app.services.enrichment.progress import NullProgressSink, ProgressEvent, ProgressSink
from app.services.enrichment.scraping import PageFetcher, ScrapeCoordinator
from app.services.enrichment.store import CompanyStore
from app.services.enrichment.url_tiering import is_own_site, select_urls

logger = logging.getLogger("pipelines.enrichment")

_T = TypeVar("_T")


@dataclass(frozen=True)
class EnrichmentRequest:
    domain: str
    company_name: str | None = None
    state: str | None = None
    country: str | None = None
    force_deep_research: bool = False
    refresh: bool = False


@dataclass
class _RunContext:
    """Mutable per-request state threaded through the stages."""

    request: EnrichmentRequest
    domain: str
    costs: CostAccumulator
    stage_ms: dict[str, float] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)
    parse_status: dict[str, str] = field(default_factory=dict)
    resolution: DomainResolution | None = None
    verification: DomainVerification | None = None
    first_pass: FirstPassResult | None = None
    deep_research: DeepResearchOutcome | None = None
    searched: list[LinkCandidate] = field(default_factory=list)
    pages: dict[str, str] = field(default_factory=dict)
    fetch_count: int = 0
    entity_check: EntityCheck | None = None
    strict_retry: bool = False
    identity: IdentityLinkDecision | None = None
    record: EnrichmentRecord | None = None

    @property
    def evidence(self) -> FirstPassResult:
        if self.first_pass is None:  # pragma: no cover - first pass is a critical stage
            raise EnrichmentPipelineError(self.domain, "first_pass", "first pass result missing")
        return self.first_pass

    @property
    def current_record(self) -> EnrichmentRecord:
        if self.record is None:  # pragma: no cover - analysis is a critical stage
            raise EnrichmentPipelineError(self.domain, "analysis", "analysis record missing")
        return self.record


class EnrichmentPipeline:
    """Runs search, scraping, validation, analysis, estimation and inheritance for one domain.

    Domain resolution, the first pass and the analysis pass are critical: their failure raises
    ``EnrichmentPipelineError``. Every other stage logs, emits an ``error`` progress event and
    lets the pipeline continue with what it has.
    """

    def __init__(
        self,
        *,
        search_model: LanguageModel | None,
        analysis_model: LanguageModel | None,
        fetcher: PageFetcher | None = None,
        web_searcher: WebSearcher | None = None,
        store: CompanyStore | None = None,
        config: EnrichmentConfig | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self._search_model = search_model
        self._analysis_model = analysis_model
        self._fetcher = fetcher
        self._web_searcher = web_searcher
        self._store = store
        self._config = config or default_enrichment_config()
        self._progress = progress or NullProgressSink()
        self._scraper = ScrapeCoordinator(fetcher, batch_size=self._config.scrape_batch_size)

    async def enrich(self, request: EnrichmentRequest) -> EnrichmentResult:
        if self._search_model is None or self._analysis_model is None:
            raise EnrichmentConfigurationError("Search and analysis model credentials are required.")
        submitted = normalize_domain(request.domain)
        if not submitted:
            raise EnrichmentPipelineError(request.domain, "domain_resolution", "empty domain")

        cached = await self._cached(submitted, refresh=request.refresh)
        if cached is not None:
            return cached

        started = time.perf_counter()
        ctx = _RunContext(
            request=request,
            domain=submitted,
            costs=CostAccumulator(
                pricing=self._config.model_pricing,
                credit_usd=self._config.scrape_credit_usd,
            ),
        )
        logger.info("enrichment.started", extra={"domain": submitted})

        await self._stage(ctx, "domain_resolution", self._resolve_domain, critical=True)
        await self._stage(ctx, "first_pass", self._first_pass, critical=True)
        await asyncio.gather(
            self._stage(ctx, "linkedin_search", self._linkedin_search),
            self._stage(ctx, "deep_research", self._deep_research),
        )
        urls = await self._stage(ctx, "url_selection", self._select_urls)
        if urls is None:
            urls = list(ctx.evidence.urls_to_crawl)
        await self._stage(ctx, "scraping", lambda run: self._scrape(run, urls))
        await self._stage(ctx, "entity_validation", self._validate_entity)
        await self._stage(ctx, "linkedin_validation", self._validate_identity_link)
        await self._stage(ctx, "analysis", self._analyze, critical=True)
        await self._stage(ctx, "data_estimation", self._estimate)
        await self._stage(ctx, "parent_enrichment", self._inherit_from_parent)
        result = await self._stage(
            ctx,
            "final_assembly",
            lambda run: self._assemble(run, started),
            critical=True,
        )
        return cast(EnrichmentResult, result)

    async def _cached(self, domain: str, *, refresh: bool) -> EnrichmentResult | None:
        if refresh or self._store is None:
            return None
        try:
            cached = await self._store.get(domain)
        except StoreError as exc:
            logger.warning("enrichment.cache_read_failed", extra={"domain": domain, "code": exc.code})
            return None
        if cached is None:
            metrics.increment("cache.miss")
            return None
        metrics.increment("cache.hit")
        logger.info("enrichment.cache_hit", extra={"domain": domain})
        return cached

    async def _stage(
        self,
        ctx: _RunContext,
        name: str,
        run: Callable[[_RunContext], Awaitable[_T]],
        *,
        critical: bool = False,
    ) -> _T | None:
        await self._emit(ProgressEvent(stage=name, message=f"{name} started", status="started"))
        start = time.perf_counter()
        try:
            value = await run(ctx)
        except EnrichmentConfigurationError:
            raise
        except Exception as exc:
            ctx.stage_ms[name] = (time.perf_counter() - start) * 1000
            logger.warning(
                "enrichment.stage_failed",
                exc_info=True,
                extra={"domain": ctx.domain, "stage": name, "critical": critical},
            )
            metrics.increment("stage.failed", tags={"stage": name})
            await self._emit(ProgressEvent(stage=name, message=f"{name} failed: {exc}", status="error"))
            if critical:
                raise EnrichmentPipelineError(ctx.domain, name, str(exc)) from exc
            return None
        elapsed = (time.perf_counter() - start) * 1000
        ctx.stage_ms[name] = elapsed
        metrics.timing("stage.duration_ms", elapsed, tags={"stage": name})
        await self._emit(
            ProgressEvent(
                stage=name,
                message=f"{name} complete",
                status="complete",
                cost_usd=round(ctx.costs.stage_cost(name), 6),
            )
        )
        return value

    async def _emit(self, event: ProgressEvent) -> None:
        try:
            await self._progress.emit(event)
        except Exception:
            logger.warning("enrichment.progress_failed", exc_info=True, extra={"stage": event.stage})

    async def _resolve_domain(self, ctx: _RunContext) -> None:
        resolution = await DomainResolver(self._web_searcher).resolve(ctx.domain)
        ctx.costs.add_credits("domain_resolution", resolution.credits_used)
        ctx.resolution = resolution
        ctx.domain = resolution.resolved_domain
        ctx.raw["domain_resolution"] = {
            "submitted_domain": resolution.submitted_domain,
            "resolved_domain": resolution.resolved_domain,
            "domain_changed": resolution.domain_changed,
            "resolution_method": resolution.method,
        }

    async def _first_pass(self, ctx: _RunContext) -> None:
        assert self._search_model is not None
        request = ctx.request
        outcome = await FirstPassSearcher(self._search_model).search(
            ctx.domain,
            company_name=request.company_name,
            state=request.state,
            country=request.country,
        )
        ctx.costs.add_tokens("first_pass", self._search_model.model, outcome.usage)
        ctx.first_pass = outcome.result
        ctx.parse_status["first_pass"] = outcome.status
        ctx.raw["first_pass"] = outcome.raw_text

        if ctx.resolution is not None:
            ctx.verification = verify_domain(ctx.resolution, outcome.result)
            if ctx.verification.final_domain != ctx.domain:
                logger.info(
                    "enrichment.domain_switched",
                    extra={"from": ctx.domain, "to": ctx.verification.final_domain},
                )
                ctx.domain = ctx.verification.final_domain

    async def _linkedin_search(self, ctx: _RunContext) -> None:
        first_pass = ctx.evidence
        if first_pass.linkedin_url_candidates or self._web_searcher is None:
            return
        result = await LinkedInSearcher(self._web_searcher).search(first_pass.company_name)
        ctx.costs.add_credits("linkedin_search", result.credits_used)
        ctx.searched = list(result.candidates)

    async def _deep_research(self, ctx: _RunContext) -> None:
        assert self._search_model is not None
        force = ctx.request.force_deep_research or self._config.force_deep_research
        first_pass = ctx.evidence
        outcome = await DeepResearchRunner(self._search_model).run(
            ctx.domain, first_pass.company_name, first_pass, force=force
        )
        ctx.deep_research = outcome
        if not outcome.triggered:
            return
        ctx.costs.add_tokens("deep_research", self._search_model.model, outcome.usage)
        ctx.raw["deep_research"] = outcome.raw
        ctx.first_pass = merge_deep_research(ctx.evidence, outcome)

    async def _select_urls(self, ctx: _RunContext) -> list[str]:
        first_pass = ctx.evidence
        selection = select_urls(first_pass.urls_to_crawl, ctx.domain, first_pass)
        logger.info(
            "enrichment.urls_selected",
            extra={
                "domain": ctx.domain,
                "selected": len(selection.selected),
                "excluded": len(selection.excluded),
                "supplemental_budget": selection.supplemental_budget,
            },
        )
        return selection.selected

    async def _scrape(self, ctx: _RunContext, urls: list[str]) -> None:
        pending = [url for url in urls if url not in ctx.pages]
        batch = await self._scraper.scrape(pending)
        ctx.pages.update(batch.pages)
        ctx.fetch_count += batch.scrape_count
        ctx.costs.add_credits("scraping", batch.credits_used)

    async def _validate_entity(self, ctx: _RunContext) -> None:
        assert self._search_model is not None
        first_pass = ctx.evidence
        check = check_entity_consistency(first_pass.company_name, ctx.domain, ctx.pages)
        ctx.entity_check = check
        if not check.mismatch:
            return
        logger.info(
            "enrichment.entity_mismatch",
            extra={"domain": ctx.domain, "signal": check.signal.value, "reason": check.reason},
        )
        strict = await FirstPassSearcher(self._search_model).search_strict(
            ctx.domain,
            previous_name=first_pass.company_name,
            state=ctx.request.state,
            country=ctx.request.country,
        )
        ctx.costs.add_tokens("entity_validation", self._search_model.model, strict.usage)
        ctx.parse_status["first_pass_strict"] = strict.status
        ctx.raw["first_pass_strict"] = strict.raw_text
        if strict.status != "parsed":
            return
        merged = merge_first_pass(first_pass, strict.result)
        ctx.first_pass = merged
        ctx.strict_retry = True
        selection = select_urls(merged.urls_to_crawl, ctx.domain, merged)
        # pages found for the misidentified company are dropped; own-site pages stay valid
        ctx.pages = {url: content for url, content in ctx.pages.items() if is_own_site(url, ctx.domain)}
        await self._scrape(ctx, selection.selected)

    async def _validate_identity_link(self, ctx: _RunContext) -> None:
        first_pass = ctx.evidence
        headcount = max_employee_count(first_pass.employee_count_found)
        expected_band = employee_count_to_band(headcount) if headcount else None
        decision = await IdentityLinkResolver(self._fetcher).resolve(
            ctx.domain,
            ctx.pages,
            first_pass,
            expected_size_band=expected_band,
            searched=ctx.searched,
        )
        ctx.costs.add_credits("linkedin_validation", decision.credits_used)
        ctx.pages = dict(decision.pages)
        ctx.identity = decision

    async def _analyze(self, ctx: _RunContext) -> None:
        assert self._analysis_model is not None
        first_pass = ctx.evidence
        analyzer = ContentAnalyzer(self._analysis_model, page_char_budget=self._config.page_char_budget)
        outcome = await analyzer.analyze(ctx.domain, first_pass.company_name, ctx.pages, first_pass)
        ctx.costs.add_tokens("analysis", self._analysis_model.model, outcome.usage)
        ctx.parse_status["analysis"] = outcome.status
        ctx.raw["analysis"] = outcome.raw_text
        ctx.record = apply_icp(outcome.record, self._config)

    async def _estimate(self, ctx: _RunContext) -> None:
        record = ctx.current_record
        identity = ctx.identity
        if identity is not None and identity.url:
            record = record.model_copy(update={"linkedin_url": identity.url})
        record = reconcile(
            record,
            ctx.evidence.revenue_found,
            config=self._config,
            identity_headcount=identity.headcount if identity is not None else None,
        )
        ctx.record = apply_icp(record, self._config)

    async def _inherit_from_parent(self, ctx: _RunContext) -> None:
        resolver = ParentInheritanceResolver(self._store, self._config)
        outcome = await resolver.resolve(ctx.current_record, ctx.evidence.parent_company)
        ctx.record = outcome.record

    async def _assemble(self, ctx: _RunContext, started: float) -> EnrichmentResult:
        record = ctx.current_record
        record = record.model_copy(update={"diagnostics": self._diagnostics(ctx, record)})

        scrape_ms = ctx.stage_ms.get("scraping", 0.0)
        performance = PerformanceMetrics(
            stage_ms={name: round(ms, 2) for name, ms in ctx.stage_ms.items()},
            total_ms=round((time.perf_counter() - started) * 1000, 2),
            scrape_count=ctx.fetch_count,
            avg_scrape_ms=round(scrape_ms / ctx.fetch_count, 2) if ctx.fetch_count else 0.0,
        )
        cost = ctx.costs.breakdown()
        result = EnrichmentResult(
            record=record,
            cost=cost,
            performance=performance,
            raw_api_responses=ctx.raw,
        )
        metrics.gauge("request.cost_usd", cost.total_cost_usd)
        logger.info(
            "enrichment.completed",
            extra={
                "domain": record.domain,
                "company_name": record.company_name,
                "revenue": record.company_revenue,
                "size": record.company_size,
                "target_icp": record.target_icp,
                "cost_usd": cost.total_cost_usd,
                "total_ms": performance.total_ms,
            },
        )

        if self._store is not None:
            try:
                await self._store.upsert(result)
            except StoreError as exc:
                logger.error("enrichment.store_failed", extra={"domain": record.domain, "code": exc.code})
        return result

    def _diagnostics(self, ctx: _RunContext, record: EnrichmentRecord) -> Diagnostics:
        first_pass = ctx.evidence
        update: dict[str, Any] = {
            "revenue_sources_found": list(first_pass.revenue_found),
            "employee_sources_found": list(first_pass.employee_count_found),
            "parse_status": {**record.diagnostics.parse_status, **ctx.parse_status},
            "domain_verification": ctx.verification,
        }
        research = ctx.deep_research
        if research is not None:
            location = research.location
            update["deep_research"] = DeepResearchSummary(
                triggered=research.triggered,
                forced=research.forced,
                reasons=list(research.reasons),
                revenue_found=research.revenue.amount if research.revenue else None,
                employees_found=str(research.employees.count) if research.employees else None,
                location_found=", ".join(
                    part for part in (location.city, location.country or location.country_code) if part
                )
                if location
                else None,
            )
        if ctx.entity_check is not None:
            update["entity_check"] = EntityCheckSummary(
                signal=ctx.entity_check.signal.value,
                reason=ctx.entity_check.reason,
                strict_retry=ctx.strict_retry,
            )
        if ctx.identity is not None:
            update["identity_link"] = IdentityLinkSummary(
                url=ctx.identity.url,
                source=ctx.identity.source,
                validated=ctx.identity.validated,
                rejected=[{"url": url, "reason": reason} for url, reason in ctx.identity.rejected],
            )
        return record.diagnostics.model_copy(update=update)
