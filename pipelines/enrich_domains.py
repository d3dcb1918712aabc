"""Batch entrypoint: enrich a list of company domains and write the results as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import httpx

from app.clients.firecrawl import FirecrawlClient
from app.clients.llm import OpenAICompatibleClient
from app.config import settings
from app.services.enrichment.config import default_enrichment_config
from app.services.enrichment.errors import EnrichmentConfigurationError, EnrichmentPipelineError
from app.services.enrichment.orchestrator import EnrichmentPipeline, EnrichmentRequest
from app.services.enrichment.progress import LoggingProgressSink
from app.services.enrichment.store import CompanyStore, InMemoryCompanyStore, SupabaseCompanyStore

logger = logging.getLogger("pipelines.enrich_domains")

SUPABASE_TIMEOUT = 30.0


def load_domains(path: Path | None, extra: Sequence[str] = ()) -> list[str]:
    """Domains from ``--domain`` flags and the input file (one per line, ``#`` comments), deduplicated."""
    domains: list[str] = [value.strip() for value in extra if value.strip()]
    if path is not None:
        for line in path.read_text(encoding="utf-8").splitlines():
            entry = line.split("#", 1)[0].strip()
            if entry:
                domains.append(entry)
    return list(dict.fromkeys(domains))


def _write_results(output_path: Path, payload: list[dict[str, Any]]) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as outfile:
        json.dump(payload, outfile, indent=2)
        outfile.write("\n")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Enrich company domains with reconciled firmographics.")
    parser.add_argument("--domain", action="append", default=[], help="Domain to enrich (repeatable).")
    parser.add_argument("--input", type=Path, default=None, help="File with one domain per line.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(settings.enrichment_output_dir) / "enrichment_results.json",
        help="Path to output JSON file.",
    )
    parser.add_argument(
        "--force-deep-research",
        action="store_true",
        default=settings.enrichment_force_deep_research,
        help="Run deep research even when the first pass shows no gaps.",
    )
    parser.add_argument("--refresh", action="store_true", help="Ignore cached results and re-enrich.")
    return parser.parse_args(argv)


async def enrich_all(
    pipeline: EnrichmentPipeline,
    domains: Sequence[str],
    *,
    force_deep_research: bool = False,
    refresh: bool = False,
) -> list[dict[str, Any]]:
    """Enrich domains one at a time; a failed domain is reported in its row and the batch continues."""
    rows: list[dict[str, Any]] = []
    for domain in domains:
        request = EnrichmentRequest(domain=domain, force_deep_research=force_deep_research, refresh=refresh)
        try:
            result = await pipeline.enrich(request)
        except EnrichmentPipelineError as exc:
            logger.error(
                "enrich_domains.domain_failed",
                extra={"domain": domain, "stage": exc.stage, "code": exc.code},
            )
            rows.append({"domain": domain, "error": {"stage": exc.stage, "code": exc.code, "message": str(exc)}})
            continue
        rows.append(result.model_dump(mode="json"))
    return rows


def _build_store(http_client: httpx.AsyncClient) -> CompanyStore:
    if settings.supabase_url and settings.supabase_service_key:
        return SupabaseCompanyStore.from_settings(settings, http_client)
    logger.info("enrich_domains.in_memory_store")
    return InMemoryCompanyStore()


async def _run_async(args: argparse.Namespace, domains: list[str]) -> list[dict[str, Any]]:
    try:
        search_model = OpenAICompatibleClient.for_search(settings)
        analysis_model = OpenAICompatibleClient.for_analysis(settings)
    except ValueError as exc:
        raise EnrichmentConfigurationError(str(exc)) from exc

    firecrawl = FirecrawlClient.from_settings(settings) if settings.firecrawl_api_key else None
    if firecrawl is None:
        logger.warning("enrich_domains.scraping_disabled", extra={"reason": "FIRECRAWL_API_KEY not set"})
    try:
        async with httpx.AsyncClient(timeout=SUPABASE_TIMEOUT) as supabase_client:
            pipeline = EnrichmentPipeline(
                search_model=search_model,
                analysis_model=analysis_model,
                fetcher=firecrawl,
                web_searcher=firecrawl,
                store=_build_store(supabase_client),
                config=default_enrichment_config(),
                progress=LoggingProgressSink(),
            )
            return await enrich_all(
                pipeline,
                domains,
                force_deep_research=args.force_deep_research,
                refresh=args.refresh,
            )
    finally:
        await search_model.close()
        await analysis_model.close()
        if firecrawl is not None:
            await firecrawl.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for batch enrichment."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv if argv is not None else sys.argv[1:])
    domains = load_domains(args.input, args.domain)
    if not domains:
        logger.error("enrich_domains.no_domains")
        return 1
    try:
        rows = asyncio.run(_run_async(args, domains))
    except EnrichmentConfigurationError as exc:
        logger.error("enrich_domains.configuration_failed", extra={"code": exc.code, "error": str(exc)})
        return 1
    _write_results(args.output, rows)
    failures = sum(1 for row in rows if "error" in row)
    logger.info(
        "enrich_domains.completed",
        extra={"domains": len(domains), "failures": failures, "output": str(args.output)},
    )
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
