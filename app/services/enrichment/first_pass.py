"""First-pass web search: identify the company and collect raw evidence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from app.clients.llm import LanguageModel, ModelProviderError, TokenUsage
from app.models.evidence import FirstPassResult
from app.observability.metrics import metrics
from app.services.enrichment.errors import EnrichmentConfigurationError
from app.services.enrichment.parsing import ParseFailure, company_name_from_domain, parse_first_pass
from app.services.enrichment.prompts import (
    SEARCH_SYSTEM_PROMPT,
    render_first_pass_prompt,
    render_strict_first_pass_prompt,
)

logger = logging.getLogger(__name__)

FirstPassStatus = Literal["parsed", "fallback"]


@dataclass(frozen=True)
class FirstPassOutcome:
    result: FirstPassResult
    status: FirstPassStatus
    raw_text: str
    usage: TokenUsage
    reason: str = ""


def fallback_first_pass(domain: str) -> FirstPassResult:
    """Deterministic result used when the search model output is unusable."""
    root = f"https://{domain}"
    return FirstPassResult(
        company_name=company_name_from_domain(domain),
        urls_to_crawl=[root, f"{root}/about", f"{root}/contact"],
    )


def merge_first_pass(original: FirstPassResult, strict: FirstPassResult) -> FirstPassResult:
    """Combine the original attempt with a strict re-identification attempt.

    Identity fields and URLs come from the strict attempt. Revenue is the union
    (original first), employees prefer the strict attempt, headquarters switches only
    when the strict attempt found a real city, and LinkedIn candidates prefer the original.
    """
    headquarters = strict.headquarters if strict.headquarters.has_city else original.headquarters
    return strict.model_copy(
        update={
            "revenue_found": [*original.revenue_found, *strict.revenue_found],
            "employee_count_found": strict.employee_count_found or original.employee_count_found,
            "headquarters": headquarters,
            "linkedin_url_candidates": original.linkedin_url_candidates or strict.linkedin_url_candidates,
            "urls_to_crawl": strict.urls_to_crawl or original.urls_to_crawl,
            "canonical_website": strict.canonical_website or original.canonical_website,
            "search_queries": [*original.search_queries, *strict.search_queries],
        }
    )


class FirstPassSearcher:
    """Runs the search model and parses its answer, falling back deterministically."""

    def __init__(self, model: LanguageModel) -> None:
        self._model = model

    async def search(
        self,
        domain: str,
        *,
        company_name: str | None = None,
        state: str | None = None,
        country: str | None = None,
    ) -> FirstPassOutcome:
        prompt = render_first_pass_prompt(domain, company_name=company_name, state=state, country=country)
        return await self._run(domain, prompt, mode="standard")

    async def search_strict(
        self,
        domain: str,
        *,
        previous_name: str,
        state: str | None = None,
        country: str | None = None,
    ) -> FirstPassOutcome:
        prompt = render_strict_first_pass_prompt(
            domain, previous_name=previous_name, state=state, country=country
        )
        return await self._run(domain, prompt, mode="strict")

    async def _run(self, domain: str, prompt: str, *, mode: str) -> FirstPassOutcome:
        try:
            completion = await self._model.complete(system_prompt=SEARCH_SYSTEM_PROMPT, user_prompt=prompt)
        except ModelProviderError as exc:
            if exc.is_configuration_error:
                raise EnrichmentConfigurationError(str(exc)) from exc
            logger.warning(
                "first_pass.model_failed",
                extra={"domain": domain, "mode": mode, "code": exc.code},
            )
            metrics.increment("first_pass.fallback", tags={"reason": exc.code, "mode": mode})
            return FirstPassOutcome(
                result=fallback_first_pass(domain),
                status="fallback",
                raw_text="",
                usage=TokenUsage(),
                reason=exc.code,
            )

        parsed = parse_first_pass(completion.text, domain=domain)
        if isinstance(parsed, ParseFailure):
            logger.warning(
                "first_pass.parse_failed",
                extra={"domain": domain, "mode": mode, "reason": parsed.reason},
            )
            metrics.increment("first_pass.fallback", tags={"reason": "parse", "mode": mode})
            return FirstPassOutcome(
                result=fallback_first_pass(domain),
                status="fallback",
                raw_text=completion.text,
                usage=completion.usage,
                reason=parsed.reason,
            )

        logger.info(
            "first_pass.parsed",
            extra={
                "domain": domain,
                "mode": mode,
                "company_name": parsed.value.company_name,
                "revenue_items": len(parsed.value.revenue_found),
            },
        )
        return FirstPassOutcome(
            result=parsed.value,
            status="parsed",
            raw_text=completion.text,
            usage=completion.usage,
        )
