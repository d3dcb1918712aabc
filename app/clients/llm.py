"""Chat-completion client shared by the search and analysis model calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    OpenAIError,
    PermissionDeniedError,
    RateLimitError,
)

from app.config import Settings
from app.observability.metrics import metrics
from scripts.backoff import retry_async

logger = logging.getLogger(__name__)

RETRYABLE_CODES = frozenset({"LLM_429", "LLM_TIMEOUT", "LLM_UNAVAILABLE"})


class ModelProviderError(RuntimeError):
    """Base error for language-model provider failures."""

    def __init__(self, message: str, code: str = "LLM_UPSTREAM") -> None:
        super().__init__(message)
        self.code = code

    @property
    def is_configuration_error(self) -> bool:
        return self.code == "LLM_AUTH"


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


@dataclass(frozen=True)
class ModelCompletion:
    text: str
    model: str
    usage: TokenUsage = TokenUsage()


class LanguageModel(Protocol):
    """Minimal contract for a chat model used by the enrichment passes."""

    model: str

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
    ) -> ModelCompletion:
        ...


class OpenAICompatibleClient:
    """Async chat client for OpenAI and OpenAI-compatible endpoints (Perplexity)."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.1,
        timeout: float = 120.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError(f"An API key is required to call {model}.")
        self.model = model
        self._temperature = temperature
        self._retry_attempts = max(1, retry_attempts)
        self._retry_base_delay = retry_base_delay
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    @classmethod
    def for_search(cls, config: Settings) -> "OpenAICompatibleClient":
        """Build the web-search model client from settings."""
        return cls(
            api_key=config.search_api_key or "",
            model=config.search_model,
            base_url=config.search_base_url,
            temperature=config.search_temperature,
            timeout=config.model_timeout_seconds,
            retry_attempts=config.model_retry_attempts,
            retry_base_delay=config.model_retry_base_delay,
        )

    @classmethod
    def for_analysis(cls, config: Settings) -> "OpenAICompatibleClient":
        """Build the content-analysis model client from settings."""
        return cls(
            api_key=config.openai_api_key or "",
            model=config.analysis_model,
            base_url=config.analysis_base_url,
            temperature=config.analysis_temperature,
            timeout=config.model_timeout_seconds,
            retry_attempts=config.model_retry_attempts,
            retry_base_delay=config.model_retry_base_delay,
        )

    async def close(self) -> None:
        await self._client.close()

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
    ) -> ModelCompletion:
        """Run one chat completion, retrying rate limits and timeouts with backoff."""

        def log_retry(attempt: int, exc: Exception) -> None:
            logger.warning(
                "llm.retry",
                extra={"attempt": attempt, "code": getattr(exc, "code", None), "model": self.model},
            )

        return await retry_async(
            lambda: self._invoke(system_prompt, user_prompt, max_tokens),
            retry_on=_is_retryable,
            max_attempts=self._retry_attempts,
            base_delay=self._retry_base_delay,
            on_retry=log_retry,
        )

    async def _invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None,
    ) -> ModelCompletion:
        request: dict[str, Any] = {
            "model": self.model,
            "temperature": self._temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if max_tokens:
            request["max_tokens"] = max_tokens
        try:
            with metrics.timer("model.latency_ms", tags={"model": self.model}):
                response = await self._client.chat.completions.create(**request)
        except (AuthenticationError, PermissionDeniedError) as exc:
            raise ModelProviderError(f"{self.model} rejected credentials: {exc}", code="LLM_AUTH") from exc
        except RateLimitError as exc:
            raise ModelProviderError(f"{self.model} rate limited the request.", code="LLM_429") from exc
        except APITimeoutError as exc:
            raise ModelProviderError(f"{self.model} request timed out.", code="LLM_TIMEOUT") from exc
        except APIConnectionError as exc:
            raise ModelProviderError(f"Could not reach {self.model}: {exc}", code="LLM_UNAVAILABLE") from exc
        except APIStatusError as exc:
            code = "LLM_UNAVAILABLE" if exc.status_code >= 500 else "LLM_UPSTREAM"
            raise ModelProviderError(f"{self.model} request failed: {exc.status_code}", code=code) from exc
        except OpenAIError as exc:
            raise ModelProviderError(f"{self.model} request failed: {exc}") from exc

        return ModelCompletion(
            text=_extract_message_text(response),
            model=self.model,
            usage=_extract_usage(response),
        )


def _is_retryable(exc: Exception) -> bool:
    return isinstance(exc, ModelProviderError) and exc.code in RETRYABLE_CODES


def _extract_message_text(response: Any) -> str:
    """Normalize chat-completion message content across SDK versions."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise ModelProviderError("Model response did not include any choices.")
    content = getattr(choices[0].message, "content", "")
    if isinstance(content, list):
        return "".join(part.get("text", "") for part in content if isinstance(part, dict)).strip()
    return (content or "").strip()


def _extract_usage(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
        completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
    )
