from __future__ import annotations

from app.clients.llm import ModelCompletion, ModelProviderError, TokenUsage


class ScriptedModel:
    """LanguageModel stub that replays canned answers and records prompts.

    ``route`` maps a prompt substring to a fixed answer; otherwise ``responses`` are
    consumed in order and the last one repeats.
    """

    def __init__(
        self,
        responses: list[str | Exception] | None = None,
        *,
        model: str = "sonar-pro",
        usage: TokenUsage = TokenUsage(prompt_tokens=1_000, completion_tokens=200),
        route: dict[str, str | Exception] | None = None,
    ) -> None:
        self.model = model
        self._responses = list(responses or [])
        self._usage = usage
        self._route = route or {}
        self.prompts: list[str] = []

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
    ) -> ModelCompletion:
        self.prompts.append(user_prompt)
        answer: str | Exception | None = None
        for needle, routed in self._route.items():
            if needle in user_prompt:
                answer = routed
                break
        if answer is None:
            if not self._responses:
                raise ModelProviderError("no scripted response left", code="LLM_UPSTREAM")
            answer = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(answer, Exception):
            raise answer
        return ModelCompletion(text=answer, model=self.model, usage=self._usage)
