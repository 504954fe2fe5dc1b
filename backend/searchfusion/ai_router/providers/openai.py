"""OpenAI chat provider using the official openai SDK (AsyncOpenAI).

Usage:
    provider = OpenAIProvider(api_key="sk-...")
    response = await provider.chat(messages, model="gpt-4o-mini")
"""

from __future__ import annotations

import os
from typing import Any

import openai
from openai import AsyncOpenAI

from searchfusion.ai_router.providers.base import AIProvider
from searchfusion.ai_router.schemas import (
    AIResponse,
    Message,
    ModelInfo,
    ProviderError,
    TokenUsage,
)

_PROVIDER_NAME = "openai"

# Small, fast models first: search-time prompts are latency sensitive.
_SUPPORTED_MODELS: list[ModelInfo] = [
    ModelInfo(id="gpt-4o-mini", name="GPT-4o mini", provider=_PROVIDER_NAME, max_tokens=128_000),
    ModelInfo(id="gpt-4.1-mini", name="GPT-4.1 mini", provider=_PROVIDER_NAME, max_tokens=128_000),
    ModelInfo(id="gpt-4.1-nano", name="GPT-4.1 nano", provider=_PROVIDER_NAME, max_tokens=128_000),
    ModelInfo(id="gpt-4o", name="GPT-4o", provider=_PROVIDER_NAME, max_tokens=128_000),
    ModelInfo(id="gpt-4.1", name="GPT-4.1", provider=_PROVIDER_NAME, max_tokens=128_000),
    ModelInfo(id="gpt-5-mini", name="GPT-5 mini", provider=_PROVIDER_NAME, max_tokens=200_000),
    ModelInfo(id="o4-mini", name="o4 mini", provider=_PROVIDER_NAME, max_tokens=200_000),
]

# Models that require max_completion_tokens instead of max_tokens.
_MAX_COMPLETION_TOKENS_PREFIXES = ("o1", "o3", "o4", "gpt-5", "gpt-4.1")
# Reasoning models additionally do not support the temperature parameter.
_REASONING_MODEL_PREFIXES = ("o1", "o3", "o4")


class OpenAIProvider(AIProvider):
    """Chat provider backed by the OpenAI API.

    Args:
        api_key: OpenAI API key. Falls back to the ``OPENAI_API_KEY``
            environment variable when *None*.

    Raises:
        ProviderError: If no API key is found.
    """

    def __init__(self, api_key: str | None = None) -> None:
        resolved_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not resolved_key:
            raise ProviderError(
                provider=_PROVIDER_NAME,
                message="API key is required. Pass api_key or set OPENAI_API_KEY environment variable.",
            )
        self._client = AsyncOpenAI(api_key=resolved_key)

    @staticmethod
    def _normalize_kwargs(model: str, kwargs: dict[str, Any]) -> dict[str, Any]:
        """Remap kwargs for models with non-standard parameter names."""
        if model.startswith(_MAX_COMPLETION_TOKENS_PREFIXES):
            if "max_tokens" in kwargs:
                kwargs["max_completion_tokens"] = kwargs.pop("max_tokens")
        if model.startswith(_REASONING_MODEL_PREFIXES):
            kwargs.pop("temperature", None)
        return kwargs

    async def chat(
        self,
        messages: list[Message],
        model: str,
        **kwargs: Any,
    ) -> AIResponse:
        """Send messages to OpenAI and return the completion.

        Raises:
            ProviderError: On any OpenAI API error. Rate limiting keeps its
                HTTP status (429) so callers can tell quota exhaustion apart.
        """
        kwargs = self._normalize_kwargs(model, kwargs)
        try:
            completion = await self._client.chat.completions.create(
                model=model,
                messages=[{"role": m.role, "content": m.content} for m in messages],
                **kwargs,
            )
        except openai.APIStatusError as exc:
            raise ProviderError(
                provider=_PROVIDER_NAME,
                message=str(exc),
                status_code=exc.status_code,
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(provider=_PROVIDER_NAME, message=str(exc)) from exc

        choice = completion.choices[0]
        usage = None
        if completion.usage is not None:
            usage = TokenUsage(
                prompt_tokens=completion.usage.prompt_tokens,
                completion_tokens=completion.usage.completion_tokens,
                total_tokens=completion.usage.total_tokens,
            )

        return AIResponse(
            content=choice.message.content or "",
            model=completion.model,
            provider=_PROVIDER_NAME,
            usage=usage,
            finish_reason=choice.finish_reason or "stop",
        )

    def available_models(self) -> list[ModelInfo]:
        return list(_SUPPORTED_MODELS)
