"""Google Gemini chat provider (``google-genai`` SDK).

The SDK client is synchronous, so calls run in a worker thread via
``asyncio.to_thread`` to keep the event loop free while other retrieval
paths are in flight.

Usage::

    provider = GoogleProvider(api_key="your-api-key")
    response = await provider.chat(messages, model="gemini-2.5-flash")
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

from google import genai
from google.genai import types

from searchfusion.ai_router.providers.base import AIProvider
from searchfusion.ai_router.schemas import (
    AIResponse,
    Message,
    ModelInfo,
    ProviderError,
    TokenUsage,
)

_PROVIDER_NAME = "google"

_AVAILABLE_MODELS = [
    ModelInfo(id="gemini-2.5-flash", name="Gemini 2.5 Flash", provider=_PROVIDER_NAME, max_tokens=1_048_576),
    ModelInfo(
        id="gemini-2.5-flash-lite", name="Gemini 2.5 Flash Lite", provider=_PROVIDER_NAME, max_tokens=1_048_576
    ),
    ModelInfo(id="gemini-2.0-flash", name="Gemini 2.0 Flash", provider=_PROVIDER_NAME, max_tokens=1_048_576),
    ModelInfo(id="gemini-2.5-pro", name="Gemini 2.5 Pro", provider=_PROVIDER_NAME, max_tokens=2_097_152),
]


def _convert_messages(
    messages: list[Message],
) -> tuple[list[dict[str, Any]], str | None]:
    """Convert unified Messages to Gemini content format.

    System messages become the system instruction; role "assistant" is
    mapped to "model".

    Returns:
        A tuple of (contents, system_instruction).
    """
    system_parts: list[str] = []
    contents: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            system_parts.append(msg.content)
        else:
            role = "model" if msg.role == "assistant" else msg.role
            contents.append({"role": role, "parts": [{"text": msg.content}]})

    system_instruction = "\n".join(system_parts) if system_parts else None
    return contents, system_instruction


class GoogleProvider(AIProvider):
    """Chat provider for Google Gemini models."""

    def __init__(self, api_key: str | None = None) -> None:
        resolved_key = api_key or os.environ.get("GOOGLE_API_KEY")
        if not resolved_key:
            raise ProviderError(
                provider=_PROVIDER_NAME,
                message="API key is required. Provide api_key argument or set GOOGLE_API_KEY environment variable.",
            )
        self._client = genai.Client(api_key=resolved_key)

    @staticmethod
    def _build_config(system_instruction: str | None, **kwargs: Any) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=kwargs.get("temperature"),
            max_output_tokens=kwargs.get("max_tokens"),
        )

    async def chat(
        self,
        messages: list[Message],
        model: str,
        **kwargs: Any,
    ) -> AIResponse:
        contents, system_instruction = _convert_messages(messages)
        config = self._build_config(system_instruction, **kwargs)
        try:
            response = await asyncio.to_thread(
                self._client.models.generate_content,
                model=model,
                contents=contents,
                config=config,
            )
        except Exception as exc:
            status_code = getattr(exc, "code", None)
            raise ProviderError(
                provider=_PROVIDER_NAME,
                message=str(exc),
                status_code=status_code if isinstance(status_code, int) else None,
            ) from exc

        usage = None
        if response.usage_metadata:
            prompt_tokens = response.usage_metadata.prompt_token_count or 0
            completion_tokens = response.usage_metadata.candidates_token_count or 0
            usage = TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            )

        return AIResponse(
            content=response.text or "",
            model=model,
            provider=_PROVIDER_NAME,
            usage=usage,
        )

    def available_models(self) -> list[ModelInfo]:
        return list(_AVAILABLE_MODELS)
