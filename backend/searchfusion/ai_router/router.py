"""AI Router - one chat interface over every configured text-generation provider.

The router registers providers whose API keys are available (explicit
arguments first, then environment variables) and resolves a model id to the
provider that serves it. The language service talks only to this class.

Usage:
    router = AIRouter()  # auto-detects providers from env vars
    response = await router.chat(AIRequest(messages=[...], model="gpt-4o-mini"))
"""

from __future__ import annotations

import importlib
import logging
import os
from typing import Any

from searchfusion.ai_router.providers.base import AIProvider
from searchfusion.ai_router.schemas import (
    AIRequest,
    AIResponse,
    ModelInfo,
    ProviderError,
)

logger = logging.getLogger(__name__)

# (env var, provider name, provider class path), in auto-selection priority order
_PROVIDER_REGISTRY: list[tuple[str, str, str]] = [
    ("OPENAI_API_KEY", "openai", "searchfusion.ai_router.providers.openai.OpenAIProvider"),
    ("GOOGLE_API_KEY", "google", "searchfusion.ai_router.providers.google.GoogleProvider"),
]


class AIRouter:
    """Registry of chat providers behind a single ``chat`` call.

    Args:
        api_keys: Optional mapping of provider name to API key. A provider
            missing from the mapping falls back to its environment variable.
        default_model: Model used when a request does not name one. When
            *None*, the first provider's preferred model is used.
    """

    def __init__(
        self,
        api_keys: dict[str, str] | None = None,
        default_model: str | None = None,
    ) -> None:
        self._providers: dict[str, AIProvider] = {}
        self._default_model = default_model
        self._auto_detect(api_keys or {})

    # ------------------------------------------------------------------
    # Auto-detection
    # ------------------------------------------------------------------

    def _auto_detect(self, api_keys: dict[str, str]) -> None:
        """Instantiate every provider that has a key.

        A provider whose constructor fails is logged and skipped so that one
        broken SDK does not take the whole router down.
        """
        for env_var, name, class_path in _PROVIDER_REGISTRY:
            api_key = api_keys.get(name) or os.environ.get(env_var, "")
            if not api_key:
                continue

            try:
                module_path, class_name = class_path.rsplit(".", 1)
                module = importlib.import_module(module_path)
                provider_cls = getattr(module, class_name)
                self._providers[name] = provider_cls(api_key=api_key)
                logger.info("Auto-detected AI provider: %s", name)
            except Exception:
                logger.warning(
                    "Failed to initialize provider %s (key present but init failed)",
                    name,
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def register_provider(self, name: str, provider: AIProvider) -> None:
        """Register (or replace) a provider under *name*."""
        self._providers[name] = provider

    # ------------------------------------------------------------------
    # Model discovery
    # ------------------------------------------------------------------

    def all_models(self) -> list[ModelInfo]:
        models: list[ModelInfo] = []
        for provider in self._providers.values():
            models.extend(provider.available_models())
        return models

    def resolve_model(self, model: str | None = None) -> tuple[str, AIProvider]:
        """Find the provider that serves a given model.

        Args:
            model: Model identifier. When *None*, the router's default model
                is used, or else the first provider's first model.

        Returns:
            A tuple of (model_id, provider_instance).

        Raises:
            ProviderError: If no providers are registered or the model
                cannot be found in any provider.
        """
        if not self._providers:
            raise ProviderError(
                provider="router",
                message="No AI providers are registered. "
                "Set OPENAI_API_KEY or GOOGLE_API_KEY.",
            )

        model = model or self._default_model
        if model is None:
            first_provider_name = next(iter(self._providers))
            first_provider = self._providers[first_provider_name]
            models = first_provider.available_models()
            if not models:
                raise ProviderError(
                    provider=first_provider_name,
                    message="Provider has no available models.",
                )
            return models[0].id, first_provider

        for provider in self._providers.values():
            for model_info in provider.available_models():
                if model_info.id == model:
                    return model, provider

        available_ids = [m.id for m in self.all_models()]
        raise ProviderError(
            provider="router",
            message=f"Model '{model}' not found. Available models: "
            f"{', '.join(available_ids) or 'none'}",
        )

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, request: AIRequest) -> AIResponse:
        """Send a chat request to the provider that serves ``request.model``.

        Raises:
            ProviderError: If the model or provider cannot be resolved,
                or the underlying provider call fails.
        """
        model_name, provider = self.resolve_model(request.model)

        kwargs: dict[str, Any] = {}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens

        return await provider.chat(
            messages=request.messages,
            model=model_name,
            **kwargs,
        )
