"""Abstract base class for chat providers behind the AI Router.

Usage:
    class OpenAIProvider(AIProvider):
        async def chat(self, messages, model, **kwargs) -> AIResponse:
            ...
        def available_models(self) -> list[ModelInfo]:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from searchfusion.ai_router.schemas import AIResponse, Message, ModelInfo


class AIProvider(ABC):
    """Interface every chat provider implements.

    The search service only needs single-shot completions (query rewrite,
    summaries, intent labels, suggestions), so there is no streaming method.
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        model: str,
        **kwargs: Any,
    ) -> AIResponse:
        """Send a chat request and return a complete response.

        Args:
            messages: The conversation as a list of Messages.
            model: The model identifier to use.
            **kwargs: Provider-specific parameters (temperature, max_tokens).

        Raises:
            ProviderError: If the provider request fails.
        """
        ...

    @abstractmethod
    def available_models(self) -> list[ModelInfo]:
        """Return the models offered by this provider, preferred model first."""
        ...
