"""Pydantic v2 schemas for the AI Router.

Shared by every chat provider the language service can route to:
- Message: Chat message with role and content
- ModelInfo: Available model metadata
- AIRequest: Unified chat request
- AIResponse: Unified chat response
- TokenUsage: Token consumption tracking
- ProviderError: Raised when a provider call fails
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class Message(BaseModel):
    """A single chat message."""

    role: Literal["system", "user", "assistant"]
    content: str


class ModelInfo(BaseModel):
    """Metadata about a chat model offered by a provider.

    Attributes:
        id: Identifier used in API calls (e.g., "gpt-4o-mini").
        name: Human-readable display name.
        provider: Provider name (e.g., "openai", "google").
        max_tokens: Context window size in tokens.
    """

    id: str
    name: str
    provider: str
    max_tokens: int


class TokenUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class AIRequest(BaseModel):
    """Unified chat request.

    Search prompts are short and want near-deterministic output, hence the
    low default temperature and token budget.

    Attributes:
        messages: Conversation to send.
        model: Model identifier. None means auto-select.
        temperature: Sampling temperature.
        max_tokens: Maximum tokens to generate.
    """

    messages: list[Message]
    model: str | None = None
    temperature: float = 0.3
    max_tokens: int = 512


class AIResponse(BaseModel):
    """Unified response from a chat provider."""

    content: str
    model: str
    provider: str
    usage: TokenUsage | None = None
    finish_reason: str = "stop"


class ProviderError(Exception):
    """Raised when an AI provider request fails.

    Attributes:
        provider: The provider that raised the error.
        message: Human-readable error description.
        status_code: Optional HTTP status code from the provider
            (429 signals quota exhaustion).
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}" + (f" (HTTP {status_code})" if status_code else ""))
