"""Chat provider implementations."""

from searchfusion.ai_router.providers.google import GoogleProvider
from searchfusion.ai_router.providers.openai import OpenAIProvider

__all__ = ["GoogleProvider", "OpenAIProvider"]
