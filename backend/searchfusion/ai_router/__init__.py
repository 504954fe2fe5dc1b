"""AI Router - Unified chat interface over OpenAI and Gemini providers."""

from searchfusion.ai_router import prompts  # noqa: F401
from searchfusion.ai_router.router import AIRouter

__all__ = ["AIRouter"]
