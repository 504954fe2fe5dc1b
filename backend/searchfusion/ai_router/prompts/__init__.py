"""Prompt templates for the search-time language features.

- query_enhance: Rewrite a raw query for better recall
- search_summary: Summarize the top results for a query
- intent: Classify the intent behind a query
- suggestions: Propose related follow-up queries
"""

from searchfusion.ai_router.prompts import intent, query_enhance, search_summary, suggestions

__all__ = [
    "query_enhance",
    "search_summary",
    "intent",
    "suggestions",
]
