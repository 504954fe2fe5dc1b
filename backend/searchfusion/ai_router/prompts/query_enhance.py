"""Query enhancement prompt template.

Rewrites a raw search query so it retrieves better under both keyword and
semantic search, without changing what the user is asking for.
"""

from __future__ import annotations

from searchfusion.ai_router.schemas import Message

SYSTEM_PROMPT = (
    "You are a search query optimizer. "
    "Rewrite the user's search query to make it more effective for keyword and "
    "semantic search while preserving the user's intent.\n\n"
    "Rules:\n"
    "1. Expand abbreviations and acronyms.\n"
    "2. Add relevant synonyms and related terms.\n"
    "3. Maintain the original meaning.\n"
    "4. Keep it concise (at most twice the original length).\n"
    "5. Return ONLY the enhanced query, with no explanation, quotes or labels."
)

USER_PROMPT_TEMPLATE = 'Search query: "{query}"\n\nEnhanced query:'


def build_messages(query: str) -> list[Message]:
    """Build message list for query enhancement.

    Raises:
        ValueError: If query is empty or whitespace-only.
    """
    if not query or not query.strip():
        raise ValueError("query must not be empty")

    return [
        Message(role="system", content=SYSTEM_PROMPT),
        Message(role="user", content=USER_PROMPT_TEMPLATE.format(query=query.strip())),
    ]
