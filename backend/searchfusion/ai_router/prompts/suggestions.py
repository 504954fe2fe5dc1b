"""Related search suggestion prompt template.

Asks for plain-text suggestions, one per line, so the reply can be used
without JSON parsing.
"""

from __future__ import annotations

from searchfusion.ai_router.schemas import Message

SYSTEM_PROMPT = (
    "You help users explore a topic by proposing related search queries.\n\n"
    "The suggestions should be:\n"
    "1. More specific variations of the original query\n"
    "2. Related topics that might interest the user\n"
    "3. Different angles or perspectives on the same topic\n\n"
    "Provide only the search suggestions, one per line, without numbering or additional text."
)

USER_PROMPT_TEMPLATE = 'Suggest {count} related search queries for: "{query}"'


def build_messages(query: str, count: int = 5) -> list[Message]:
    """Build message list for related-query suggestions.

    Args:
        query: The user's (possibly partial) search query.
        count: How many suggestions to ask for.

    Raises:
        ValueError: If query is empty or count is not positive.
    """
    if not query or not query.strip():
        raise ValueError("query must not be empty")
    if count < 1:
        raise ValueError("count must be positive")

    return [
        Message(role="system", content=SYSTEM_PROMPT),
        Message(role="user", content=USER_PROMPT_TEMPLATE.format(count=count, query=query.strip())),
    ]
