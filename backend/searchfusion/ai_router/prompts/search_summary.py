"""Search result summary prompt template.

Summarizes the top results of a search in 2-3 sentences plus 3-5 key
points, returned as JSON.
"""

from __future__ import annotations

from searchfusion.ai_router.schemas import Message

# Only the best-ranked results are sent to the model
MAX_RESULTS = 5
MAX_CONTENT_CHARS = 1000

SYSTEM_PROMPT = (
    "You are a search assistant that summarizes search results. "
    "Based on the user's query and the numbered results, answer the query as "
    "directly as the results allow.\n\n"
    "You must respond ONLY in the JSON format below. Do not include any other text:\n"
    '{"summary": "2-3 sentence summary", "keyPoints": ["point 1", "point 2", "point 3"]}\n\n'
    "Guidelines:\n"
    "- summary: a concise summary (2-3 sentences) that directly answers the query\n"
    "- keyPoints: 3-5 key points that highlight the most important information\n"
    "- Use only information present in the results"
)

USER_PROMPT_TEMPLATE = 'Search query: "{query}"\n\nSearch results:\n\n{results_section}'


def build_messages(query: str, results: list[dict[str, str]]) -> list[Message]:
    """Build message list for summarizing search results.

    Args:
        query: The original search query.
        results: Dicts with 'title' and 'content' keys, best first. Only the
            first ``MAX_RESULTS`` are used.

    Raises:
        ValueError: If query is empty or there are no results to summarize.
    """
    if not query or not query.strip():
        raise ValueError("query must not be empty")
    if not results:
        raise ValueError("results must not be empty")

    sections = []
    for i, r in enumerate(results[:MAX_RESULTS], 1):
        title = r.get("title", "")
        content = r.get("content", "")[:MAX_CONTENT_CHARS]
        sections.append(f"{i}. {title}\n{content}")

    return [
        Message(role="system", content=SYSTEM_PROMPT),
        Message(
            role="user",
            content=USER_PROMPT_TEMPLATE.format(query=query, results_section="\n\n".join(sections)),
        ),
    ]
