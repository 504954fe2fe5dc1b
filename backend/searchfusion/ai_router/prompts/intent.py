"""Search intent classification prompt template."""

from __future__ import annotations

from searchfusion.ai_router.schemas import Message

SYSTEM_PROMPT = (
    "You classify the intent behind web-style search queries.\n\n"
    "Classify the query as exactly one of:\n"
    "- informational: seeking knowledge or information\n"
    "- navigational: looking for a specific website or page\n"
    "- transactional: wanting to perform an action or purchase\n"
    "- commercial: researching before a potential purchase\n\n"
    "Respond ONLY in JSON:\n"
    '{"intent": "informational", "confidence": 0.8}\n\n'
    "confidence is a number between 0 and 1."
)

USER_PROMPT_TEMPLATE = 'Analyze the search intent of this query: "{query}"'


def build_messages(query: str) -> list[Message]:
    if not query or not query.strip():
        raise ValueError("query must not be empty")

    return [
        Message(role="system", content=SYSTEM_PROMPT),
        Message(role="user", content=USER_PROMPT_TEMPLATE.format(query=query.strip())),
    ]
