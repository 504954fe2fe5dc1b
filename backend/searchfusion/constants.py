from enum import StrEnum


class SearchType(StrEnum):
    """Mode that produced a search response (also stored in query logs)."""

    HYBRID = "hybrid"
    LEXICAL = "lexical"
    VECTOR = "vector"


class SearchState(StrEnum):
    """Orchestrator states for a single search request."""

    START = "start"
    ENHANCING = "enhancing"
    RETRIEVING = "retrieving"
    FUSING = "fusing"
    PAGINATING = "paginating"
    ENRICHING = "enriching"
    DONE = "done"
    ERROR = "error"


class RetrievalSource(StrEnum):
    LEXICAL = "lexical"
    VECTOR = "vector"


class SearchIntent(StrEnum):
    INFORMATIONAL = "informational"
    NAVIGATIONAL = "navigational"
    TRANSACTIONAL = "transactional"
    COMMERCIAL = "commercial"


# Fallback values used when an enrichment call fails
FALLBACK_SUMMARY = "Unable to generate summary at this time."
FALLBACK_INTENT = SearchIntent.INFORMATIONAL
FALLBACK_INTENT_CONFIDENCE = 0.5
