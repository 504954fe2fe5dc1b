"""Request and response models for the search pipeline.

Python attributes are snake_case; the JSON wire format is camelCase. The
``from`` offset is exposed as ``from_`` in Python.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator
from pydantic.alias_generators import to_camel

from searchfusion.config import get_settings
from searchfusion.constants import SearchIntent, SearchType

MAX_QUERY_LENGTH = 500
MAX_PAGE_SIZE = 100
MAX_BATCH_QUERIES = 10

QueryText = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_QUERY_LENGTH),
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class DateRange(CamelModel):
    model_config = ConfigDict(extra="forbid")

    from_: datetime | None = Field(default=None, alias="from")
    to: datetime | None = None

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.from_ is not None and self.to is not None and self.from_ > self.to:
            raise ValueError("dateRange.from must not be after dateRange.to")
        return self


class SearchFilters(CamelModel):
    """Structured constraints applied by both retrieval paths."""

    model_config = ConfigDict(extra="forbid")

    category: str | None = None
    tags: list[str] | None = None
    author: str | None = None
    date_range: DateRange | None = None

    def is_empty(self) -> bool:
        return not (self.category or self.tags or self.author or self.date_range)


class FusionWeights(CamelModel):
    lexical: float = Field(default=0.6, ge=0)
    vector: float = Field(default=0.4, ge=0)


def _default_weights() -> FusionWeights:
    settings = get_settings()
    return FusionWeights(lexical=settings.LEXICAL_WEIGHT, vector=settings.VECTOR_WEIGHT)


def _default_rrf_k() -> int:
    return get_settings().RRF_K


class SearchRequest(CamelModel):
    """One search call as received from a client."""

    model_config = ConfigDict(extra="forbid")

    query: QueryText
    filters: SearchFilters = Field(default_factory=SearchFilters)
    size: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)
    from_: int = Field(default=0, ge=0, alias="from")
    weights: FusionWeights = Field(default_factory=_default_weights)
    rrf_k: int = Field(default_factory=_default_rrf_k, gt=0)
    include_explanation: bool = False
    include_reasoning: bool = False
    use_semantic_search: bool = True


class BatchSearchRequest(CamelModel):
    model_config = ConfigDict(extra="forbid")

    queries: list[QueryText] = Field(min_length=1, max_length=MAX_BATCH_QUERIES)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    size: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)


class AnalyzeRequest(CamelModel):
    query: QueryText


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class RetrievedDocument(CamelModel):
    """A document as returned by one retrieval path, best hit first."""

    id: str = Field(min_length=1)
    title: str = ""
    content: str = ""
    url: str | None = None
    metadata: dict[str, Any] | None = None
    raw_score: float = 0.0
    highlights: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Fusion output
# ---------------------------------------------------------------------------


class ScoreBreakdown(CamelModel):
    lexical: float = 0.0
    vector: float = 0.0
    rrf: float = 0.0
    final: float = 0.0


class RankBreakdown(CamelModel):
    """1-based ranks per source; 0 means the source did not return the document."""

    lexical: int = 0
    vector: int = 0
    final: int = 0


class FusionExplanation(CamelModel):
    lexical_contribution: float
    vector_contribution: float
    formula: str


class FusedResult(RetrievedDocument):
    scores: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    ranks: RankBreakdown = Field(default_factory=RankBreakdown)
    explanation: FusionExplanation | None = None


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------


class SearchInfo(CamelModel):
    lexical_count: int = 0
    vector_count: int = 0
    fused_count: int = 0
    rrf_k: int
    weights: FusionWeights
    enhanced_query: str | None = None
    embedding_generated: bool = False
    search_type: SearchType = SearchType.HYBRID
    degraded: bool = False


class Pagination(CamelModel):
    size: int
    from_: int = Field(alias="from")
    has_more: bool
    total_pages: int
    current_page: int


class SummaryResult(CamelModel):
    summary: str
    key_points: list[str] = Field(default_factory=list)


class IntentAnalysis(CamelModel):
    intent: SearchIntent
    confidence: float = Field(ge=0.0, le=1.0)


class Enrichment(CamelModel):
    summary: str
    key_points: list[str] = Field(default_factory=list)
    intent: SearchIntent
    confidence: float
    suggestions: list[str] = Field(default_factory=list)


class SearchResponse(CamelModel):
    results: list[FusedResult]
    total: int
    took_ms: int
    query: str
    search_info: SearchInfo
    pagination: Pagination
    enrichment: Enrichment | None = None


class HybridSearchResponse(SearchResponse):
    explanation: str = (
        "This response includes per-result scoring for lexical retrieval, vector retrieval and RRF fusion."
    )


class SuggestionsResponse(CamelModel):
    suggestions: list[str]
    query: str


class AnalyzeResponse(CamelModel):
    query: str
    analysis: IntentAnalysis


class IndexStats(CamelModel):
    total_documents: int
    embedded_documents: int
    status: str = "healthy"
