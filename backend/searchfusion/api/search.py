"""Search API endpoints.

Provides:
- ``POST /search`` -- Hybrid search with lexical-only fallback (or keyword-only
  when ``useSemanticSearch`` is false), optionally AI-enriched.
- ``POST /search/hybrid`` -- Hybrid flow only, with per-result score explanations.
- ``POST /search/batch`` -- Several queries at once; failed queries come back empty.
- ``GET /search/suggestions`` -- Related query suggestions.
- ``POST /search/analyze`` -- Search intent classification.
- ``GET /search/stats`` -- Document counts of the search index.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from searchfusion.ai_router.router import AIRouter
from searchfusion.config import Settings, get_settings
from searchfusion.search.backend import PostgresRetrievalBackend, RetrievalBackend
from searchfusion.search.embeddings import EmbeddingService
from searchfusion.search.enrichment import AIEnricher
from searchfusion.search.errors import SearchError
from searchfusion.search.language import LanguageService
from searchfusion.search.orchestrator import SearchOrchestrator
from searchfusion.search.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    BatchSearchRequest,
    HybridSearchResponse,
    IndexStats,
    SearchRequest,
    SearchResponse,
    SuggestionsResponse,
)
from searchfusion.services.analytics import AnalyticsRecorder, build_sink

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

SUGGESTIONS_ENDPOINT_LIMIT = 8
MIN_SUGGESTION_QUERY_LENGTH = 2


# ---------------------------------------------------------------------------
# Factory helpers (extracted for easy mocking in tests)
# ---------------------------------------------------------------------------


def _build_backend() -> RetrievalBackend:
    return PostgresRetrievalBackend()


def _build_language_service(settings: Settings | None = None) -> LanguageService:
    """Create a LanguageService from the configured providers.

    Extracted as a function to allow easy mocking in tests.
    """
    if settings is None:
        settings = get_settings()

    ai_router = AIRouter(
        api_keys={"openai": settings.OPENAI_API_KEY, "google": settings.GOOGLE_API_KEY},
        default_model=settings.AI_MODEL,
    )
    embedding_key = settings.GOOGLE_API_KEY if settings.EMBEDDING_PROVIDER == "google" else settings.OPENAI_API_KEY
    embedding_service = EmbeddingService(
        api_key=embedding_key,
        model=settings.EMBEDDING_MODEL,
        dimensions=settings.EMBEDDING_DIMENSION,
        provider=settings.EMBEDDING_PROVIDER,
        local_url=settings.EMBEDDING_SERVICE_URL or None,
    )
    return LanguageService(ai_router, embedding_service, model=settings.AI_MODEL)


@lru_cache
def _get_recorder() -> AnalyticsRecorder | None:
    """Process-wide analytics recorder (it owns the in-flight write tasks)."""
    settings = get_settings()
    if not settings.ANALYTICS_ENABLED:
        return None
    return AnalyticsRecorder(build_sink(settings.ANALYTICS_SINK))


def _build_orchestrator(request: Request) -> SearchOrchestrator:
    settings = get_settings()
    return SearchOrchestrator(
        backend=_build_backend(),
        language=_build_language_service(settings),
        settings=settings,
        recorder=_get_recorder(),
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


def _build_enricher() -> AIEnricher:
    settings = get_settings()
    return AIEnricher(_build_language_service(settings), settings.ENRICHMENT_TIMEOUT)


def _failure(error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": error, "message": message})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=SearchResponse, response_model_exclude_none=True)
async def search(
    body: SearchRequest,
    request: Request,
) -> SearchResponse | JSONResponse:
    """Search documents.

    Degraded searches (one retrieval path failed) still return 200; only a
    failure of every fallback returns 500.
    """
    orchestrator = _build_orchestrator(request)
    try:
        if body.use_semantic_search:
            return await orchestrator.intelligent_search(body)
        return await orchestrator.keyword_search(body)
    except SearchError:
        logger.exception("Search failed for query %r", body.query)
        return _failure("Search failed", "An error occurred while processing your search request.")


@router.post("/hybrid", response_model=HybridSearchResponse, response_model_exclude_none=True)
async def hybrid_search(
    body: SearchRequest,
    request: Request,
) -> HybridSearchResponse | JSONResponse:
    """Hybrid flow only, with score explanations on every result."""
    orchestrator = _build_orchestrator(request)
    try:
        response = await orchestrator.hybrid_search(body.model_copy(update={"include_explanation": True}))
    except SearchError:
        logger.exception("Hybrid search failed for query %r", body.query)
        return _failure("Hybrid search failed", "An error occurred while processing your hybrid search request.")
    return HybridSearchResponse(**response.model_dump())


@router.post("/batch", response_model=list[SearchResponse], response_model_exclude_none=True)
async def batch_search(
    body: BatchSearchRequest,
    request: Request,
) -> list[SearchResponse]:
    orchestrator = _build_orchestrator(request)
    template = SearchRequest(query=body.queries[0], filters=body.filters, size=body.size)
    return await orchestrator.batch_search(body.queries, template)


@router.get("/suggestions", response_model=SuggestionsResponse)
async def suggestions(q: str = Query(default="")) -> SuggestionsResponse | JSONResponse:
    """Related query suggestions; an unavailable language service yields an empty list."""
    query = q.strip()
    if len(query) < MIN_SUGGESTION_QUERY_LENGTH:
        return JSONResponse(
            status_code=400,
            content={"error": 'Query parameter "q" is required and must be at least 2 characters long'},
        )

    enricher = _build_enricher()
    items = await enricher.suggest(query, count=SUGGESTIONS_ENDPOINT_LIMIT)
    return SuggestionsResponse(suggestions=items[:SUGGESTIONS_ENDPOINT_LIMIT], query=query)


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(body: AnalyzeRequest) -> AnalyzeResponse:
    """Classify search intent, falling back to informational at 0.5 confidence."""
    enricher = _build_enricher()
    analysis = await enricher.classify_intent(body.query)
    return AnalyzeResponse(query=body.query, analysis=analysis)


@router.get("/stats", response_model=IndexStats)
async def stats() -> IndexStats | JSONResponse:
    backend = _build_backend()
    try:
        counts = await backend.index_stats()
    except Exception:
        logger.exception("Failed to read index statistics")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to retrieve search statistics", "totalDocuments": 0, "status": "error"},
        )
    return IndexStats(**counts)
