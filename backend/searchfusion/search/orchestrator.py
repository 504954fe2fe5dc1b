"""Search orchestrator: sequences enhancement, retrieval, fusion and pagination.

State flow for one request::

    START -> ENHANCING -> RETRIEVING -> FUSING -> PAGINATING -> (ENRICHING) -> DONE

with ERROR only when no retrieval path produced a list. The public entry
point :meth:`SearchOrchestrator.intelligent_search` runs a fallback cascade:
hybrid, then lexical-only, then failure.

The lexical call and the embed->vector chain run concurrently and are joined
before fusion; each path carries its own error, so one failing path only
degrades the response.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field

from searchfusion.config import Settings, get_settings
from searchfusion.constants import RetrievalSource, SearchState, SearchType
from searchfusion.search.backend import RetrievalBackend
from searchfusion.search.enhancer import QueryEnhancer
from searchfusion.search.enrichment import AIEnricher, PendingEnrichment
from searchfusion.search.errors import SearchError, TotalRetrievalFailure
from searchfusion.search.fusion import rrf_fuse, wrap_single_source
from searchfusion.search.language import LanguageService
from searchfusion.search.retrievers import EmbeddingGenerator, LexicalRetriever, VectorRetriever
from searchfusion.search.schemas import (
    FusedResult,
    Pagination,
    RetrievedDocument,
    SearchFilters,
    SearchInfo,
    SearchRequest,
    SearchResponse,
)
from searchfusion.services.analytics import AnalyticsRecorder, QueryLog

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outcome types
# ---------------------------------------------------------------------------


@dataclass
class SearchSuccess:
    response: SearchResponse


@dataclass
class SearchFailure:
    error: SearchError
    attempted: list[SearchType] = field(default_factory=list)


SearchOutcome = SearchSuccess | SearchFailure


@dataclass
class _PathResult:
    """What one retrieval path produced: documents or an error."""

    documents: list[RetrievedDocument] | None = None
    error: BaseException | None = None
    embedding_generated: bool = False

    @property
    def ok(self) -> bool:
        return self.documents is not None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def candidate_window(size: int, from_: int, min_candidates: int) -> int:
    """Number of candidates each retriever fetches (always from offset 0)."""
    return max(size * 2, min_candidates, from_ + size)


def paginate(fused: list[FusedResult], size: int, from_: int) -> tuple[list[FusedResult], Pagination]:
    total = len(fused)
    page = fused[from_ : from_ + size]
    pagination = Pagination(
        size=size,
        from_=from_,
        has_more=from_ + size < total,
        total_pages=math.ceil(total / size) if total else 0,
        current_page=from_ // size + 1,
    )
    return page, pagination


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _filters_for_log(filters: SearchFilters) -> dict | None:
    if filters.is_empty():
        return None
    return filters.model_dump(mode="json", by_alias=True, exclude_none=True)


class SearchOrchestrator:
    """Runs one search request end to end.

    The retrieval backend and language service are injected; nothing here
    keeps state across requests apart from the analytics recorder handle.

    Args:
        backend: Document store for lexical and vector retrieval.
        language: Language service for enhancement, embeddings and enrichment.
        settings: Time budgets and candidate window size (cached settings
            when omitted).
        recorder: Analytics recorder; analytics are skipped when *None*.
        user_agent: Client user agent, copied into query logs.
        ip_address: Client address, copied into query logs.
    """

    def __init__(
        self,
        backend: RetrievalBackend,
        language: LanguageService,
        settings: Settings | None = None,
        recorder: AnalyticsRecorder | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._enhancer = QueryEnhancer(language, settings.ENHANCE_TIMEOUT)
        self._lexical = LexicalRetriever(backend, settings.LEXICAL_TIMEOUT)
        self._embedder = EmbeddingGenerator(language, settings.EMBEDDING_TIMEOUT)
        self._vector = VectorRetriever(backend, settings.VECTOR_TIMEOUT)
        self._enricher = AIEnricher(language, settings.ENRICHMENT_TIMEOUT)
        self._min_candidates = settings.MIN_CANDIDATES
        self._recorder = recorder
        self._user_agent = user_agent
        self._ip_address = ip_address

    @property
    def enricher(self) -> AIEnricher:
        return self._enricher

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def intelligent_search(self, request: SearchRequest) -> SearchResponse:
        """Hybrid search with lexical-only fallback.

        Raises:
            SearchError: The terminal error when every attempt failed.
        """
        started = time.perf_counter()
        pending = self._start_enrichment(request)
        outcome = await self.run_cascade(request)

        if isinstance(outcome, SearchFailure):
            if pending is not None:
                pending.cancel()
            self._record(request, SearchType.HYBRID, started, error=outcome.error)
            raise outcome.error

        response = await self._finish_enrichment(request, outcome.response, pending)
        self._record(request, response.search_info.search_type, started, response=response)
        return response

    async def run_cascade(self, request: SearchRequest) -> SearchOutcome:
        """Try hybrid, then lexical-only; never raises.

        Any error out of the hybrid flow triggers the lexical-only attempt.
        A non-search error out of that attempt is reported as a
        :class:`TotalRetrievalFailure`.
        """
        attempted = [SearchType.HYBRID]
        try:
            return SearchSuccess(await self._hybrid_flow(request))
        except SearchError as exc:
            logger.warning("Hybrid search failed for %r, falling back to lexical-only: %s", request.query, exc)
        except Exception:
            logger.exception("Hybrid search errored unexpectedly for %r, falling back to lexical-only", request.query)

        attempted.append(SearchType.LEXICAL)
        error: SearchError
        try:
            return SearchSuccess(await self._lexical_flow(request, degraded=True))
        except SearchError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Lexical-only fallback errored unexpectedly for %r", request.query)
            error = TotalRetrievalFailure({RetrievalSource.LEXICAL: exc})

        self._transition(SearchState.ERROR, request)
        logger.error("Lexical-only fallback failed for %r: %s", request.query, error)
        return SearchFailure(error=error, attempted=attempted)

    async def hybrid_search(self, request: SearchRequest) -> SearchResponse:
        """The hybrid flow alone, without fallback.

        Raises:
            TotalRetrievalFailure: Both retrieval paths failed.
        """
        return await self._run_recorded(request, SearchType.HYBRID, self._hybrid_flow(request))

    async def keyword_search(self, request: SearchRequest) -> SearchResponse:
        """Lexical-only search (``useSemanticSearch=false``)."""
        return await self._run_recorded(request, SearchType.LEXICAL, self._lexical_flow(request, degraded=False))

    async def vector_search(self, request: SearchRequest) -> SearchResponse:
        """Embedding + vector retrieval only.

        Raises:
            LanguageServiceError: The query could not be embedded.
            RetrievalError: The vector backend failed.
        """
        return await self._run_recorded(request, SearchType.VECTOR, self._vector_flow(request))

    async def batch_search(self, queries: list[str], template: SearchRequest) -> list[SearchResponse]:
        """Run :meth:`intelligent_search` for each query concurrently.

        A failed query yields an empty response instead of failing the batch.
        """
        requests = [template.model_copy(update={"query": query}) for query in queries]
        outcomes = await asyncio.gather(
            *(self.intelligent_search(request) for request in requests),
            return_exceptions=True,
        )

        responses: list[SearchResponse] = []
        for request, outcome in zip(requests, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Batch query %r failed: %s", request.query, outcome)
                responses.append(self._empty_response(request))
            else:
                responses.append(outcome)
        return responses

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def _hybrid_flow(self, request: SearchRequest) -> SearchResponse:
        started = time.perf_counter()
        self._transition(SearchState.START, request)

        self._transition(SearchState.ENHANCING, request)
        enhanced = await self._enhancer.enhance(request.query)

        self._transition(SearchState.RETRIEVING, request)
        window = candidate_window(request.size, request.from_, self._min_candidates)
        outcomes = await asyncio.gather(
            self._lexical_path(enhanced, request.filters, window),
            self._vector_path(enhanced, request.filters, window),
            return_exceptions=True,
        )
        lexical, vector = (
            outcome if isinstance(outcome, _PathResult) else _PathResult(error=outcome) for outcome in outcomes
        )

        if not lexical.ok and not vector.ok:
            raise TotalRetrievalFailure({RetrievalSource.LEXICAL: lexical.error, RetrievalSource.VECTOR: vector.error})
        if not lexical.ok:
            logger.warning("Lexical path failed for %r, fusing vector results only: %s", request.query, lexical.error)
        if not vector.ok:
            logger.warning("Vector path failed for %r, fusing lexical results only: %s", request.query, vector.error)

        lexical_docs = lexical.documents or []
        vector_docs = vector.documents or []

        self._transition(SearchState.FUSING, request)
        fused = rrf_fuse(
            lexical_docs,
            vector_docs,
            k=request.rrf_k,
            weights=request.weights,
            include_explanation=request.include_explanation,
        )

        self._transition(SearchState.PAGINATING, request)
        page, pagination = paginate(fused, request.size, request.from_)

        return SearchResponse(
            results=page,
            total=len(fused),
            took_ms=_elapsed_ms(started),
            query=request.query,
            search_info=SearchInfo(
                lexical_count=len(lexical_docs),
                vector_count=len(vector_docs),
                fused_count=len(fused),
                rrf_k=request.rrf_k,
                weights=request.weights,
                enhanced_query=enhanced,
                embedding_generated=vector.embedding_generated,
                search_type=SearchType.HYBRID,
                degraded=not (lexical.ok and vector.ok),
            ),
            pagination=pagination,
        )

    async def _lexical_flow(self, request: SearchRequest, degraded: bool) -> SearchResponse:
        started = time.perf_counter()
        self._transition(SearchState.ENHANCING, request)
        enhanced = await self._enhancer.enhance(request.query)

        self._transition(SearchState.RETRIEVING, request)
        window = candidate_window(request.size, request.from_, self._min_candidates)
        documents = await self._lexical.search(enhanced, request.filters, window)

        self._transition(SearchState.PAGINATING, request)
        ranked = wrap_single_source(documents, RetrievalSource.LEXICAL)
        page, pagination = paginate(ranked, request.size, request.from_)

        return SearchResponse(
            results=page,
            total=len(ranked),
            took_ms=_elapsed_ms(started),
            query=request.query,
            search_info=SearchInfo(
                lexical_count=len(documents),
                vector_count=0,
                fused_count=len(ranked),
                rrf_k=request.rrf_k,
                weights=request.weights,
                enhanced_query=enhanced,
                embedding_generated=False,
                search_type=SearchType.LEXICAL,
                degraded=degraded,
            ),
            pagination=pagination,
        )

    async def _vector_flow(self, request: SearchRequest) -> SearchResponse:
        started = time.perf_counter()
        self._transition(SearchState.ENHANCING, request)
        enhanced = await self._enhancer.enhance(request.query)

        self._transition(SearchState.RETRIEVING, request)
        window = candidate_window(request.size, request.from_, self._min_candidates)
        vector = await self._embedder.embed(enhanced)
        documents = await self._vector.search(vector, enhanced, request.filters, window)

        self._transition(SearchState.PAGINATING, request)
        ranked = wrap_single_source(documents, RetrievalSource.VECTOR)
        page, pagination = paginate(ranked, request.size, request.from_)

        return SearchResponse(
            results=page,
            total=len(ranked),
            took_ms=_elapsed_ms(started),
            query=request.query,
            search_info=SearchInfo(
                lexical_count=0,
                vector_count=len(documents),
                fused_count=len(ranked),
                rrf_k=request.rrf_k,
                weights=request.weights,
                enhanced_query=enhanced,
                embedding_generated=True,
                search_type=SearchType.VECTOR,
            ),
            pagination=pagination,
        )

    async def _lexical_path(self, query: str, filters: SearchFilters, size: int) -> _PathResult:
        try:
            return _PathResult(documents=await self._lexical.search(query, filters, size))
        except SearchError as exc:
            return _PathResult(error=exc)

    async def _vector_path(self, query: str, filters: SearchFilters, size: int) -> _PathResult:
        try:
            vector = await self._embedder.embed(query)
        except SearchError as exc:
            return _PathResult(error=exc)

        try:
            documents = await self._vector.search(vector, query, filters, size)
        except SearchError as exc:
            return _PathResult(error=exc, embedding_generated=True)
        return _PathResult(documents=documents, embedding_generated=True)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _start_enrichment(self, request: SearchRequest) -> PendingEnrichment | None:
        if not request.include_reasoning:
            return None
        return self._enricher.start(request.query)

    async def _finish_enrichment(
        self,
        request: SearchRequest,
        response: SearchResponse,
        pending: PendingEnrichment | None,
    ) -> SearchResponse:
        if pending is not None:
            self._transition(SearchState.ENRICHING, request)
            response.enrichment = await pending.finish(response.results)
        self._transition(SearchState.DONE, request)
        return response

    async def _run_recorded(
        self,
        request: SearchRequest,
        search_type: SearchType,
        flow: Awaitable[SearchResponse],
    ) -> SearchResponse:
        started = time.perf_counter()
        pending = self._start_enrichment(request)
        try:
            response = await flow
        except SearchError as exc:
            if pending is not None:
                pending.cancel()
            self._record(request, search_type, started, error=exc)
            raise
        response = await self._finish_enrichment(request, response, pending)
        self._record(request, search_type, started, response=response)
        return response

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, state: SearchState, request: SearchRequest) -> None:
        logger.debug("search %r -> %s", request.query, state)

    def _record(
        self,
        request: SearchRequest,
        search_type: SearchType,
        started: float,
        response: SearchResponse | None = None,
        error: BaseException | None = None,
    ) -> None:
        if self._recorder is None:
            return
        search_info = None
        if response is not None:
            info = response.search_info
            search_info = {
                "lexicalCount": info.lexical_count,
                "vectorCount": info.vector_count,
                "fusedCount": info.fused_count,
                "embeddingGenerated": info.embedding_generated,
            }
        self._recorder.record(
            QueryLog(
                query=request.query,
                results_count=response.total if response is not None else 0,
                latency_ms=(time.perf_counter() - started) * 1000,
                search_type=search_type,
                filters=_filters_for_log(request.filters),
                success=error is None,
                error_message=str(error) if error is not None else None,
                search_info=search_info,
                user_agent=self._user_agent,
                ip_address=self._ip_address,
            )
        )

    @staticmethod
    def _empty_response(request: SearchRequest) -> SearchResponse:
        _, pagination = paginate([], request.size, request.from_)
        return SearchResponse(
            results=[],
            total=0,
            took_ms=0,
            query=request.query,
            search_info=SearchInfo(rrf_k=request.rrf_k, weights=request.weights, degraded=True),
            pagination=pagination,
        )
