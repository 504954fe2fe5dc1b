"""Tests for the search orchestrator.

Uses an in-memory retrieval backend and a mocked language service so every
failure mode (per-path errors, timeouts, enrichment failures) can be forced
deterministically.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from searchfusion.config import Settings
from searchfusion.constants import FALLBACK_SUMMARY, SearchIntent, SearchType
from searchfusion.search.backend import BackendSearchResult, RetrievalBackend
from searchfusion.search.embeddings import EmbeddingError
from searchfusion.search.errors import LanguageServiceError, SearchError, TotalRetrievalFailure
from searchfusion.search.orchestrator import (
    SearchFailure,
    SearchOrchestrator,
    SearchSuccess,
    candidate_window,
    paginate,
)
from searchfusion.search.schemas import IntentAnalysis, SearchFilters, SearchRequest, SummaryResult
from searchfusion.services.analytics import QueryLog

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _hit(doc_id: str, score: float = 1.0) -> dict:
    return {"id": doc_id, "title": f"Title {doc_id}", "content": f"Body {doc_id}", "raw_score": score}


class FakeBackend(RetrievalBackend):
    """In-memory backend returning fixed hit lists, with optional failures."""

    def __init__(
        self,
        lexical: list[dict] | None = None,
        vector: list[dict] | None = None,
        fail_lexical: bool = False,
        fail_lexical_times: int = 0,
        fail_vector: bool = False,
        lexical_delay: float = 0.0,
        failing_queries: tuple[str, ...] = (),
    ) -> None:
        self.lexical_hits = lexical or []
        self.vector_hits = vector or []
        self.fail_lexical = fail_lexical
        self.fail_lexical_times = fail_lexical_times
        self.fail_vector = fail_vector
        self.lexical_delay = lexical_delay
        self.failing_queries = failing_queries
        self.lexical_calls: list[tuple] = []
        self.vector_calls: list[tuple] = []

    async def lexical_search(self, query, filters, size, from_=0):
        self.lexical_calls.append((query, filters, size, from_))
        if self.lexical_delay:
            await asyncio.sleep(self.lexical_delay)
        if self.fail_lexical_times > 0:
            self.fail_lexical_times -= 1
            raise RuntimeError("lexical index unavailable")
        if self.fail_lexical or query in self.failing_queries:
            raise RuntimeError("lexical index unavailable")
        hits = self.lexical_hits[from_ : from_ + size]
        return BackendSearchResult(hits=hits, total=len(self.lexical_hits))

    async def vector_search(self, vector, query, filters, size, from_=0):
        self.vector_calls.append((vector, query, filters, size, from_))
        if self.fail_vector or query in self.failing_queries:
            raise RuntimeError("vector index unavailable")
        hits = self.vector_hits[from_ : from_ + size]
        return BackendSearchResult(hits=hits, total=len(self.vector_hits))


def _language(enhanced: str | None = None, embed_error: Exception | None = None) -> MagicMock:
    language = MagicMock()
    if enhanced is None:
        language.enhance = AsyncMock(side_effect=LanguageServiceError("no provider configured"))
    else:
        language.enhance = AsyncMock(return_value=enhanced)
    if embed_error is not None:
        language.embed = AsyncMock(side_effect=embed_error)
    else:
        language.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    language.summarize = AsyncMock(return_value=SummaryResult(summary="Two documents match.", key_points=["a"]))
    language.classify_intent = AsyncMock(
        return_value=IntentAnalysis(intent=SearchIntent.NAVIGATIONAL, confidence=0.9)
    )
    language.suggest = AsyncMock(return_value=["related one", "related two"])
    return language


def _settings(**overrides) -> Settings:
    values = {
        "ENHANCE_TIMEOUT": 0.5,
        "LEXICAL_TIMEOUT": 0.5,
        "EMBEDDING_TIMEOUT": 0.5,
        "VECTOR_TIMEOUT": 0.5,
        "ENRICHMENT_TIMEOUT": 0.5,
        "MIN_CANDIDATES": 20,
    }
    values.update(overrides)
    return Settings(**values)


def _orchestrator(backend, language=None, recorder=None, **settings) -> SearchOrchestrator:
    return SearchOrchestrator(
        backend=backend,
        language=language or _language(),
        settings=_settings(**settings),
        recorder=recorder,
        user_agent="pytest",
        ip_address="127.0.0.1",
    )


def _ids(response) -> list[str]:
    return [r.id for r in response.results]


# ---------------------------------------------------------------------------
# 1. Hybrid flow
# ---------------------------------------------------------------------------


class TestHybridFlow:
    @pytest.mark.asyncio
    async def test_fuses_both_paths(self):
        backend = FakeBackend(lexical=[_hit("A"), _hit("B")], vector=[_hit("B"), _hit("C")])

        response = await _orchestrator(backend).intelligent_search(SearchRequest(query="neural nets"))

        assert _ids(response) == ["B", "A", "C"]
        assert response.total == 3
        info = response.search_info
        assert (info.lexical_count, info.vector_count, info.fused_count) == (2, 2, 3)
        assert info.embedding_generated is True
        assert info.degraded is False
        assert info.search_type == SearchType.HYBRID
        assert info.rrf_k == 60

    @pytest.mark.asyncio
    async def test_enhanced_query_drives_retrieval(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("A")])
        language = _language(enhanced="machine learning basics")

        response = await _orchestrator(backend, language).intelligent_search(SearchRequest(query="ml basics"))

        assert response.query == "ml basics"
        assert response.search_info.enhanced_query == "machine learning basics"
        assert backend.lexical_calls[0][0] == "machine learning basics"
        language.embed.assert_awaited_once_with("machine learning basics")

    @pytest.mark.asyncio
    async def test_enhancement_failure_keeps_original_query(self):
        backend = FakeBackend(lexical=[_hit("A")])

        response = await _orchestrator(backend).intelligent_search(SearchRequest(query="ml basics"))

        assert response.search_info.enhanced_query == "ml basics"
        assert backend.lexical_calls[0][0] == "ml basics"

    @pytest.mark.asyncio
    async def test_filters_forwarded_to_both_paths(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("A")])
        filters = SearchFilters(category="guides", tags=["python"])

        await _orchestrator(backend).intelligent_search(SearchRequest(query="asyncio", filters=filters))

        assert backend.lexical_calls[0][1] == filters
        assert backend.vector_calls[0][2] == filters

    @pytest.mark.asyncio
    async def test_explanations_on_request(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("A")])

        response = await _orchestrator(backend).hybrid_search(
            SearchRequest(query="asyncio", include_explanation=True)
        )

        assert response.results[0].explanation is not None
        assert response.results[0].explanation.formula.startswith("RRF = ")


# ---------------------------------------------------------------------------
# 2. Degradation and fallback cascade
# ---------------------------------------------------------------------------


class TestFallbackCascade:
    @pytest.mark.asyncio
    async def test_lexical_failure_degrades_to_vector_results(self):
        backend = FakeBackend(vector=[_hit("V1"), _hit("V2")], fail_lexical=True)

        response = await _orchestrator(backend).intelligent_search(SearchRequest(query="embeddings"))

        assert _ids(response) == ["V1", "V2"]
        assert response.search_info.lexical_count == 0
        assert response.search_info.vector_count == 2
        assert response.search_info.search_type == SearchType.HYBRID
        assert response.search_info.degraded is True

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades_to_lexical_results(self):
        backend = FakeBackend(lexical=[_hit("L1")], vector=[_hit("V1")])
        language = _language(embed_error=EmbeddingError("quota", quota_exceeded=True))

        response = await _orchestrator(backend, language).intelligent_search(SearchRequest(query="embeddings"))

        assert _ids(response) == ["L1"]
        assert response.search_info.embedding_generated is False
        assert response.search_info.degraded is True
        assert backend.vector_calls == []

    @pytest.mark.asyncio
    async def test_vector_backend_failure_keeps_embedding_flag(self):
        backend = FakeBackend(lexical=[_hit("L1")], fail_vector=True)

        response = await _orchestrator(backend).intelligent_search(SearchRequest(query="embeddings"))

        assert _ids(response) == ["L1"]
        assert response.search_info.embedding_generated is True
        assert response.search_info.vector_count == 0

    @pytest.mark.asyncio
    async def test_total_failure_falls_back_to_lexical_only(self):
        backend = FakeBackend(lexical=[_hit("L1"), _hit("L2")], fail_lexical_times=1, fail_vector=True)

        response = await _orchestrator(backend).intelligent_search(SearchRequest(query="fallback"))

        assert _ids(response) == ["L1", "L2"]
        assert response.search_info.search_type == SearchType.LEXICAL
        assert response.search_info.degraded is True
        assert response.search_info.vector_count == 0
        assert len(backend.lexical_calls) == 2

    @pytest.mark.asyncio
    async def test_every_attempt_failing_raises(self):
        backend = FakeBackend(fail_lexical=True, fail_vector=True)

        with pytest.raises(SearchError):
            await _orchestrator(backend).intelligent_search(SearchRequest(query="nothing works"))

    @pytest.mark.asyncio
    async def test_run_cascade_reports_attempts(self):
        backend = FakeBackend(fail_lexical=True, fail_vector=True)

        outcome = await _orchestrator(backend).run_cascade(SearchRequest(query="nothing works"))

        assert isinstance(outcome, SearchFailure)
        assert outcome.attempted == [SearchType.HYBRID, SearchType.LEXICAL]

    @pytest.mark.asyncio
    async def test_run_cascade_success(self):
        backend = FakeBackend(lexical=[_hit("A")])

        outcome = await _orchestrator(backend).run_cascade(SearchRequest(query="ok"))

        assert isinstance(outcome, SearchSuccess)
        assert _ids(outcome.response) == ["A"]

    @pytest.mark.asyncio
    async def test_unexpected_enhancement_error_keeps_hybrid_results(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("B")])
        language = _language()
        language.enhance = AsyncMock(side_effect=RuntimeError("sdk blew up"))

        response = await _orchestrator(backend, language).intelligent_search(SearchRequest(query="hello"))

        assert sorted(_ids(response)) == ["A", "B"]
        assert response.search_info.search_type == SearchType.HYBRID
        assert backend.lexical_calls[0][0] == "hello"

    @pytest.mark.asyncio
    async def test_unexpected_fusion_error_falls_back_to_lexical_only(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("B")])

        with patch("searchfusion.search.orchestrator.rrf_fuse", side_effect=RuntimeError("fusion blew up")):
            response = await _orchestrator(backend).intelligent_search(SearchRequest(query="hello"))

        assert _ids(response) == ["A"]
        assert response.search_info.search_type == SearchType.LEXICAL
        assert response.search_info.degraded is True

    @pytest.mark.asyncio
    async def test_unexpected_fallback_error_is_reported_as_failure(self):
        backend = FakeBackend(lexical=[_hit("A")], fail_lexical_times=1, fail_vector=True)

        with patch(
            "searchfusion.search.orchestrator.wrap_single_source", side_effect=RuntimeError("ranking blew up")
        ):
            outcome = await _orchestrator(backend).run_cascade(SearchRequest(query="hello"))

        assert isinstance(outcome, SearchFailure)
        assert isinstance(outcome.error, TotalRetrievalFailure)
        assert outcome.attempted == [SearchType.HYBRID, SearchType.LEXICAL]

    @pytest.mark.asyncio
    async def test_hybrid_search_has_no_fallback(self):
        backend = FakeBackend(lexical=[_hit("A")], fail_lexical_times=1, fail_vector=True)

        with pytest.raises(SearchError):
            await _orchestrator(backend).hybrid_search(SearchRequest(query="no fallback"))
        assert len(backend.lexical_calls) == 1

    @pytest.mark.asyncio
    async def test_slow_lexical_path_times_out(self):
        backend = FakeBackend(lexical=[_hit("L1")], vector=[_hit("V1")], lexical_delay=1.0)

        response = await _orchestrator(backend, LEXICAL_TIMEOUT=0.05).hybrid_search(SearchRequest(query="slow"))

        assert _ids(response) == ["V1"]
        assert response.search_info.degraded is True


# ---------------------------------------------------------------------------
# 3. Candidate window and pagination
# ---------------------------------------------------------------------------


class TestPagination:
    def test_candidate_window(self):
        assert candidate_window(10, 0, 20) == 20
        assert candidate_window(15, 0, 20) == 30
        assert candidate_window(10, 25, 20) == 35

    def test_paginate_empty(self):
        page, pagination = paginate([], 10, 0)

        assert page == []
        assert pagination.total_pages == 0
        assert pagination.current_page == 1
        assert pagination.has_more is False

    @pytest.mark.asyncio
    async def test_retrievers_fetch_from_offset_zero(self):
        backend = FakeBackend(lexical=[_hit(f"d{i:02d}") for i in range(50)])

        await _orchestrator(backend).intelligent_search(SearchRequest(query="deep page", size=10, from_=25))

        _, _, size, from_ = backend.lexical_calls[0]
        assert (size, from_) == (35, 0)

    @pytest.mark.asyncio
    async def test_pages_are_disjoint_and_contiguous(self):
        docs = [_hit(f"d{i:02d}") for i in range(30)]
        backend = FakeBackend(lexical=docs, vector=list(reversed(docs[:25])))
        orchestrator = _orchestrator(backend, MIN_CANDIDATES=40)

        first = await orchestrator.intelligent_search(SearchRequest(query="paging", size=10, from_=0))
        second = await orchestrator.intelligent_search(SearchRequest(query="paging", size=10, from_=10))
        both = await orchestrator.intelligent_search(SearchRequest(query="paging", size=20, from_=0))

        assert not set(_ids(first)) & set(_ids(second))
        assert _ids(first) + _ids(second) == _ids(both)

    @pytest.mark.asyncio
    async def test_pagination_block(self):
        backend = FakeBackend(lexical=[_hit(f"d{i:02d}") for i in range(25)])

        response = await _orchestrator(backend).intelligent_search(SearchRequest(query="paging", size=10, from_=10))

        assert len(response.results) == 10
        assert response.total == 25
        assert response.pagination.from_ == 10
        assert response.pagination.has_more is True
        assert response.pagination.total_pages == 3
        assert response.pagination.current_page == 2

    @pytest.mark.asyncio
    async def test_offset_past_end(self):
        backend = FakeBackend(lexical=[_hit("A"), _hit("B")])

        response = await _orchestrator(backend).intelligent_search(SearchRequest(query="paging", size=10, from_=40))

        assert response.results == []
        assert response.pagination.has_more is False


# ---------------------------------------------------------------------------
# 4. Single-source modes
# ---------------------------------------------------------------------------


class TestSingleSourceModes:
    @pytest.mark.asyncio
    async def test_keyword_search_skips_embedding(self):
        backend = FakeBackend(lexical=[_hit("A", 4.2), _hit("B", 2.0)], vector=[_hit("Z")])
        language = _language()

        response = await _orchestrator(backend, language).keyword_search(SearchRequest(query="keywords"))

        assert _ids(response) == ["A", "B"]
        assert response.results[0].scores.final == 4.2
        assert response.search_info.search_type == SearchType.LEXICAL
        assert response.search_info.degraded is False
        language.embed.assert_not_awaited()
        assert backend.vector_calls == []

    @pytest.mark.asyncio
    async def test_vector_search(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("V1", 0.92), _hit("V2", 0.81)])

        response = await _orchestrator(backend).vector_search(SearchRequest(query="semantic"))

        assert _ids(response) == ["V1", "V2"]
        assert response.results[0].ranks.vector == 1
        assert response.search_info.search_type == SearchType.VECTOR
        assert response.search_info.embedding_generated is True
        assert backend.lexical_calls == []

    @pytest.mark.asyncio
    async def test_vector_search_embedding_failure_raises(self):
        backend = FakeBackend(vector=[_hit("V1")])
        language = _language(embed_error=EmbeddingError("provider down"))

        with pytest.raises(LanguageServiceError):
            await _orchestrator(backend, language).vector_search(SearchRequest(query="semantic"))


# ---------------------------------------------------------------------------
# 5. Enrichment
# ---------------------------------------------------------------------------


class TestEnrichment:
    @pytest.mark.asyncio
    async def test_no_enrichment_by_default(self):
        backend = FakeBackend(lexical=[_hit("A")])
        language = _language()

        response = await _orchestrator(backend, language).intelligent_search(SearchRequest(query="plain"))

        assert response.enrichment is None
        language.summarize.assert_not_awaited()
        language.classify_intent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_enrichment_attached(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("B")])

        response = await _orchestrator(backend).intelligent_search(
            SearchRequest(query="explain", include_reasoning=True)
        )

        enrichment = response.enrichment
        assert enrichment.summary == "Two documents match."
        assert enrichment.intent == SearchIntent.NAVIGATIONAL
        assert enrichment.confidence == 0.9
        assert enrichment.suggestions == ["related one", "related two"]

    @pytest.mark.asyncio
    async def test_summary_failure_uses_fallback_only_for_summary(self):
        backend = FakeBackend(lexical=[_hit("A")])
        language = _language()
        language.summarize = AsyncMock(side_effect=LanguageServiceError("bad json"))

        response = await _orchestrator(backend, language).intelligent_search(
            SearchRequest(query="explain", include_reasoning=True)
        )

        assert response.enrichment.summary == FALLBACK_SUMMARY
        assert response.enrichment.key_points == []
        assert response.enrichment.intent == SearchIntent.NAVIGATIONAL
        assert response.enrichment.suggestions == ["related one", "related two"]

    @pytest.mark.asyncio
    async def test_unexpected_suggestion_error_keeps_results(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("B")])
        language = _language()
        language.suggest = AsyncMock(side_effect=RuntimeError("sdk blew up"))

        response = await _orchestrator(backend, language).intelligent_search(
            SearchRequest(query="explain", include_reasoning=True)
        )

        assert len(response.results) == 2
        assert response.enrichment.suggestions == []
        assert response.enrichment.summary == "Two documents match."

    @pytest.mark.asyncio
    async def test_enrichment_does_not_change_ranking(self):
        backend = FakeBackend(lexical=[_hit("A"), _hit("B")], vector=[_hit("C"), _hit("A")])
        orchestrator = _orchestrator(backend)

        plain = await orchestrator.intelligent_search(SearchRequest(query="rank"))
        enriched = await orchestrator.intelligent_search(SearchRequest(query="rank", include_reasoning=True))

        assert _ids(plain) == _ids(enriched)
        assert [r.scores.rrf for r in plain.results] == [r.scores.rrf for r in enriched.results]


# ---------------------------------------------------------------------------
# 6. Analytics and batch
# ---------------------------------------------------------------------------


class TestAnalyticsDispatch:
    @pytest.mark.asyncio
    async def test_success_is_recorded(self):
        recorder = MagicMock()
        backend = FakeBackend(lexical=[_hit("A"), _hit("B")], vector=[_hit("C")])

        await _orchestrator(backend, recorder=recorder).intelligent_search(
            SearchRequest(query="logged", filters=SearchFilters(category="guides"))
        )

        recorder.record.assert_called_once()
        entry: QueryLog = recorder.record.call_args.args[0]
        assert entry.query == "logged"
        assert entry.success is True
        assert entry.results_count == 3
        assert entry.search_type == SearchType.HYBRID
        assert entry.filters == {"category": "guides"}
        assert entry.search_info["lexicalCount"] == 2
        assert entry.user_agent == "pytest"
        assert entry.ip_address == "127.0.0.1"

    @pytest.mark.asyncio
    async def test_fallback_logged_as_lexical(self):
        recorder = MagicMock()
        backend = FakeBackend(lexical=[_hit("A")], fail_lexical_times=1, fail_vector=True)

        await _orchestrator(backend, recorder=recorder).intelligent_search(SearchRequest(query="fallback"))

        assert recorder.record.call_args.args[0].search_type == SearchType.LEXICAL

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self):
        recorder = MagicMock()
        backend = FakeBackend(fail_lexical=True, fail_vector=True)

        with pytest.raises(SearchError):
            await _orchestrator(backend, recorder=recorder).intelligent_search(SearchRequest(query="broken"))

        entry: QueryLog = recorder.record.call_args.args[0]
        assert entry.success is False
        assert entry.results_count == 0
        assert "lexical retrieval failed" in entry.error_message

    @pytest.mark.asyncio
    async def test_batch_failed_query_returns_empty_response(self):
        backend = FakeBackend(lexical=[_hit("A")], vector=[_hit("A")], failing_queries=("broken",))
        template = SearchRequest(query="first", size=5)

        responses = await _orchestrator(backend).batch_search(["first", "broken", "third"], template)

        assert [r.query for r in responses] == ["first", "broken", "third"]
        assert _ids(responses[0]) == ["A"]
        assert responses[1].results == []
        assert responses[1].total == 0
        assert responses[1].search_info.degraded is True
        assert responses[1].pagination.size == 5
        assert _ids(responses[2]) == ["A"]
