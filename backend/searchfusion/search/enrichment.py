"""Best-effort AI enrichment of search responses: summary, intent, suggestions.

Each call is time-boxed and isolated; a failure yields the fallback value for
that call only and never affects ranking or the other calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from searchfusion.constants import (
    FALLBACK_INTENT,
    FALLBACK_INTENT_CONFIDENCE,
    FALLBACK_SUMMARY,
)
from searchfusion.search.errors import LanguageServiceError
from searchfusion.search.language import DEFAULT_SUGGESTION_COUNT, LanguageService
from searchfusion.search.schemas import Enrichment, IntentAnalysis, RetrievedDocument, SummaryResult

logger = logging.getLogger(__name__)

SUMMARY_RESULT_LIMIT = 5

T = TypeVar("T")


def fallback_summary() -> SummaryResult:
    return SummaryResult(summary=FALLBACK_SUMMARY, key_points=[])


def fallback_intent() -> IntentAnalysis:
    return IntentAnalysis(intent=FALLBACK_INTENT, confidence=FALLBACK_INTENT_CONFIDENCE)


class AIEnricher:
    """Runs the enrichment calls with per-call timeouts and fallbacks.

    Args:
        language: Language service used for all three calls.
        timeout: Seconds allowed per call.
    """

    def __init__(self, language: LanguageService, timeout: float) -> None:
        self._language = language
        self._timeout = timeout

    async def _guarded(self, label: str, call: Callable[[], Awaitable[T]], fallback: Callable[[], T]) -> T:
        try:
            return await asyncio.wait_for(call(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %ss, using fallback", label, self._timeout)
        except (LanguageServiceError, ValueError) as exc:
            logger.warning("%s failed, using fallback: %s", label, exc)
        except Exception:
            logger.exception("%s raised unexpectedly, using fallback", label)
        return fallback()

    async def summarize(self, query: str, results: list[RetrievedDocument]) -> SummaryResult:
        if not results:
            return fallback_summary()
        top = results[:SUMMARY_RESULT_LIMIT]
        return await self._guarded("Summary", lambda: self._language.summarize(query, top), fallback_summary)

    async def classify_intent(self, query: str) -> IntentAnalysis:
        return await self._guarded("Intent analysis", lambda: self._language.classify_intent(query), fallback_intent)

    async def suggest(self, query: str, count: int = DEFAULT_SUGGESTION_COUNT) -> list[str]:
        return await self._guarded("Suggestions", lambda: self._language.suggest(query, count), list)

    def start(self, query: str) -> PendingEnrichment:
        """Begin the calls that only need the query (intent, suggestions).

        They run concurrently with retrieval; :meth:`PendingEnrichment.finish`
        adds the summary once results exist and joins everything.
        """
        return PendingEnrichment(self, query)

    async def enrich(self, query: str, results: list[RetrievedDocument]) -> Enrichment:
        """Run all three calls concurrently and assemble the enrichment block."""
        return await self.start(query).finish(results)


class PendingEnrichment:
    def __init__(self, enricher: AIEnricher, query: str) -> None:
        self._enricher = enricher
        self._query = query
        self._intent_task = asyncio.create_task(enricher.classify_intent(query))
        self._suggestions_task = asyncio.create_task(enricher.suggest(query))

    async def finish(self, results: list[RetrievedDocument]) -> Enrichment:
        summary, analysis, suggestions = await asyncio.gather(
            self._enricher.summarize(self._query, results),
            self._intent_task,
            self._suggestions_task,
        )
        return Enrichment(
            summary=summary.summary,
            key_points=summary.key_points,
            intent=analysis.intent,
            confidence=analysis.confidence,
            suggestions=suggestions,
        )

    def cancel(self) -> None:
        """Abandon the in-flight calls (the search itself failed)."""
        self._intent_task.cancel()
        self._suggestions_task.cancel()
