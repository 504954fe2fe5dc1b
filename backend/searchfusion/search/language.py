"""Language service: the single gateway to text generation and embeddings.

Wraps :class:`AIRouter` (chat completions) and :class:`EmbeddingService`
behind the five operations the search pipeline needs. Every failure surfaces
as :class:`LanguageServiceError` (or its :class:`EmbeddingError` subclass);
callers decide on the fallback.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from searchfusion.ai_router.prompts import intent, query_enhance, search_summary, suggestions
from searchfusion.ai_router.router import AIRouter
from searchfusion.ai_router.schemas import AIRequest, Message, ProviderError
from searchfusion.constants import SearchIntent
from searchfusion.search.embeddings import EmbeddingError, EmbeddingService
from searchfusion.search.errors import LanguageServiceError
from searchfusion.search.schemas import IntentAnalysis, RetrievedDocument, SummaryResult

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_COUNT = 5

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_LIST_MARKER_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")


def parse_json_object(content: str) -> dict[str, Any]:
    """Extract a JSON object from model output.

    Accepts bare JSON, JSON inside a markdown code fence, or JSON embedded in
    surrounding prose.

    Raises:
        LanguageServiceError: If no JSON object can be parsed.
    """
    fence_match = _CODE_FENCE_RE.search(content)
    if fence_match:
        raw = fence_match.group(1)
    else:
        object_match = _JSON_OBJECT_RE.search(content)
        raw = object_match.group(0) if object_match else content.strip()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LanguageServiceError(f"Unparseable model output: {content[:200]!r}") from exc
    if not isinstance(data, dict):
        raise LanguageServiceError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def clean_suggestions(lines: list[str], limit: int) -> list[str]:
    """Trim, strip list markers, drop empties and duplicates, cap at *limit*."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for line in lines:
        text = _LIST_MARKER_RE.sub("", line).strip().strip('"').strip()
        key = text.lower()
        if not text or key in seen:
            continue
        seen.add(key)
        cleaned.append(text)
        if len(cleaned) >= limit:
            break
    return cleaned


def normalize_intent(label: Any, confidence: Any) -> IntentAnalysis:
    """Map a raw label/confidence pair onto a valid :class:`IntentAnalysis`."""
    try:
        parsed_intent = SearchIntent(str(label).strip().lower())
    except ValueError:
        parsed_intent = SearchIntent.INFORMATIONAL

    try:
        value = float(confidence)
    except (TypeError, ValueError):
        value = 0.5
    if not math.isfinite(value):
        value = 0.5
    return IntentAnalysis(intent=parsed_intent, confidence=min(max(value, 0.0), 1.0))


class LanguageService:
    """Text generation and embedding operations used by the search pipeline.

    Args:
        ai_router: Router used for chat completions.
        embedding_service: Service used for query embeddings.
        model: Optional explicit chat model id.
    """

    def __init__(
        self,
        ai_router: AIRouter,
        embedding_service: EmbeddingService,
        model: str | None = None,
    ) -> None:
        self._ai_router = ai_router
        self._embedding_service = embedding_service
        self._model = model

    async def _complete(self, messages: list[Message], max_tokens: int, temperature: float = 0.3) -> str:
        try:
            response = await self._ai_router.chat(
                AIRequest(
                    messages=messages,
                    model=self._model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            )
        except ProviderError as exc:
            raise LanguageServiceError(str(exc)) from exc
        return response.content

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def enhance(self, text: str) -> str:
        """Return the model's rewrite of *text* (unvalidated)."""
        return (await self._complete(query_enhance.build_messages(text), max_tokens=128)).strip()

    async def embed(self, text: str) -> list[float]:
        try:
            return await self._embedding_service.embed_text(text)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(str(exc)) from exc

    async def summarize(self, query: str, results: list[RetrievedDocument]) -> SummaryResult:
        """Summarize the top results for *query*.

        Raises:
            LanguageServiceError: On provider failure or unparseable output.
        """
        payload = [{"title": r.title, "content": r.content} for r in results]
        content = await self._complete(search_summary.build_messages(query, payload), max_tokens=512)
        data = parse_json_object(content)

        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise LanguageServiceError("Summary missing from model output")
        key_points = data.get("keyPoints") or data.get("key_points") or []
        if not isinstance(key_points, list):
            key_points = []
        return SummaryResult(
            summary=summary.strip(),
            key_points=[str(point).strip() for point in key_points if str(point).strip()][:5],
        )

    async def classify_intent(self, query: str) -> IntentAnalysis:
        content = await self._complete(intent.build_messages(query), max_tokens=64, temperature=0.0)
        data = parse_json_object(content)
        return normalize_intent(data.get("intent"), data.get("confidence"))

    async def suggest(self, query: str, count: int = DEFAULT_SUGGESTION_COUNT) -> list[str]:
        content = await self._complete(suggestions.build_messages(query, count=count), max_tokens=256, temperature=0.7)
        return clean_suggestions(content.splitlines(), limit=count)
