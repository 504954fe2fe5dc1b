"""Retrieval adapters: lexical retriever, embedding generator, vector retriever.

Each adapter time-boxes its external call and converts failures into the
search error taxonomy. Backend hits are validated into ``RetrievedDocument``
here, so nothing downstream ever sees a raw backend payload.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Iterable, Mapping
from typing import Any, TypeVar

from pydantic import ValidationError

from searchfusion.constants import RetrievalSource
from searchfusion.search.backend import BackendSearchResult, RetrievalBackend
from searchfusion.search.embeddings import EmbeddingError
from searchfusion.search.errors import LanguageServiceError, RetrievalError, SearchTimeoutError
from searchfusion.search.language import LanguageService
from searchfusion.search.schemas import RetrievedDocument, SearchFilters

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], operation: str, timeout: float) -> T:
    """Await *awaitable*, converting a timeout into :class:`SearchTimeoutError`."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise SearchTimeoutError(operation, timeout) from exc


def to_documents(hits: Iterable[Any], source: RetrievalSource) -> list[RetrievedDocument]:
    """Validate backend hits into documents, keeping the first occurrence of each id.

    Raises:
        RetrievalError: If a hit is neither a mapping nor a ``RetrievedDocument``,
            or fails validation (e.g. missing ``id``).
    """
    documents: list[RetrievedDocument] = []
    seen: set[str] = set()
    for position, hit in enumerate(hits):
        if isinstance(hit, RetrievedDocument):
            document = hit
        elif isinstance(hit, Mapping):
            try:
                document = RetrievedDocument.model_validate(dict(hit))
            except ValidationError as exc:
                raise RetrievalError(source, f"malformed hit at position {position}: {exc}") from exc
        else:
            raise RetrievalError(source, f"unexpected hit type {type(hit).__name__} at position {position}")

        if document.id in seen:
            logger.debug("Dropping duplicate %s hit %s", source, document.id)
            continue
        seen.add(document.id)
        documents.append(document)
    return documents


class LexicalRetriever:
    def __init__(self, backend: RetrievalBackend, timeout: float) -> None:
        self._backend = backend
        self._timeout = timeout

    async def search(self, query: str, filters: SearchFilters, size: int) -> list[RetrievedDocument]:
        """Keyword search, best first.

        Raises:
            RetrievalError: Backend failure or malformed hits.
            SearchTimeoutError: The backend exceeded the lexical time budget.
        """
        try:
            result: BackendSearchResult = await with_timeout(
                self._backend.lexical_search(query, filters, size, 0),
                "lexical search",
                self._timeout,
            )
        except (RetrievalError, SearchTimeoutError):
            raise
        except Exception as exc:
            raise RetrievalError(RetrievalSource.LEXICAL, str(exc) or type(exc).__name__) from exc
        return to_documents(result.hits, RetrievalSource.LEXICAL)


class EmbeddingGenerator:
    def __init__(self, language: LanguageService, timeout: float) -> None:
        self._language = language
        self._timeout = timeout

    async def embed(self, text: str) -> list[float]:
        """Embed query text.

        Raises:
            EmbeddingError: Provider failure, quota exhaustion, or an empty /
                non-finite vector.
            SearchTimeoutError: The call exceeded the embedding time budget.
        """
        try:
            vector = await with_timeout(self._language.embed(text), "embedding", self._timeout)
        except (EmbeddingError, SearchTimeoutError):
            raise
        except LanguageServiceError as exc:
            raise EmbeddingError(str(exc)) from exc

        if not vector:
            raise EmbeddingError("Embedding service returned an empty vector")
        if not all(math.isfinite(component) for component in vector):
            raise EmbeddingError("Embedding contains non-finite components")
        return list(vector)


class VectorRetriever:
    def __init__(self, backend: RetrievalBackend, timeout: float) -> None:
        self._backend = backend
        self._timeout = timeout

    async def search(
        self,
        vector: list[float],
        query: str,
        filters: SearchFilters,
        size: int,
    ) -> list[RetrievedDocument]:
        """Similarity search with a query embedding, best first.

        Raises:
            RetrievalError: Backend failure or malformed hits.
            SearchTimeoutError: The backend exceeded the vector time budget.
        """
        try:
            result: BackendSearchResult = await with_timeout(
                self._backend.vector_search(vector, query, filters, size, 0),
                "vector search",
                self._timeout,
            )
        except (RetrievalError, SearchTimeoutError):
            raise
        except Exception as exc:
            raise RetrievalError(RetrievalSource.VECTOR, str(exc) or type(exc).__name__) from exc
        return to_documents(result.hits, RetrievalSource.VECTOR)
