"""Retrieval backend: the document store queried by both retrieval paths.

Lexical search: PostgreSQL tsvector (title weight A, content weight B)
ranked by ``ts_rank_cd`` with ``ts_headline`` highlights.
Vector search: pgvector cosine distance over chunk embeddings, best chunk
per document.

Backends return raw hit mappings; turning them into ``RetrievedDocument``
objects is the retrievers' job.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import Select, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from searchfusion.database import async_session_factory
from searchfusion.models import TS_CONFIG, Document, DocumentEmbedding
from searchfusion.search.schemas import SearchFilters

logger = logging.getLogger(__name__)

_HIGHLIGHT_DELIMITER = " ... "
_HEADLINE_OPTIONS = (
    f"'StartSel=<mark>, StopSel=</mark>, MaxWords=35, MinWords=15, "
    f"MaxFragments=3, FragmentDelimiter=\"{_HIGHLIGHT_DELIMITER}\"'"
)
_SNIPPET_MAX_LENGTH = 300


class BackendSearchResult(BaseModel):
    """One page of raw hits from the backend, best first."""

    hits: list[Any] = Field(default_factory=list)
    total: int = 0
    took_ms: int = 0


class RetrievalBackend(ABC):
    """Document store supporting keyword and vector similarity search."""

    @abstractmethod
    async def lexical_search(
        self,
        query: str,
        filters: SearchFilters,
        size: int,
        from_: int = 0,
    ) -> BackendSearchResult: ...

    @abstractmethod
    async def vector_search(
        self,
        vector: list[float],
        query: str,
        filters: SearchFilters,
        size: int,
        from_: int = 0,
    ) -> BackendSearchResult: ...

    async def index_stats(self) -> dict[str, int]:
        """Return document counts. Backends without stats report zeros."""
        return {"total_documents": 0, "embedded_documents": 0}


def _apply_filters(stmt: Select, filters: SearchFilters) -> Select:
    """Add the structured filter predicates to a statement selecting from documents."""
    if filters.category is not None:
        stmt = stmt.where(Document.category == filters.category)
    if filters.tags:
        # JSONB containment: every requested tag must be present
        stmt = stmt.where(Document.tags.contains(filters.tags))
    if filters.author is not None:
        stmt = stmt.where(Document.author == filters.author)
    if filters.date_range is not None:
        if filters.date_range.from_ is not None:
            stmt = stmt.where(Document.published_at >= filters.date_range.from_)
        if filters.date_range.to is not None:
            stmt = stmt.where(Document.published_at <= filters.date_range.to)
    return stmt


def _document_metadata(row: Any) -> dict[str, Any]:
    metadata: dict[str, Any] = dict(row.extra or {})
    if row.category is not None:
        metadata["category"] = row.category
    if row.author is not None:
        metadata["author"] = row.author
    if row.tags:
        metadata["tags"] = list(row.tags)
    if row.published_at is not None:
        metadata["publishedAt"] = row.published_at.isoformat()
    return metadata


def _truncate_snippet(text: str) -> str:
    if len(text) <= _SNIPPET_MAX_LENGTH:
        return text
    return text[:_SNIPPET_MAX_LENGTH] + "..."


class PostgresRetrievalBackend(RetrievalBackend):
    """PostgreSQL full-text + pgvector backend.

    Every query opens its own session from *session_factory*; the lexical and
    vector paths run concurrently and an ``AsyncSession`` allows only one
    operation at a time.

    Args:
        session_factory: Factory for async SQLAlchemy sessions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_factory) -> None:
        self._session_factory = session_factory

    async def lexical_search(
        self,
        query: str,
        filters: SearchFilters,
        size: int,
        from_: int = 0,
    ) -> BackendSearchResult:
        """Full-text search over the generated ``search_vector`` column."""
        started = time.perf_counter()
        ts_config = literal_column(f"'{TS_CONFIG}'")

        # websearch_to_tsquery tolerates quotes, "or" and "-" from user input
        tsquery = func.websearch_to_tsquery(ts_config, query)
        score = func.ts_rank_cd(Document.search_vector, tsquery).label("score")
        headline = func.ts_headline(
            ts_config,
            func.coalesce(Document.content, ""),
            tsquery,
            literal_column(_HEADLINE_OPTIONS),
        ).label("headline")
        total_count = func.count().over().label("total_count")

        stmt = select(
            Document.id,
            Document.title,
            Document.content,
            Document.url,
            Document.category,
            Document.author,
            Document.tags,
            Document.published_at,
            Document.extra,
            headline,
            score,
            total_count,
        ).where(Document.search_vector.op("@@")(tsquery))
        stmt = _apply_filters(stmt, filters)
        stmt = stmt.order_by(score.desc(), Document.id.asc()).limit(size).offset(from_)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.fetchall()

        hits = [
            {
                "id": row.id,
                "title": row.title or "",
                "content": row.content or "",
                "url": row.url,
                "metadata": _document_metadata(row),
                "raw_score": float(row.score),
                "highlights": [
                    fragment.strip()
                    for fragment in (row.headline or "").split(_HIGHLIGHT_DELIMITER)
                    if "<mark>" in fragment
                ],
            }
            for row in rows
        ]
        took_ms = int((time.perf_counter() - started) * 1000)
        logger.debug("Lexical search %r: %d hits in %dms", query, len(hits), took_ms)
        return BackendSearchResult(hits=hits, total=rows[0].total_count if rows else 0, took_ms=took_ms)

    async def vector_search(
        self,
        vector: list[float],
        query: str,
        filters: SearchFilters,
        size: int,
        from_: int = 0,
    ) -> BackendSearchResult:
        """Cosine similarity search keeping the best-matching chunk per document."""
        started = time.perf_counter()
        cosine_distance = DocumentEmbedding.embedding.cosine_distance(vector)

        # Inner subquery: DISTINCT ON (document_id) keeps only the best chunk per document
        inner = (
            select(
                DocumentEmbedding.document_id,
                DocumentEmbedding.chunk_text,
                cosine_distance.label("cosine_distance"),
            )
            .distinct(DocumentEmbedding.document_id)
            .join(Document, DocumentEmbedding.document_id == Document.id)
            .order_by(DocumentEmbedding.document_id, cosine_distance.asc())
        )
        inner = _apply_filters(inner, filters).subquery("best_chunks")

        total_count = func.count().over().label("total_count")
        stmt = (
            select(
                Document.id,
                Document.title,
                Document.content,
                Document.url,
                Document.category,
                Document.author,
                Document.tags,
                Document.published_at,
                Document.extra,
                inner.c.chunk_text,
                inner.c.cosine_distance,
                total_count,
            )
            .join(inner, Document.id == inner.c.document_id)
            .order_by(inner.c.cosine_distance.asc(), Document.id.asc())
            .limit(size)
            .offset(from_)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.fetchall()

        hits = [
            {
                "id": row.id,
                "title": row.title or "",
                "content": row.content or "",
                "url": row.url,
                "metadata": _document_metadata(row),
                "raw_score": round(1.0 - float(row.cosine_distance), 10),
                "highlights": [_truncate_snippet(row.chunk_text)] if row.chunk_text else [],
            }
            for row in rows
        ]
        took_ms = int((time.perf_counter() - started) * 1000)
        logger.debug("Vector search %r: %d hits in %dms", query, len(hits), took_ms)
        return BackendSearchResult(hits=hits, total=rows[0].total_count if rows else 0, took_ms=took_ms)

    async def index_stats(self) -> dict[str, int]:
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(Document))
            embedded = await session.scalar(select(func.count(func.distinct(DocumentEmbedding.document_id))))
        return {"total_documents": total or 0, "embedded_documents": embedded or 0}
