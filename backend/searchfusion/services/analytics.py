"""Search analytics: fire-and-forget query logging + read-side aggregation."""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import case, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from searchfusion.constants import SearchType
from searchfusion.database import async_session_factory
from searchfusion.models import QueryLogEntry

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
TOP_QUERY_LIMIT = 20
FILTER_FACET_LIMIT = 10

# Latency bucket upper bounds in milliseconds
FAST_QUERY_MS = 1000
MEDIUM_QUERY_MS = 3000


def generate_query_id() -> str:
    """Return an id like ``query_1718000000000_k3j9x0a2b``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"query_{int(time.time() * 1000)}_{suffix}"


class QueryLog(BaseModel):
    """One search request as recorded for analytics."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str = Field(default_factory=generate_query_id)
    query: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    results_count: int = 0
    latency_ms: float = 0.0
    search_type: SearchType
    filters: dict[str, Any] | None = None
    success: bool = True
    error_message: str | None = None
    search_info: dict[str, Any] | None = None
    user_agent: str | None = None
    ip_address: str | None = None


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class AnalyticsSink(ABC):
    @abstractmethod
    async def log_query(self, entry: QueryLog) -> None: ...


class DatabaseAnalyticsSink(AnalyticsSink):
    """Writes query logs to the ``query_logs`` table using a fresh session per write."""

    async def log_query(self, entry: QueryLog) -> None:
        async with async_session_factory() as session:
            session.add(
                QueryLogEntry(
                    id=entry.id,
                    query=entry.query,
                    timestamp=entry.timestamp,
                    results_count=entry.results_count,
                    latency_ms=entry.latency_ms,
                    search_type=str(entry.search_type),
                    filters=entry.filters,
                    success=entry.success,
                    error_message=entry.error_message,
                    search_info=entry.search_info,
                    user_agent=entry.user_agent,
                    ip_address=entry.ip_address,
                )
            )
            await session.commit()


class LoggingAnalyticsSink(AnalyticsSink):
    async def log_query(self, entry: QueryLog) -> None:
        logger.info(
            "query id=%s type=%s success=%s results=%d latency=%.1fms query=%r",
            entry.id,
            entry.search_type,
            entry.success,
            entry.results_count,
            entry.latency_ms,
            entry.query,
        )


class AnalyticsRecorder:
    """Dispatches query logs to a sink without blocking the caller.

    References to in-flight tasks are kept until they finish so they are not
    garbage collected mid-write.
    """

    def __init__(self, sink: AnalyticsSink) -> None:
        self._sink = sink
        self._tasks: set[asyncio.Task[None]] = set()

    def record(self, entry: QueryLog) -> asyncio.Task[None]:
        task = asyncio.create_task(self._write(entry))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _write(self, entry: QueryLog) -> None:
        try:
            await self._sink.log_query(entry)
        except Exception:
            logger.exception("Failed to record query log %s", entry.id)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight write (used at shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


def build_sink(kind: str) -> AnalyticsSink:
    if kind == "database":
        return DatabaseAnalyticsSink()
    if kind == "log":
        return LoggingAnalyticsSink()
    raise ValueError(f"Unknown analytics sink: {kind!r}")


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


async def get_summary(db: AsyncSession, days: int = 30) -> dict[str, Any]:
    """Aggregate query logs from the last *days* days."""
    since = datetime.now(UTC) - timedelta(days=days)
    in_window = QueryLogEntry.timestamp >= since

    totals = await db.execute(
        select(
            func.count(QueryLogEntry.id),
            func.count(func.distinct(QueryLogEntry.query)),
            func.avg(QueryLogEntry.latency_ms),
            func.sum(case((QueryLogEntry.success.is_(True), 1), else_=0)),
            func.sum(case((QueryLogEntry.latency_ms < FAST_QUERY_MS, 1), else_=0)),
            func.sum(
                case(
                    (
                        (QueryLogEntry.latency_ms >= FAST_QUERY_MS) & (QueryLogEntry.latency_ms < MEDIUM_QUERY_MS),
                        1,
                    ),
                    else_=0,
                )
            ),
            func.sum(case((QueryLogEntry.latency_ms >= MEDIUM_QUERY_MS, 1), else_=0)),
        ).where(in_window)
    )
    row = totals.one()
    total_queries = row[0] or 0
    success_count = row[3] or 0

    # Search type distribution
    type_result = await db.execute(
        select(QueryLogEntry.search_type, func.count(QueryLogEntry.id)).where(in_window).group_by(
            QueryLogEntry.search_type
        )
    )
    search_types = {str(search_type): 0 for search_type in SearchType}
    for search_type, count in type_result.fetchall():
        search_types[search_type] = count

    # Top successful queries
    top_result = await db.execute(
        select(
            QueryLogEntry.query,
            func.count(QueryLogEntry.id).label("cnt"),
            func.avg(QueryLogEntry.latency_ms),
            func.max(QueryLogEntry.timestamp),
        )
        .where(in_window, QueryLogEntry.success.is_(True))
        .group_by(QueryLogEntry.query)
        .order_by(text("cnt DESC"))
        .limit(TOP_QUERY_LIMIT)
    )
    top_queries = [
        {
            "query": r[0],
            "count": r[1],
            "averageLatency": round(float(r[2] or 0)),
            "lastSearched": r[3].isoformat() if r[3] else None,
        }
        for r in top_result.fetchall()
    ]

    # Daily volume
    daily_result = await db.execute(
        text("""
            SELECT date_trunc('day', timestamp)::date AS day, COUNT(*) AS count, AVG(latency_ms) AS avg_latency
            FROM query_logs
            WHERE timestamp >= :since
            GROUP BY day ORDER BY day
        """),
        {"since": since},
    )
    query_trends = [
        {"date": str(r[0]), "count": r[1], "averageLatency": round(float(r[2] or 0))} for r in daily_result.fetchall()
    ]

    # Popular filters
    category_result = await db.execute(
        text("""
            SELECT filters->>'category' AS category, COUNT(*) AS cnt
            FROM query_logs
            WHERE timestamp >= :since AND filters->>'category' IS NOT NULL
            GROUP BY category ORDER BY cnt DESC LIMIT :limit
        """),
        {"since": since, "limit": FILTER_FACET_LIMIT},
    )
    author_result = await db.execute(
        text("""
            SELECT filters->>'author' AS author, COUNT(*) AS cnt
            FROM query_logs
            WHERE timestamp >= :since AND filters->>'author' IS NOT NULL
            GROUP BY author ORDER BY cnt DESC LIMIT :limit
        """),
        {"since": since, "limit": FILTER_FACET_LIMIT},
    )

    # Errors
    error_result = await db.execute(
        select(QueryLogEntry.error_message, func.count(QueryLogEntry.id).label("cnt"))
        .where(in_window, QueryLogEntry.success.is_(False))
        .group_by(QueryLogEntry.error_message)
        .order_by(text("cnt DESC"))
        .limit(FILTER_FACET_LIMIT)
    )
    error_types = [{"error": r[0] or "unknown", "count": r[1]} for r in error_result.fetchall()]

    return {
        "totalQueries": total_queries,
        "totalUniqueQueries": row[1] or 0,
        "averageLatency": round(float(row[2] or 0)),
        "successRate": round(success_count / total_queries * 100, 1) if total_queries else 0,
        "topQueries": top_queries,
        "queryTrends": query_trends,
        "searchTypes": search_types,
        "popularFilters": {
            "categories": [{"category": r[0], "count": r[1]} for r in category_result.fetchall()],
            "authors": [{"author": r[0], "count": r[1]} for r in author_result.fetchall()],
        },
        "performanceMetrics": {
            "fastQueries": row[4] or 0,
            "mediumQueries": row[5] or 0,
            "slowQueries": row[6] or 0,
        },
        "errorStats": {
            "totalErrors": total_queries - success_count,
            "errorTypes": error_types,
        },
        "days": days,
    }


async def recent_queries(db: AsyncSession, limit: int = 50, term: str | None = None) -> list[QueryLog]:
    """Most recent query logs, newest first, optionally matching *term*."""
    stmt = select(QueryLogEntry).order_by(QueryLogEntry.timestamp.desc()).limit(limit)
    if term:
        pattern = f"%{term}%"
        stmt = stmt.where(QueryLogEntry.query.ilike(pattern) | QueryLogEntry.error_message.ilike(pattern))
    result = await db.execute(stmt)
    return [QueryLog.model_validate(entry) for entry in result.scalars().all()]
