"""Search analytics API: query log summaries and recent queries."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from searchfusion.database import get_db
from searchfusion.services import analytics
from searchfusion.services.analytics import QueryLog

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/summary")
async def get_summary(
    days: int = Query(30, ge=1, le=365),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    """Aggregated search metrics for the last ``days`` days."""
    return await analytics.get_summary(db, days=days)


@router.get("/queries", response_model=list[QueryLog])
async def get_recent_queries(
    limit: int = Query(50, ge=1, le=500),  # noqa: B008
    q: str | None = Query(None, min_length=1, max_length=200),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> list[QueryLog]:
    """Most recent query logs, optionally filtered by a term in the query or error."""
    return await analytics.recent_queries(db, limit=limit, term=q)
