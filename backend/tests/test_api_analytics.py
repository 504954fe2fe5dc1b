"""Tests for the analytics API endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from searchfusion.constants import SearchType
from searchfusion.services.analytics import QueryLog


class TestAnalyticsSummary:
    @pytest.mark.asyncio
    async def test_summary(self, test_client):
        summary = {"totalQueries": 3, "successRate": 100.0, "days": 14}

        with patch("searchfusion.services.analytics.get_summary", AsyncMock(return_value=summary)) as mock_summary:
            response = await test_client.get("/api/analytics/summary", params={"days": 14})

        assert response.status_code == 200
        assert response.json() == summary
        assert mock_summary.await_args.kwargs["days"] == 14

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, 366])
    async def test_days_out_of_range(self, test_client, days):
        response = await test_client.get("/api/analytics/summary", params={"days": days})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"


class TestRecentQueries:
    @pytest.mark.asyncio
    async def test_recent_queries_camel_case(self, test_client):
        entries = [QueryLog(id="query_1_aaa", query="gpu", results_count=2, search_type=SearchType.LEXICAL)]

        with patch("searchfusion.services.analytics.recent_queries", AsyncMock(return_value=entries)) as mock_recent:
            response = await test_client.get("/api/analytics/queries", params={"limit": 5, "q": "gpu"})

        assert response.status_code == 200
        data = response.json()
        assert data[0]["id"] == "query_1_aaa"
        assert data[0]["resultsCount"] == 2
        assert data[0]["searchType"] == "lexical"
        assert mock_recent.await_args.kwargs == {"limit": 5, "term": "gpu"}
