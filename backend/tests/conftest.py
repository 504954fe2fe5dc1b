import os
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Set test environment variables before importing application modules
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://search:search@db:5432/search_test")
os.environ.setdefault("ANALYTICS_ENABLED", "false")
os.environ.setdefault("EMBEDDING_SERVICE_URL", "")


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def mock_db() -> AsyncMock:
    """An AsyncSession stand-in; tests configure ``execute`` as needed."""
    return AsyncMock(spec=AsyncSession)


@pytest_asyncio.fixture(scope="function")
async def test_app(mock_db: AsyncMock):
    """Provide the FastAPI app with the database dependency overridden."""
    from searchfusion.database import get_db
    from searchfusion.main import app

    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client bound to the app (lifespan is not run)."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
