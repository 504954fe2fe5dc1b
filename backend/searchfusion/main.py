"""FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from searchfusion.config import get_settings
from searchfusion.database import engine
from searchfusion.search.errors import SearchError

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: startup and shutdown events."""
    logging.getLogger("searchfusion").setLevel(settings.LOG_LEVEL.upper())

    # Startup: make sure pgvector exists, then create missing tables
    from searchfusion.database import Base
    from searchfusion import models  # noqa: F401 - Import models to register them with Base

    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)

    yield

    # Shutdown: let pending analytics writes finish, then dispose the pool
    from searchfusion.api.search import _get_recorder

    recorder = _get_recorder()
    if recorder is not None:
        await recorder.drain()
    await engine.dispose()


app = FastAPI(
    title="SearchFusion",
    description="Hybrid lexical + vector search with reciprocal rank fusion",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handlers ---
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}" for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"error": "Invalid request", "details": details}),
    )


@app.exception_handler(SearchError)
async def search_error_handler(request: Request, exc: SearchError) -> JSONResponse:
    logger.error("Unhandled search error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Search failed", "message": str(exc)},
    )


# --- Router includes ---
from searchfusion.api.analytics import router as analytics_router  # noqa: E402
from searchfusion.api.search import router as search_router  # noqa: E402

app.include_router(search_router, prefix="/api")
app.include_router(analytics_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}
