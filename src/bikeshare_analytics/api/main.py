"""FastAPI application entry point.

Main application setup with CORS, startup hooks, and route registration.

To run:
    uvicorn bikeshare_analytics.api.main:app --reload --port 8000
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bikeshare_analytics.api.dependencies import get_catalog
from bikeshare_analytics.api.routes import queries
from bikeshare_analytics.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup: configure logging and warm the schema catalog. A database that is
    not reachable yet is not fatal; the catalog is refreshed again on first query.

    Args:
        app: FastAPI application instance

    Yields:
        None: Control returns to application during runtime
    """
    configure_logging()
    logger.info("api_starting")

    try:
        get_catalog().initialize()
    except Exception as e:
        logger.warning("schema_catalog_warmup_failed", error=str(e), error_type=type(e).__name__)

    yield

    logger.info("api_stopping")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Bike-Share Analytics API",
    description="Natural language questions over the bike-share PostgreSQL database",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# ============================================================================
# CORS Middleware
# ============================================================================

ALLOWED_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000",
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# Route Registration
# ============================================================================


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "service": "bikeshare-analytics-api"}


app.include_router(queries.router, prefix="/api", tags=["queries"])


# ============================================================================
# Development Server
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bikeshare_analytics.api.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info",
    )
