"""
FastAPI application entry point for the Email Metrics snapshot API.

This module configures logging and CORS, builds the shared infrastructure
clients in the lifespan, registers the API routers and starts the ASGI server.

Clients created at startup and stored on ``app.state``:
- db_pool: asyncpg pool (snapshots, snapshot_shares, storage.objects)
- http_client: httpx.AsyncClient used by the storage client
- storage: SupabaseStorageClient
- object_index: StorageObjectIndex
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from emailmetrics import __version__
from emailmetrics.api import api_router
from emailmetrics.core.config import get_settings
from emailmetrics.core.database import close_db_pool, create_db_pool
from emailmetrics.core.storage import StorageObjectIndex, SupabaseStorageClient

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
# Request lines from the storage client are too chatty at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Create the database connection pool
        - Create the HTTP client and the storage clients built on it

    On shutdown:
        - Close the HTTP client
        - Close the database connection pool
    """
    # Startup
    logger.info("Email Metrics API starting")
    app.state.db_pool = None
    app.state.object_index = None
    try:
        app.state.db_pool = await create_db_pool(settings)
        app.state.object_index = StorageObjectIndex(app.state.db_pool, settings)
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        # Continue startup; endpoints needing the database answer 503

    app.state.http_client = httpx.AsyncClient(timeout=settings.storage_timeout_seconds)
    app.state.storage = SupabaseStorageClient(app.state.http_client, settings)

    yield

    # Shutdown
    logger.info("Email Metrics API shutting down")
    await app.state.http_client.aclose()
    try:
        await close_db_pool(app.state.db_pool)
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


# Create FastAPI application
app = FastAPI(
    title="Email Metrics API",
    version=__version__,
    description=(
        "Builds aggregate email performance snapshots from uploaded campaign, "
        "flow and subscriber CSV exports, for the dashboard and public share links."
    ),
    lifespan=lifespan,
)

# Next.js API routes proxy to this service
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers (/shared, /snapshots)
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "Email Metrics API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "emailmetrics.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
