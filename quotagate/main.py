"""
FastAPI application entry point for the Quota Gate API.

This module configures logging and CORS, registers the API routers, and ties
the shared HTTP client and live respondent sessions to the app lifespan.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quotagate import __version__
from quotagate.api import api_router
from quotagate.core.config import get_settings
from quotagate.core.dependencies import get_session_registry
from quotagate.core.http import close_http_client, init_http_client


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Create the shared HTTP client for the survey API
    On shutdown:
        - Close live respondent sessions (pending restarts, beacons)
        - Close the shared HTTP client
    """
    logger.info("Quota Gate API starting")
    await init_http_client()

    yield

    logger.info("Quota Gate API shutting down")
    await get_session_registry().close_all()
    await close_http_client()


# Create FastAPI application
app = FastAPI(
    title="Quota Gate API",
    version=__version__,
    description=(
        "Survey quota targeting and respondent qualification. "
        "Provides endpoints for quota validation, screening synthesis, "
        "vendor allocation and the respondent qualification flow."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
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
        "name": "Quota Gate API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "quotagate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
