"""
Shared async HTTP client for the remote survey API.

Every remote exchange (share token validation, quota check, submission,
vendor beacons) goes through one `httpx.AsyncClient` so connections are
pooled and the request timeout is applied uniformly.

Key Components:
- Global client singleton (_client)
- init_http_client(): Create the client at application startup
- get_http_client(): Get the client (initializes if needed)
- close_http_client(): Close the client at application shutdown

Usage:
    # In the FastAPI lifespan
    await init_http_client()
    yield
    await close_http_client()

    # In services
    client = await get_http_client()
    response = await client.get("/api/share/validate/abc")
"""

import logging
from typing import Optional

import httpx

from quotagate.core.config import get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# Global Client Singleton
# =============================================================================

_client: Optional[httpx.AsyncClient] = None


# =============================================================================
# Client Lifecycle Functions
# =============================================================================

async def init_http_client() -> httpx.AsyncClient:
    """
    Initialize the shared HTTP client.

    The client is bound to `survey_api_url` and uses `request_timeout_seconds`
    as a hard cutoff for connect, read and write. Calling this again while a
    client exists returns the existing one.

    Returns:
        httpx.AsyncClient: The shared client instance.
    """
    global _client

    if _client is None:
        settings = get_settings()
        _client = httpx.AsyncClient(
            base_url=settings.survey_api_url,
            timeout=httpx.Timeout(settings.request_timeout_seconds),
            headers={"Content-Type": "application/json"},
        )
        logger.info(f"HTTP client initialized for {settings.survey_api_url}")

    return _client


async def get_http_client() -> httpx.AsyncClient:
    """Return the shared client, creating it lazily on first use."""
    global _client

    if _client is None:
        await init_http_client()

    assert _client is not None, "Client should be initialized after init_http_client()"

    return _client


async def close_http_client() -> None:
    """Close the shared client. Safe to call when nothing was initialized."""
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("HTTP client closed")
