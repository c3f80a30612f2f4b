"""
HTTP client for elevation tile fetches.

Each overlay tile fans out to 9 upstream requests and a map drag asks for
dozens of overlay tiles at once, so all fetches share one pooled client per app.
"""

import logging
from typing import Callable, Optional

import httpx

from slope_api import __version__
from slope_api.config import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Enough for ~20 overlay tiles in flight, each with its 3x3 neighborhood
MAX_CONNECTIONS = 200
MAX_KEEPALIVE_CONNECTIONS = 40


def create_elevation_client(timeout: float = HTTP_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    """Pooled AsyncClient tuned for elevation tile fan-out."""
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=MAX_CONNECTIONS,
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
        ),
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,  # S3 and CDN-backed sources redirect
        headers={"User-Agent": f"slope-api/{__version__}"},
    )


class ElevationClient:
    """
    Lazily opened client owned by one application.

    Instances are awaitable client providers for ``SlopeProtocolHandler``:
    ``client = await elevation_client()``. The client is reopened if it was
    closed, so a provider outlives app restarts in tests.
    """

    def __init__(self, factory: Callable[[], httpx.AsyncClient] = create_elevation_client):
        self._factory = factory
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._client.is_closed

    async def __call__(self) -> httpx.AsyncClient:
        # Check and assignment run without yielding to the event loop
        if not self.is_open:
            self._client = self._factory()
            logger.info("🔗 Opened elevation HTTP client")
        return self._client

    async def aclose(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        logger.info("🔒 Closed elevation HTTP client")
