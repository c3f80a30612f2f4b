"""
Global pytest configuration and fixtures for slope overlay tests.
"""

import io
import re
from typing import Callable, Dict, Optional, Tuple

import httpx
import numpy as np
import pytest
from PIL import Image

from slope_api.config import ElevationSourceConfig
from slope_api.elevation_decoder import Encoding, encode_elevation
from slope_api.error_handling import HealthMonitor
from slope_api.tile_math import TileAddress

# Small tiles keep the full pipeline fast; geometry does not depend on S
TEST_TILE_SIZE = 32
TEST_URL_TEMPLATE = "https://elevation.test/{z}/{x}/{y}.png"
_TILE_URL = re.compile(r"/(\d+)/(\d+)/(\d+)\.png$")

TileKey = Tuple[int, int, int]


def terrain_png(elevation: np.ndarray, encoding: Encoding = Encoding.MAPBOX) -> bytes:
    """Encode an elevation grid as a terrain-RGB PNG."""
    img = Image.fromarray(encode_elevation(elevation, encoding), "RGB")
    img_bytes = io.BytesIO()
    img.save(img_bytes, format="PNG")
    return img_bytes.getvalue()


def elevation_transport(
    tiles: Dict[TileKey, object],
    default: Optional[object] = None,
    encoding: Encoding = Encoding.MAPBOX,
    requests: Optional[list] = None,
) -> httpx.MockTransport:
    """
    Fake elevation server.

    ``tiles`` maps (z, x, y) to an elevation grid, an int HTTP status, raw
    bytes, or an exception instance to raise. Unlisted tiles use ``default``
    (404 when None).
    """

    def handler(request: httpx.Request) -> httpx.Response:
        match = _TILE_URL.search(request.url.path)
        if match is None:
            return httpx.Response(404)
        key = tuple(int(v) for v in match.groups())
        if requests is not None:
            requests.append(key)

        entry = tiles.get(key, default)
        if entry is None:
            return httpx.Response(404)
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, int):
            return httpx.Response(entry)
        if isinstance(entry, bytes):
            return httpx.Response(200, content=entry, headers={"Content-Type": "image/png"})
        return httpx.Response(
            200, content=terrain_png(np.asarray(entry), encoding), headers={"Content-Type": "image/png"}
        )

    return httpx.MockTransport(handler)


def neighborhood_keys(center: TileAddress):
    """(z, x, y) of the 3x3 block around ``center`` mapped to its (dx, dy)."""
    return {
        (center.zoom, center.x + dx, center.y + dy): (dx, dy)
        for dy in (-1, 0, 1)
        for dx in (-1, 0, 1)
    }


@pytest.fixture
def center_address() -> TileAddress:
    """A tile in the Alps at zoom 12."""
    return TileAddress(12, 2140, 1450)


@pytest.fixture
def elevation_source() -> ElevationSourceConfig:
    return ElevationSourceConfig(
        url_template=TEST_URL_TEMPLATE,
        encoding=Encoding.MAPBOX,
        tile_size=TEST_TILE_SIZE,
        max_zoom=14,
        attribution="test elevation",
    )


@pytest.fixture
def monitor() -> HealthMonitor:
    return HealthMonitor()


@pytest.fixture
def client_provider_factory() -> Callable:
    """Build an async client provider backed by a MockTransport."""

    def factory(transport: httpx.MockTransport):
        client = httpx.AsyncClient(transport=transport)

        async def provider() -> httpx.AsyncClient:
            return client

        return provider

    return factory


# Markers for different test types
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: fast unit tests (< 1s each)")
    config.addinivalue_line("markers", "integration: tests that exercise the HTTP application")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on location."""
    for item in items:
        path = str(item.fspath)
        if "unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "integration/" in path:
            item.add_marker(pytest.mark.integration)
