"""
Unit tests for protocol.py - registry and the slope tile handler.
"""

import io

import numpy as np
import pytest
from PIL import Image

from conftest import TEST_TILE_SIZE, elevation_transport, neighborhood_keys, terrain_png
from slope_api import protocol
from slope_api.error_handling import EncodeFailure, MalformedAddress, UnknownProtocol
from slope_api.protocol import (
    ProtocolRegistry,
    SlopeProtocolHandler,
    register_slope_protocol,
    unregister_slope_protocol,
)
from slope_api.tile_math import tile_ground_resolution

S = TEST_TILE_SIZE


def _rgba(tile_data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(tile_data)) as img:
        return np.asarray(img.convert("RGBA"))


@pytest.fixture
def make_handler(elevation_source, client_provider_factory, monitor):
    def factory(tiles, default=None, source=elevation_source):
        provider = client_provider_factory(elevation_transport(tiles, default=default))
        return SlopeProtocolHandler(source, client_provider=provider, monitor=monitor)

    return factory


class TestProtocolRegistry:

    async def test_dispatch_by_scheme(self):
        registry = ProtocolRegistry()
        seen = []

        async def handler(url):
            seen.append(url)
            return b"tile"

        registry.add_protocol("demo", handler)

        assert await registry.fetch("demo://1/0/0") == b"tile"
        assert seen == ["demo://1/0/0"]

    async def test_unknown_scheme(self):
        with pytest.raises(UnknownProtocol):
            await ProtocolRegistry().fetch("nope://1/0/0")

    async def test_address_without_scheme(self):
        with pytest.raises(MalformedAddress):
            await ProtocolRegistry().fetch("1/0/0")

    def test_host_rejects_duplicate_add(self):
        registry = ProtocolRegistry()
        registry.add_protocol("demo", lambda url: None)
        with pytest.raises(ValueError):
            registry.add_protocol("demo", lambda url: None)


class TestRegistration:

    def test_register_twice_is_a_no_op(self, elevation_source):
        registry = ProtocolRegistry()

        first = register_slope_protocol(registry, elevation_source)
        second = register_slope_protocol(registry, elevation_source)

        assert first is second
        assert registry.schemes == ["slope"]
        assert registry.get("slope") is first

    def test_registries_are_independent(self, elevation_source):
        a, b = ProtocolRegistry(), ProtocolRegistry()
        register_slope_protocol(a, elevation_source)

        assert a.has_protocol("slope")
        assert not b.has_protocol("slope")

    def test_custom_scheme(self, elevation_source):
        registry = ProtocolRegistry()
        handler = register_slope_protocol(registry, elevation_source, scheme="steep")

        assert registry.schemes == ["steep"]
        assert handler.scheme == "steep"

    def test_unregister(self, elevation_source):
        registry = ProtocolRegistry()
        register_slope_protocol(registry, elevation_source)

        assert unregister_slope_protocol(registry) is True
        assert registry.schemes == []
        assert unregister_slope_protocol(registry) is False

    def test_unconfigured_source_still_registers(self):
        registry = ProtocolRegistry()
        handler = register_slope_protocol(registry, None)

        assert registry.get("slope") is handler


class TestSlopeProtocolHandler:

    async def test_uniform_2000m_is_fully_transparent(self, make_handler, monitor):
        handler = make_handler({}, default=np.full((S, S), 2000.0))

        rgba = _rgba(await handler("slope://12/2140/1450"))

        assert rgba.shape == (S, S, 4)
        assert not rgba[..., 3].any()
        assert monitor.fallback_tiles == 0

    async def test_single_missing_neighbor_only_affects_its_edge(
        self, make_handler, center_address, monitor
    ):
        tiles = {key: np.full((S, S), 2000.0) for key in neighborhood_keys(center_address)}
        del tiles[(center_address.zoom, center_address.x - 1, center_address.y)]
        handler = make_handler(tiles)

        alpha = _rgba(await handler(f"slope://{center_address}"))[..., 3]

        # Smoothing radius 2 plus the Sobel radius 1 bounds the artifact
        assert not alpha[:, 3:].any()
        assert alpha[S // 2, 0] > 0
        assert monitor.neighbor_failures == 1

    async def test_all_neighbors_fail(self, make_handler, monitor):
        handler = make_handler({})

        tile_data = await handler("slope://12/2140/1450")
        rgba = _rgba(tile_data)

        assert rgba.shape == (S, S, 4)
        assert not rgba.any()
        assert monitor.fallback_tiles == 1
        assert monitor.neighbor_failures == 9

    async def test_steep_terrain_is_colored(self, make_handler, center_address):
        """A north-south ramp steeper than 50 degrees renders the top stop."""
        step = 1.5 * tile_ground_resolution(center_address, S)  # ~56 degrees
        tiles = {}
        for key, (dx, dy) in neighborhood_keys(center_address).items():
            rows = np.arange(S, dtype=np.float64)[:, None] + (dy + 1) * S
            tiles[key] = np.tile(rows * step, (1, S))
        handler = make_handler(tiles)

        rgba = _rgba(await handler(f"slope://{center_address}"))

        assert np.all(rgba == (0, 0, 200, 215))

    async def test_malformed_address_raises(self, make_handler, monitor):
        handler = make_handler({}, default=np.zeros((S, S)))

        with pytest.raises(MalformedAddress):
            await handler("slope://abc/1/2")
        assert monitor.malformed_requests == 1
        assert monitor.tile_requests == 0

    async def test_unconfigured_source_serves_transparent(self, make_handler, monitor):
        handler = make_handler({}, source=None)

        rgba = _rgba(await handler("slope://3/1/1"))

        assert rgba.shape == (256, 256, 4)
        assert not rgba.any()
        assert monitor.fallback_tiles == 1

    async def test_unconfigured_source_still_rejects_malformed(self, make_handler):
        handler = make_handler({}, source=None)
        with pytest.raises(MalformedAddress):
            await handler("slope://3/one/1")

    async def test_render_failure_serves_transparent(self, make_handler, monkeypatch, monitor):
        def broken_render(*args, **kwargs):
            raise EncodeFailure("disk full")

        monkeypatch.setattr(protocol, "render_slope_tile", broken_render)
        handler = make_handler({}, default=np.full((S, S), 100.0))

        rgba = _rgba(await handler("slope://12/2140/1450"))

        assert rgba.shape == (S, S, 4)
        assert not rgba.any()
        assert monitor.fallback_tiles == 1

    async def test_through_registry(self, elevation_source, client_provider_factory):
        registry = ProtocolRegistry()
        provider = client_provider_factory(
            elevation_transport({}, default=np.full((S, S), 750.0))
        )
        register_slope_protocol(registry, elevation_source, client_provider=provider)

        rgba = _rgba(await registry.fetch("slope://12/2140/1450"))

        assert rgba.shape == (S, S, 4)
        assert not rgba[..., 3].any()

    async def test_oversized_neighbor_does_not_blank_tile(
        self, make_handler, center_address, monitor, monkeypatch
    ):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1500)
        step = 1.5 * tile_ground_resolution(center_address, S)
        tiles = {}
        for key, (dx, dy) in neighborhood_keys(center_address).items():
            rows = np.arange(S, dtype=np.float64)[:, None] + (dy + 1) * S
            tiles[key] = np.tile(rows * step, (1, S))
        z, x, y = center_address.zoom, center_address.x, center_address.y
        tiles[(z, x + 1, y + 1)] = terrain_png(np.zeros((64, 64)))
        handler = make_handler(tiles)

        rgba = _rgba(await handler(f"slope://{center_address}"))

        assert np.all(rgba[:S - 3, :S - 3] == (0, 0, 200, 215))
        assert monitor.fallback_tiles == 0
        assert monitor.neighbor_failures == 1
