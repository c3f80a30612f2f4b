"""
Tile protocol handling.

A host asks for overlay tiles by address (``slope://{z}/{x}/{y}``) instead of
by network URL. The ``ProtocolRegistry`` maps scheme names to async handlers;
``SlopeProtocolHandler`` is the handler that computes slope tiles on demand.
"""

import asyncio
import functools
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from slope_api.color_mapping import DEFAULT_PALETTE, Palette
from slope_api.config import (
    CPU_WORKERS,
    SLOPE_PROTOCOL_SCHEME,
    SLOPE_SMOOTHING,
    TILE_SIZE,
    ElevationSourceConfig,
)
from slope_api.error_handling import (
    HealthMonitor,
    MalformedAddress,
    UnknownProtocol,
    create_transparent_tile,
    health_monitor,
    log_performance,
)
from slope_api.http_client import ElevationClient
from slope_api.neighborhood import fetch_neighborhood
from slope_api.tile_math import TileAddress, parse_tile_address
from slope_api.tile_renderer import render_slope_tile

logger = logging.getLogger(__name__)

TileHandler = Callable[[str], Awaitable[bytes]]

# Thread pool for CPU-intensive tile generation
CPU_EXECUTOR = ThreadPoolExecutor(max_workers=CPU_WORKERS, thread_name_prefix="slope-cpu")


class ProtocolRegistry:
    """Scheme name -> tile handler. One instance per host."""

    def __init__(self):
        self._handlers: Dict[str, TileHandler] = {}

    def add_protocol(self, scheme: str, handler: TileHandler) -> None:
        if scheme in self._handlers:
            raise ValueError(f"Protocol {scheme!r} is already registered")
        self._handlers[scheme] = handler

    def remove_protocol(self, scheme: str) -> None:
        self._handlers.pop(scheme, None)

    def get(self, scheme: str) -> Optional[TileHandler]:
        return self._handlers.get(scheme)

    def has_protocol(self, scheme: str) -> bool:
        return scheme in self._handlers

    @property
    def schemes(self) -> List[str]:
        return sorted(self._handlers)

    async def fetch(self, url: str) -> bytes:
        """Resolve ``<scheme>://...`` through the registered handler."""
        scheme, sep, _ = url.partition("://")
        if not sep:
            raise MalformedAddress(f"Tile address has no scheme: {url!r}")
        handler = self._handlers.get(scheme)
        if handler is None:
            raise UnknownProtocol(f"No handler registered for {scheme}://")
        return await handler(url)


class SlopeProtocolHandler:
    """
    Computes avalanche slope tiles for ``<scheme>://{z}/{x}/{y}`` addresses.

    Malformed addresses raise MalformedAddress. Every other failure (network,
    decode, encode, unconfigured source) returns a transparent tile.
    """

    def __init__(
        self,
        source: Optional[ElevationSourceConfig],
        palette: Palette = DEFAULT_PALETTE,
        scheme: str = SLOPE_PROTOCOL_SCHEME,
        client_provider: Optional[Callable[[], Awaitable[httpx.AsyncClient]]] = None,
        executor: Optional[Executor] = CPU_EXECUTOR,
        smooth: bool = SLOPE_SMOOTHING,
        monitor: HealthMonitor = health_monitor,
    ):
        self.source = source
        self.palette = palette
        self.scheme = scheme
        self.client_provider = client_provider or ElevationClient()
        self.executor = executor
        self.smooth = smooth
        self.monitor = monitor

    @property
    def tile_size(self) -> int:
        return self.source.tile_size if self.source else TILE_SIZE

    def transparent_tile(self) -> bytes:
        return create_transparent_tile(self.tile_size)

    async def __call__(self, url: str) -> bytes:
        try:
            address = parse_tile_address(url, self.scheme)
        except MalformedAddress:
            self.monitor.record_malformed_request()
            raise

        if self.source is None:
            self.monitor.record_tile_request(fallback=True)
            return self.transparent_tile()

        try:
            tile_data = await self.render(address)
        except Exception as e:
            logger.error(f"Slope tile {address} failed, serving transparent tile: {e}", exc_info=True)
            self.monitor.record_tile_request(fallback=True)
            return self.transparent_tile()

        if tile_data is None:
            self.monitor.record_tile_request(fallback=True)
            return self.transparent_tile()

        self.monitor.record_tile_request()
        return tile_data

    @log_performance
    async def render(self, address: TileAddress) -> Optional[bytes]:
        """Fetch the neighborhood and render; None when no elevation data arrived."""
        client = await self.client_provider()
        neighborhood = await fetch_neighborhood(address, self.source, client)
        self.monitor.record_neighbor_failures(len(neighborhood.failures))

        if neighborhood.all_failed:
            logger.warning(f"No elevation data for any neighbor of {address}")
            return None

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor,
            functools.partial(
                render_slope_tile,
                neighborhood.subgrids,
                address,
                self.palette,
                self.source.tile_size,
                smooth=self.smooth,
            ),
        )


def register_slope_protocol(
    registry: ProtocolRegistry,
    source: Optional[ElevationSourceConfig],
    palette: Palette = DEFAULT_PALETTE,
    scheme: str = SLOPE_PROTOCOL_SCHEME,
    **handler_kwargs,
) -> TileHandler:
    """
    Register the slope handler under ``scheme``.

    Idempotent: if the scheme already has a handler it is returned unchanged.
    An unconfigured source still registers, serving transparent tiles.
    """
    existing = registry.get(scheme)
    if existing is not None:
        logger.debug(f"Protocol {scheme}:// already registered")
        return existing

    if source is None:
        logger.warning(
            f"⚠️ Elevation source not configured; {scheme}:// will serve transparent tiles"
        )

    handler = SlopeProtocolHandler(source, palette=palette, scheme=scheme, **handler_kwargs)
    registry.add_protocol(scheme, handler)
    logger.info(f"Registered {scheme}:// tile protocol")
    return handler


def unregister_slope_protocol(
    registry: ProtocolRegistry, scheme: str = SLOPE_PROTOCOL_SCHEME
) -> bool:
    """Remove the handler; returns False when nothing was registered."""
    if not registry.has_protocol(scheme):
        return False
    registry.remove_protocol(scheme)
    logger.info(f"Unregistered {scheme}:// tile protocol")
    return True
