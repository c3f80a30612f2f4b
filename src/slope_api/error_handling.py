"""
Error taxonomy and fallback helpers for the slope overlay pipeline.

Only ``MalformedAddress`` (and ``UnknownProtocol``) ever reach the caller.
Everything else degrades to a transparent tile so the host keeps rendering.
"""

import functools
import io
import logging
import time
from typing import Callable

from PIL import Image

logger = logging.getLogger(__name__)


class SlopeMapError(Exception):
    """Base exception for slope overlay errors."""
    pass


class MalformedAddress(SlopeMapError):
    """Tile address could not be parsed into integers. Integration bug, never swallowed."""
    pass


class UnknownProtocol(SlopeMapError):
    """No handler registered for the requested scheme."""
    pass


class NeighborFetchFailure(SlopeMapError):
    """One neighbor tile failed to fetch or decode; recovered with a zero-filled sub-grid."""

    def __init__(self, z: int, x: int, y: int, reason: str):
        super().__init__(f"Neighbor tile {z}/{x}/{y} unavailable: {reason}")
        self.z = z
        self.x = x
        self.y = y
        self.reason = reason


class SourceUnconfigured(SlopeMapError):
    """No usable elevation source (missing URL template or API key)."""
    pass


class EncodeFailure(SlopeMapError):
    """The rendered raster could not be encoded to image bytes."""
    pass


class InvalidPalette(SlopeMapError, ValueError):
    """Palette breakpoints are empty or not strictly ascending."""
    pass


class UnknownEncoding(SlopeMapError, ValueError):
    """Unsupported terrain encoding identifier."""
    pass


@functools.lru_cache(maxsize=8)
def create_transparent_tile(tile_size: int = 256) -> bytes:
    """Fully transparent PNG of ``tile_size`` x ``tile_size`` pixels."""
    img = Image.new("RGBA", (tile_size, tile_size), (0, 0, 0, 0))
    img_bytes = io.BytesIO()
    img.save(img_bytes, format="PNG", optimize=True)
    return img_bytes.getvalue()


def log_performance(func: Callable) -> Callable:
    """Decorator to log slow tile computations."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.time()

        try:
            result = await func(*args, **kwargs)
            duration = time.time() - start_time

            if duration > 1.0:
                logger.warning(f"{func.__name__} took {duration:.2f}s (slow)")
            elif duration > 0.5:
                logger.info(f"{func.__name__} took {duration:.2f}s")

            return result

        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"{func.__name__} failed after {duration:.2f}s: {e}")
            raise

    return wrapper


class HealthMonitor:
    """Counters for tile traffic and degraded responses."""

    def __init__(self):
        self.tile_requests = 0
        self.fallback_tiles = 0
        self.neighbor_failures = 0
        self.malformed_requests = 0
        self.start_time = time.time()

    def record_tile_request(self, fallback: bool = False):
        """Record one served tile; ``fallback`` marks a transparent substitute."""
        self.tile_requests += 1
        if fallback:
            self.fallback_tiles += 1

    def record_neighbor_failures(self, count: int):
        self.neighbor_failures += count

    def record_malformed_request(self):
        self.malformed_requests += 1

    def get_stats(self) -> dict:
        """Get current statistics."""
        uptime = time.time() - self.start_time
        fallback_rate = self.fallback_tiles / max(self.tile_requests, 1)

        return {
            "uptime_seconds": uptime,
            "tile_requests": self.tile_requests,
            "fallback_tiles": self.fallback_tiles,
            "fallback_rate": fallback_rate,
            "neighbor_failures": self.neighbor_failures,
            "malformed_requests": self.malformed_requests,
            "requests_per_second": self.tile_requests / uptime if uptime > 0 else 0,
        }

    def is_healthy(self) -> bool:
        """Unhealthy once more than half of all tiles are fallbacks."""
        return self.get_stats()["fallback_rate"] <= 0.5


# Global health monitor
health_monitor = HealthMonitor()
