"""
Web mercator tile math: addresses, neighbors and ground resolution.
"""

import math
import re
from dataclasses import dataclass
from typing import List, Tuple

from slope_api.config import EARTH_RADIUS_M, MAX_ZOOM, MIN_ZOOM, TILE_SIZE
from slope_api.error_handling import MalformedAddress

# Offsets of the 3x3 neighborhood, row-major from the top-left
NEIGHBOR_OFFSETS: List[Tuple[int, int]] = [
    (dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1)
]

_IMAGE_SUFFIX = re.compile(r"\.(png|webp|jpe?g)$", re.IGNORECASE)


@dataclass(frozen=True)
class TileAddress:
    """One tile of the XYZ quad-tree tiling scheme."""

    zoom: int
    x: int
    y: int

    @property
    def tiles_per_side(self) -> int:
        return 2 ** self.zoom

    def neighbor(self, dx: int, dy: int) -> "TileAddress":
        """
        Address of the tile offset by (dx, dy).

        Columns wrap around the antimeridian. Rows are not wrapped; callers
        check ``is_valid`` before fetching.
        """
        return TileAddress(self.zoom, (self.x + dx) % self.tiles_per_side, self.y + dy)

    @property
    def is_valid(self) -> bool:
        if not MIN_ZOOM <= self.zoom <= MAX_ZOOM:
            return False
        n = self.tiles_per_side
        return 0 <= self.x < n and 0 <= self.y < n

    def __str__(self) -> str:
        return f"{self.zoom}/{self.x}/{self.y}"


def parse_tile_address(url: str, scheme: str) -> TileAddress:
    """
    Parse ``<scheme>://{zoom}/{x}/{y}`` into a TileAddress.

    A trailing image extension on ``y`` is tolerated. Anything else that is not
    three in-range integers raises MalformedAddress.
    """
    prefix = f"{scheme}://"
    if not url.startswith(prefix):
        raise MalformedAddress(f"Expected a {prefix} tile address, got {url!r}")

    parts = _IMAGE_SUFFIX.sub("", url[len(prefix):].split("?", 1)[0]).strip("/").split("/")
    if len(parts) != 3:
        raise MalformedAddress(f"Expected {prefix}{{zoom}}/{{x}}/{{y}}, got {url!r}")

    try:
        zoom, x, y = (int(part) for part in parts)
    except ValueError:
        raise MalformedAddress(f"Non-integer tile coordinate in {url!r}") from None

    address = TileAddress(zoom, x, y)
    if not address.is_valid:
        raise MalformedAddress(f"Tile coordinate out of range in {url!r}")
    return address


def tile_latitude(y: float, zoom: int) -> float:
    """Latitude in degrees of tile row ``y`` (fractional rows allowed)."""
    n = math.pi - 2.0 * math.pi * y / (2 ** zoom)
    return math.degrees(math.atan(math.sinh(n)))


def ground_resolution(zoom: int, latitude: float, tile_size: int = TILE_SIZE) -> float:
    """Meters on the ground covered by one pixel at this zoom and latitude."""
    return (
        2.0 * math.pi * EARTH_RADIUS_M * math.cos(math.radians(latitude))
        / (tile_size * 2 ** zoom)
    )


def tile_ground_resolution(address: TileAddress, tile_size: int = TILE_SIZE) -> float:
    """Ground resolution at the top edge row of the tile."""
    return ground_resolution(address.zoom, tile_latitude(address.y, address.zoom), tile_size)
