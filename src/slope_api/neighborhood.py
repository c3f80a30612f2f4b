"""
Neighborhood fetching and grid assembly.

A slope tile needs elevation beyond its own edges (the smoothing kernel and the
gradient operator both look past the border), so the tile and its 8 neighbors
are fetched and stitched into one 3S x 3S field with the requested tile in the
center block.
"""

import asyncio
import io
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Tuple

import httpx
import numpy as np
from PIL import Image

from slope_api.config import ElevationSourceConfig
from slope_api.elevation_decoder import Encoding, decode_rgb_array
from slope_api.error_handling import NeighborFetchFailure
from slope_api.tile_math import NEIGHBOR_OFFSETS, TileAddress

logger = logging.getLogger(__name__)

Offset = Tuple[int, int]


@dataclass
class Neighborhood:
    """Decoded sub-grids keyed by (dx, dy); failed neighbors are absent."""

    center: TileAddress
    tile_size: int
    subgrids: Dict[Offset, np.ndarray] = field(default_factory=dict)
    failures: List[NeighborFetchFailure] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return not self.subgrids


def decode_tile_image(content: bytes, encoding: Encoding, tile_size: int) -> np.ndarray:
    """
    Decode terrain-RGB image bytes (PNG or WEBP) into an S x S elevation grid.

    Sources serving a different raster size are resampled with nearest
    neighbor so encoded channels are never blended.
    """
    with Image.open(io.BytesIO(content)) as img:
        rgb = img.convert("RGB")
    if rgb.size != (tile_size, tile_size):
        rgb = rgb.resize((tile_size, tile_size), Image.NEAREST)
    return decode_rgb_array(np.asarray(rgb, dtype=np.uint8), encoding)


async def fetch_elevation_tile(
    client: httpx.AsyncClient, source: ElevationSourceConfig, address: TileAddress
) -> np.ndarray:
    """Fetch and decode one elevation tile, raising NeighborFetchFailure on any problem."""
    if not address.is_valid:
        raise NeighborFetchFailure(address.zoom, address.x, address.y, "outside the tile grid")

    try:
        response = await client.get(source.tile_url(address.zoom, address.x, address.y))
    except httpx.HTTPError as e:
        raise NeighborFetchFailure(address.zoom, address.x, address.y, f"request error: {e}") from e
    except Exception as e:
        raise NeighborFetchFailure(address.zoom, address.x, address.y, f"request failed: {e!r}") from e

    if response.status_code != 200:
        raise NeighborFetchFailure(
            address.zoom, address.x, address.y, f"HTTP {response.status_code}"
        )

    try:
        return decode_tile_image(response.content, source.encoding, source.tile_size)
    except Exception as e:
        # Includes DecompressionBombError, which is not an OSError
        raise NeighborFetchFailure(address.zoom, address.x, address.y, f"undecodable image: {e}") from e


async def fetch_neighborhood(
    center: TileAddress, source: ElevationSourceConfig, client: httpx.AsyncClient
) -> Neighborhood:
    """
    Fetch the 3x3 neighborhood around ``center`` concurrently.

    Waits for all 9 requests to settle. A failed neighbor is recorded and left
    out of ``subgrids``; it never aborts the others.
    """

    async def fetch_one(offset: Offset):
        dx, dy = offset
        try:
            return offset, await fetch_elevation_tile(client, source, center.neighbor(dx, dy))
        except NeighborFetchFailure as e:
            return offset, e

    results = await asyncio.gather(*[fetch_one(offset) for offset in NEIGHBOR_OFFSETS])

    neighborhood = Neighborhood(center=center, tile_size=source.tile_size)
    for offset, result in results:
        if isinstance(result, NeighborFetchFailure):
            logger.debug(f"Neighbor {offset} of {center} failed: {result.reason}")
            neighborhood.failures.append(result)
        else:
            neighborhood.subgrids[offset] = result

    if neighborhood.failures:
        logger.warning(
            f"Tile {center}: {len(neighborhood.failures)}/9 neighbor fetches failed, "
            f"zero-filling those regions"
        )
    return neighborhood


def assemble_elevation_field(subgrids: Mapping[Offset, np.ndarray], tile_size: int) -> np.ndarray:
    """
    Stitch sub-grids into a (3S, 3S) field.

    Offset (-1, -1) is the top-left block and (0, 0) the center. Missing
    offsets stay at zero elevation.
    """
    grid = np.zeros((3 * tile_size, 3 * tile_size), dtype=np.float64)

    for (dx, dy), subgrid in subgrids.items():
        if subgrid.shape != (tile_size, tile_size):
            raise ValueError(
                f"Sub-grid {dx},{dy} has shape {subgrid.shape}, expected {(tile_size, tile_size)}"
            )
        row = (dy + 1) * tile_size
        col = (dx + 1) * tile_size
        grid[row:row + tile_size, col:col + tile_size] = subgrid

    return grid
