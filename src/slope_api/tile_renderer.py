"""CPU stage of the slope pipeline: elevation field -> RGBA -> PNG bytes."""

import io
import logging
from typing import Mapping, Tuple

import numpy as np
from PIL import Image

from slope_api.color_mapping import Palette
from slope_api.error_handling import EncodeFailure
from slope_api.neighborhood import assemble_elevation_field
from slope_api.slope_analysis import gaussian_smooth, slope_degrees
from slope_api.tile_math import TileAddress, tile_ground_resolution

logger = logging.getLogger(__name__)


def get_optimal_compression(rgba_array: np.ndarray, is_empty: bool) -> int:
    """Choose PNG compression based on content complexity."""
    if is_empty:
        return 9
    if np.std(rgba_array) < 10:
        return 6
    return 1  # Busy mountain tiles need speed over size


def compute_slope_rgba(
    field: np.ndarray,
    address: TileAddress,
    palette: Palette,
    tile_size: int,
    smooth: bool = True,
) -> np.ndarray:
    """Classify the center block of an assembled field into an (S, S, 4) RGBA array."""
    if smooth:
        field = gaussian_smooth(field)
    angles = slope_degrees(field, tile_size, tile_ground_resolution(address, tile_size))
    return palette.classify(angles)


def encode_png(rgba_array: np.ndarray) -> bytes:
    """Encode an RGBA array as PNG, raising EncodeFailure on any Pillow error."""
    is_empty = not rgba_array[..., 3].any()
    try:
        img = Image.fromarray(np.ascontiguousarray(rgba_array, dtype=np.uint8), "RGBA")
        img_bytes = io.BytesIO()
        img.save(
            img_bytes,
            format="PNG",
            optimize=is_empty,
            compress_level=get_optimal_compression(rgba_array, is_empty),
        )
    except (OSError, ValueError, TypeError) as e:
        raise EncodeFailure(f"PNG encoding failed: {e}") from e
    return img_bytes.getvalue()


def render_slope_tile(
    subgrids: Mapping[Tuple[int, int], np.ndarray],
    address: TileAddress,
    palette: Palette,
    tile_size: int,
    smooth: bool = True,
) -> bytes:
    """Synchronous tile render, run on the CPU thread pool."""
    field = assemble_elevation_field(subgrids, tile_size)
    rgba_array = compute_slope_rgba(field, address, palette, tile_size, smooth=smooth)
    tile_data = encode_png(rgba_array)
    logger.debug(f"Rendered slope tile {address}: {len(tile_data)} bytes")
    return tile_data
