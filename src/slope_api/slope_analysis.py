"""
Smoothing and slope estimation on the assembled elevation field.

Terrain-RGB sources quantize elevation (0.1 m for mapbox, coarser in practice
after lossy WEBP), which shows up as stripes in a raw gradient. A 5x5 Gaussian
pass removes them before the Sobel operator runs.
"""

from typing import Tuple

import numpy as np

# 5x5 Gaussian, sigma ~ 1.0, integer weights summing to 273
GAUSS5 = np.array(
    [
        [1, 4, 7, 4, 1],
        [4, 16, 26, 16, 4],
        [7, 26, 41, 26, 7],
        [4, 16, 26, 16, 4],
        [1, 4, 7, 4, 1],
    ],
    dtype=np.float64,
)


def gaussian_smooth(field: np.ndarray, kernel: np.ndarray = GAUSS5) -> np.ndarray:
    """
    Convolve ``field`` with a normalized odd-sized kernel.

    Borders are clamped: samples outside the field reuse the nearest edge
    sample. Output has the same shape as the input.
    """
    kh, kw = kernel.shape
    if kh % 2 == 0 or kw % 2 == 0:
        raise ValueError(f"Kernel must have odd dimensions, got {kernel.shape}")
    ry, rx = kh // 2, kw // 2
    height, width = field.shape

    padded = np.pad(field.astype(np.float64, copy=False), ((ry, ry), (rx, rx)), mode="edge")
    acc = np.zeros((height, width), dtype=np.float64)

    # Accumulate with the raw weights and divide once, so a constant field
    # comes back bit-identical
    for ky in range(kh):
        for kx in range(kw):
            weight = kernel[ky, kx]
            if weight:
                acc += weight * padded[ky:ky + height, kx:kx + width]

    return acc / kernel.sum()


def sobel_gradient(field: np.ndarray, region: Tuple[slice, slice]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sobel dZ/dx and dZ/dy (elevation units per sample) for every pixel in ``region``.

    The region must leave at least one sample of margin inside ``field``.
    x grows to the east (columns), y grows to the south (rows).
    """
    rows, cols = region
    r0, r1 = rows.start, rows.stop
    c0, c1 = cols.start, cols.stop
    if r0 < 1 or c0 < 1 or r1 > field.shape[0] - 1 or c1 > field.shape[1] - 1:
        raise ValueError("Sobel region needs a one-sample margin inside the field")

    def window(dy: int, dx: int) -> np.ndarray:
        return field[r0 + dy:r1 + dy, c0 + dx:c1 + dx]

    tl, tc, tr = window(-1, -1), window(-1, 0), window(-1, 1)
    ml, mr = window(0, -1), window(0, 1)
    bl, bc, br = window(1, -1), window(1, 0), window(1, 1)

    dz_dx = ((tr + 2.0 * mr + br) - (tl + 2.0 * ml + bl)) / 8.0
    dz_dy = ((bl + 2.0 * bc + br) - (tl + 2.0 * tc + tr)) / 8.0
    return dz_dx, dz_dy


def slope_degrees(field: np.ndarray, tile_size: int, meters_per_pixel: float) -> np.ndarray:
    """
    Slope angle in degrees for the center S x S block of a (3S, 3S) field.

    ``meters_per_pixel`` converts the per-sample gradient into rise over run.
    """
    expected = (3 * tile_size, 3 * tile_size)
    if field.shape != expected:
        raise ValueError(f"Elevation field has shape {field.shape}, expected {expected}")
    if meters_per_pixel <= 0:
        raise ValueError(f"meters_per_pixel must be positive, got {meters_per_pixel}")

    center = (slice(tile_size, 2 * tile_size), slice(tile_size, 2 * tile_size))
    dz_dx, dz_dy = sobel_gradient(field, center)

    dz_dx = dz_dx / meters_per_pixel
    dz_dy = dz_dy / meters_per_pixel
    return np.degrees(np.arctan(np.hypot(dz_dx, dz_dy)))
