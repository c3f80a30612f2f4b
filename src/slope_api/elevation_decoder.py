"""
Terrain-RGB elevation decoding.

Two encodings are supported, selected per elevation source:

- ``mapbox`` (Mapbox / MapTiler terrain-rgb):
  ``elevation = -10000 + (R * 256 * 256 + G * 256 + B) * 0.1``
- ``terrarium`` (Mapzen / AWS terrain tiles):
  ``elevation = R * 256 + G + B / 256 - 32768``

All functions are pure and accept scalars or numpy arrays.
"""

from enum import Enum

import numpy as np

from slope_api.error_handling import UnknownEncoding


class Encoding(str, Enum):
    MAPBOX = "mapbox"
    TERRARIUM = "terrarium"

    @classmethod
    def parse(cls, value: "str | Encoding") -> "Encoding":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownEncoding(
                f"Unknown terrain encoding {value!r}; expected one of "
                f"{[e.value for e in cls]}"
            ) from None


# Quantization step in meters, used by round-trip tolerances
RESOLUTION_M = {
    Encoding.MAPBOX: 0.1,
    Encoding.TERRARIUM: 1.0 / 256.0,
}


def decode_elevation(r, g, b, encoding: Encoding = Encoding.MAPBOX):
    """Convert channel values to elevation in meters."""
    r = np.asarray(r, dtype=np.float64)
    g = np.asarray(g, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)

    if encoding == Encoding.MAPBOX:
        elevation = -10000.0 + (r * 65536.0 + g * 256.0 + b) * 0.1
    elif encoding == Encoding.TERRARIUM:
        elevation = r * 256.0 + g + b / 256.0 - 32768.0
    else:
        raise UnknownEncoding(f"Unknown terrain encoding {encoding!r}")

    if elevation.ndim == 0:
        return float(elevation)
    return elevation


def decode_rgb_array(rgb: np.ndarray, encoding: Encoding = Encoding.MAPBOX) -> np.ndarray:
    """Decode an (H, W, 3+) uint8 image array into an (H, W) float64 elevation grid."""
    if rgb.ndim != 3 or rgb.shape[2] < 3:
        raise ValueError(f"Expected an (H, W, 3) pixel array, got shape {rgb.shape}")
    return decode_elevation(rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2], encoding)


def encode_elevation(elevation, encoding: Encoding = Encoding.MAPBOX) -> np.ndarray:
    """
    Inverse of ``decode_elevation``: meters to uint8 channels.

    Returns an array of shape ``(..., 3)``. Values outside the encoding's range
    are clipped. Used to synthesise terrain tiles.
    """
    elevation = np.asarray(elevation, dtype=np.float64)

    # Both encodings pack a 24-bit integer across R, G, B
    if encoding == Encoding.MAPBOX:
        value = np.rint((elevation + 10000.0) / 0.1)
    elif encoding == Encoding.TERRARIUM:
        value = np.rint((elevation + 32768.0) * 256.0)
    else:
        raise UnknownEncoding(f"Unknown terrain encoding {encoding!r}")

    value = np.clip(value, 0, 256 ** 3 - 1).astype(np.int64)
    r = value // 65536
    g = (value // 256) % 256
    b = value % 256
    return np.stack([r, g, b], axis=-1).astype(np.uint8)
