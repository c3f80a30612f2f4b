"""
Slope-angle to color classification for the avalanche overlay.

The default palette follows the CalTopo-style avalanche convention: nothing
below 27 degrees, then green, yellow, orange, red, violet and blue as slopes
steepen past 30, 34, 38, 42, 45 and 50 degrees.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from slope_api.error_handling import InvalidPalette

RGBA = Tuple[int, int, int, int]

TRANSPARENT: RGBA = (0, 0, 0, 0)


@dataclass(frozen=True)
class ColorStop:
    """One palette breakpoint."""

    angle_degrees: float
    rgba: RGBA

    def __post_init__(self):
        if not math.isfinite(self.angle_degrees):
            raise InvalidPalette(f"Stop angle must be finite, got {self.angle_degrees!r}")
        if len(self.rgba) != 4 or any(not 0 <= int(c) <= 255 for c in self.rgba):
            raise InvalidPalette(f"RGBA must be four 0-255 values, got {self.rgba!r}")


class Palette:
    """
    Ordered breakpoints with linear interpolation between neighbors.

    Angles below the first stop are fully transparent; angles at or above the
    last stop take the last stop's color. Lookups use a binary search over the
    sorted breakpoint angles.
    """

    def __init__(self, stops: Iterable[ColorStop]):
        self.stops: Tuple[ColorStop, ...] = tuple(stops)
        if not self.stops:
            raise InvalidPalette("Palette needs at least one color stop")

        angles = [stop.angle_degrees for stop in self.stops]
        if any(b <= a for a, b in zip(angles, angles[1:])):
            raise InvalidPalette(f"Palette angles must be strictly increasing, got {angles}")

        self._angles = np.array(angles, dtype=np.float64)
        self._colors = np.array([stop.rgba for stop in self.stops], dtype=np.float64)

    @classmethod
    def from_pairs(cls, pairs: Sequence[Tuple[float, Sequence[int]]]) -> "Palette":
        """Build from ``[(angle, (r, g, b, a)), ...]``."""
        return cls(ColorStop(float(angle), tuple(int(c) for c in rgba)) for angle, rgba in pairs)

    @property
    def min_angle(self) -> float:
        return float(self._angles[0])

    @property
    def max_angle(self) -> float:
        return float(self._angles[-1])

    def classify(self, angles: np.ndarray) -> np.ndarray:
        """
        Convert an array of slope angles (degrees) to RGBA.

        Args:
            angles: array of any shape; NaN is treated as unclassified

        Returns:
            uint8 array of shape ``angles.shape + (4,)``
        """
        angles = np.asarray(angles, dtype=np.float64)
        flat = angles.ravel()
        out = np.zeros((flat.size, 4), dtype=np.float64)

        valid = np.isfinite(flat) & (flat >= self._angles[0])
        above = valid & (flat >= self._angles[-1])
        between = valid & ~above

        out[above] = self._colors[-1]

        if between.any():
            values = flat[between]
            hi = np.searchsorted(self._angles, values, side="right")
            lo = hi - 1
            t = (values - self._angles[lo]) / (self._angles[hi] - self._angles[lo])
            out[between] = self._colors[lo] + (self._colors[hi] - self._colors[lo]) * t[:, None]

        # Round half up
        rgba = np.floor(out + 0.5).astype(np.uint8)
        return rgba.reshape(angles.shape + (4,))

    def angle_to_color(self, angle: float) -> RGBA:
        """Color for a single angle."""
        return tuple(int(c) for c in self.classify(np.array([angle]))[0])

    def legend(self) -> List[dict]:
        """Breakpoints as JSON-friendly dicts, lowest angle first."""
        return [
            {"angle_degrees": stop.angle_degrees, "rgba": list(stop.rgba)}
            for stop in self.stops
        ]


AVALANCHE_STOPS = [
    (27.0, (255, 255, 255, 0)),   # ramp up from transparent
    (30.0, (0, 200, 0, 200)),     # green
    (34.0, (255, 220, 0, 210)),   # yellow
    (38.0, (255, 120, 0, 215)),   # orange
    (42.0, (220, 0, 0, 215)),     # red
    (45.0, (160, 0, 160, 215)),   # violet
    (50.0, (0, 0, 200, 215)),     # blue
]

# Global default used by the protocol handler unless a palette is injected
DEFAULT_PALETTE = Palette.from_pairs(AVALANCHE_STOPS)
