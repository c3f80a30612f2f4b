"""
Centralized configuration management for the slope overlay API.
All environment variables and constants are defined here.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from slope_api.elevation_decoder import Encoding
from slope_api.error_handling import SourceUnconfigured

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Server configuration (safe defaults)
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Environment detection
ENVIRONMENT = os.getenv("ENVIRONMENT", "production")
IS_DEVELOPMENT = ENVIRONMENT.lower() in ["development", "dev", "local"]

# HTTP Cache settings - NO CACHING in development!
if IS_DEVELOPMENT:
    TILE_CACHE_MAX_AGE = 0
    TILE_CACHE_CONTROL = "no-cache, no-store, must-revalidate"
else:
    TILE_CACHE_MAX_AGE = 86400  # Elevation sources update rarely; one day is plenty
    TILE_CACHE_CONTROL = f"public, max-age={TILE_CACHE_MAX_AGE}"

# Tile configuration
TILE_SIZE = 256
MAX_ZOOM = 18
MIN_ZOOM = 0

# WGS84 semi-major axis used by the web mercator tiling scheme
EARTH_RADIUS_M = 6378137.0

# Protocol and layer identifiers
SLOPE_PROTOCOL_SCHEME = os.getenv("SLOPE_PROTOCOL_SCHEME", "slope")
SLOPE_SOURCE_ID = "slope-angle"
SLOPE_LAYER_ID = "slope-angle-layer"
# Slope polygons drawn by users are painted above the overlay
SLOPE_LAYER_BEFORE_ID = "slopes-fill"

# Optional MapLibre style JSON the overlay is inserted into
BASE_STYLE_PATH = os.getenv("BASE_STYLE_PATH")

# Pipeline tuning
SLOPE_SMOOTHING = os.getenv("SLOPE_SMOOTHING", "true").lower() in ("1", "true", "yes")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
CPU_WORKERS = int(os.getenv("CPU_WORKERS", "4"))

MAPTILER_TEMPLATE = "https://api.maptiler.com/tiles/terrain-rgb-v2/{z}/{x}/{y}.webp?key={key}"
TERRARIUM_TEMPLATE = "https://s3.amazonaws.com/elevation-tiles-prod/terrarium/{z}/{x}/{y}.png"

MAPTILER_ATTRIBUTION = '&copy; <a href="https://www.maptiler.com/copyright/">MapTiler</a>'
TERRARIUM_ATTRIBUTION = (
    '&copy; <a href="https://registry.opendata.aws/terrain-tiles/">Terrain Tiles / AWS</a>'
)

_PRESETS = {
    "maptiler": (MAPTILER_TEMPLATE, Encoding.MAPBOX, 14, MAPTILER_ATTRIBUTION),
    "terrarium": (TERRARIUM_TEMPLATE, Encoding.TERRARIUM, 15, TERRARIUM_ATTRIBUTION),
}


@dataclass(frozen=True)
class ElevationSourceConfig:
    """Where elevation tiles come from and how their pixels encode meters."""

    url_template: str
    encoding: Encoding = Encoding.MAPBOX
    tile_size: int = TILE_SIZE
    max_zoom: int = 14
    api_key: Optional[str] = None
    attribution: str = ""

    def tile_url(self, z: int, x: int, y: int) -> str:
        """Fill the template for one tile."""
        return self.url_template.format(z=z, x=x, y=y, key=self.api_key or "")

    @property
    def needs_key(self) -> bool:
        return "{key}" in self.url_template

    @classmethod
    def preset(cls, name: str, api_key: Optional[str] = None) -> "ElevationSourceConfig":
        """Build one of the known public elevation sources."""
        try:
            template, encoding, max_zoom, attribution = _PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown elevation source preset: {name!r}") from None
        return cls(
            url_template=template,
            encoding=encoding,
            max_zoom=max_zoom,
            api_key=api_key,
            attribution=attribution,
        )

    @classmethod
    def from_env(cls) -> "ElevationSourceConfig":
        """
        Read the elevation source from the environment.

        Raises SourceUnconfigured when the source cannot be used: no template,
        or a template that needs an API key that is not set.
        """
        template = os.getenv("ELEVATION_URL_TEMPLATE", MAPTILER_TEMPLATE).strip()
        api_key = os.getenv("MAPTILER_API_KEY") or None

        if not template:
            raise SourceUnconfigured("ELEVATION_URL_TEMPLATE is empty")

        source = cls(
            url_template=template,
            encoding=Encoding.parse(os.getenv("ELEVATION_ENCODING", "mapbox")),
            tile_size=int(os.getenv("ELEVATION_TILE_SIZE", str(TILE_SIZE))),
            max_zoom=int(os.getenv("ELEVATION_MAX_ZOOM", "14")),
            api_key=api_key,
            attribution=os.getenv(
                "ELEVATION_ATTRIBUTION",
                MAPTILER_ATTRIBUTION if template == MAPTILER_TEMPLATE else "",
            ),
        )
        if source.needs_key and not source.api_key:
            raise SourceUnconfigured(
                "Elevation URL template needs {key} but MAPTILER_API_KEY is not set"
            )
        return source


def load_elevation_source() -> Optional[ElevationSourceConfig]:
    """Elevation source from the environment, or None (logged) when unusable."""
    try:
        return ElevationSourceConfig.from_env()
    except SourceUnconfigured as e:
        logger.warning(f"⚠️ Slope layer disabled: {e}")
        return None
