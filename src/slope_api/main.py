"""
Avalanche slope overlay service.

Serves slope-angle tiles computed from terrain-RGB elevation data, plus a
MapLibre style document that references them.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from slope_api import __version__
from slope_api.color_mapping import DEFAULT_PALETTE, Palette
from slope_api.config import (
    API_PORT,
    BASE_STYLE_PATH,
    IS_DEVELOPMENT,
    LOG_LEVEL,
    SLOPE_PROTOCOL_SCHEME,
    ElevationSourceConfig,
    load_elevation_source,
)
from slope_api.http_client import ElevationClient
from slope_api.layer_controller import SlopeLayerController
from slope_api.protocol import ProtocolRegistry, register_slope_protocol
from slope_api.routers import health, layers, tiles
from slope_api.style_document import StyleDocument

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    format="%(asctime)s %(levelname)s %(name)s:%(lineno)d - %(message)s",
    level=LOG_LEVEL,
)
logger = logging.getLogger(__name__)


def _load_style() -> StyleDocument:
    if BASE_STYLE_PATH:
        path = Path(BASE_STYLE_PATH)
        if path.exists():
            logger.info(f"Loading base style from {path}")
            return StyleDocument.from_file(path)
        logger.warning(f"⚠️ BASE_STYLE_PATH {path} not found, starting from an empty style")
    return StyleDocument()


def create_app(
    source: Optional[ElevationSourceConfig] = None,
    style: Optional[StyleDocument] = None,
    palette: Palette = DEFAULT_PALETTE,
    load_source_from_env: bool = True,
    **handler_kwargs,
) -> FastAPI:
    """
    Build the FastAPI application.

    ``source`` overrides the environment; ``handler_kwargs`` are forwarded to
    the slope protocol handler (tests inject an HTTP client provider here).
    """
    if source is None and load_source_from_env:
        source = load_elevation_source()

    app = FastAPI(
        title="Avalanche Slope Overlay API",
        description="Slope-angle tiles for avalanche terrain assessment",
        version=__version__,
    )

    elevation_client = ElevationClient()
    handler_kwargs.setdefault("client_provider", elevation_client)

    registry = ProtocolRegistry()
    # Without a source the handler still answers, with transparent tiles
    register_slope_protocol(registry, source, palette=palette, scheme=SLOPE_PROTOCOL_SCHEME, **handler_kwargs)
    style_document = style if style is not None else _load_style()
    controller = SlopeLayerController(
        registry,
        source,
        palette=palette,
        scheme=SLOPE_PROTOCOL_SCHEME,
        tile_url_template=f"/api/tiles/{SLOPE_PROTOCOL_SCHEME}/{{z}}/{{x}}/{{y}}.png",
        **handler_kwargs,
    )
    controller.add_layer(style_document)

    app.state.elevation_source = source
    app.state.elevation_client = elevation_client
    app.state.protocol_registry = registry
    app.state.style_document = style_document
    app.state.layer_controller = controller

    @app.on_event("startup")
    async def startup_event():
        """Open the elevation HTTP client before the first tile request."""
        try:
            await app.state.elevation_client()
        except Exception as e:
            logger.error(f"❌ Failed to initialize HTTP client: {e}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close the elevation HTTP client on shutdown."""
        try:
            await app.state.elevation_client.aclose()
        except Exception as e:
            logger.error(f"❌ Failed to close HTTP client: {e}")

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(tiles.router, prefix="/api", tags=["tiles"])
    app.include_router(layers.router, prefix="/api", tags=["layers"])

    return app


app = create_app()


def run():
    """Console entry point."""
    port = int(os.getenv("API_PORT", str(API_PORT)))
    uvicorn.run("slope_api.main:app", host="0.0.0.0", port=port, reload=IS_DEVELOPMENT, log_level="info")


if __name__ == "__main__":
    run()
