"""Tile endpoints: resolve HTTP tile requests through the protocol registry."""
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from slope_api.config import TILE_CACHE_CONTROL
from slope_api.error_handling import MalformedAddress, UnknownProtocol

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/tiles/{scheme}/{z}/{x}/{y}.png")
async def get_protocol_tile(scheme: str, z: str, x: str, y: str, request: Request):
    """
    Serve ``<scheme>://{z}/{x}/{y}`` as a PNG tile.

    Coordinates are passed through as text so the protocol handler owns
    address validation: a malformed address is a 400, never a blank tile.
    """
    registry = request.app.state.protocol_registry
    url = f"{scheme}://{z}/{x}/{y}"

    try:
        tile_data = await registry.fetch(url)
    except MalformedAddress as e:
        logger.warning(f"Rejected tile request {url}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownProtocol as e:
        raise HTTPException(status_code=404, detail=str(e))

    return Response(
        content=tile_data,
        media_type="image/png",
        headers={
            "Cache-Control": TILE_CACHE_CONTROL,
            "Access-Control-Allow-Origin": "*",
            "X-Tile-Protocol": scheme,
        },
    )
