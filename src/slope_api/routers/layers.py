"""Overlay layer endpoints: style document, visibility toggle and palette."""
from fastapi import APIRouter, Request

router = APIRouter()


def _absolute_tile_urls(style: dict, base_url: str) -> dict:
    """MapLibre needs absolute tile URLs; expand the service-relative ones."""
    for source in style.get("sources", {}).values():
        tiles = source.get("tiles")
        if tiles:
            source["tiles"] = [base_url + t if t.startswith("/") else t for t in tiles]
    return style


@router.get("/style.json")
async def get_style(request: Request):
    """MapLibre style containing the slope overlay source and layer."""
    style = request.app.state.style_document.to_dict()
    return _absolute_tile_urls(style, str(request.base_url).rstrip("/"))


@router.get("/layers/slope")
async def get_slope_layer(request: Request):
    """Current overlay state."""
    controller = request.app.state.layer_controller
    style = request.app.state.style_document
    return {
        "registered": style.get_layer(controller.layer_id) is not None,
        "visible": controller.is_visible(style),
        "scheme": controller.scheme,
    }


@router.post("/layers/slope/toggle")
async def toggle_slope_layer(request: Request):
    """Flip overlay visibility; no tiles are computed by this call."""
    controller = request.app.state.layer_controller
    return {"visible": controller.toggle_visibility(request.app.state.style_document)}


@router.get("/palette")
async def get_palette(request: Request):
    """Slope-angle color breakpoints, lowest first."""
    return {"stops": request.app.state.layer_controller.palette.legend()}
