"""Health check endpoints."""
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from slope_api import __version__
from slope_api.error_handling import health_monitor

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check with tile counters."""
    stats = health_monitor.get_stats()
    source = request.app.state.elevation_source

    return {
        "status": "healthy" if health_monitor.is_healthy() else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "slope-api",
        "version": __version__,
        "elevation_source_configured": source is not None,
        "tile_requests": stats["tile_requests"],
        "fallback_rate": stats["fallback_rate"],
        "neighbor_failures": stats["neighbor_failures"],
    }


@router.get("/status")
async def detailed_status(request: Request):
    """Detailed service status."""
    source = request.app.state.elevation_source
    registry = request.app.state.protocol_registry

    elevation = {"configured": source is not None}
    if source is not None:
        elevation.update({
            "encoding": source.encoding.value,
            "tile_size": source.tile_size,
            "max_zoom": source.max_zoom,
        })

    return {
        "api": "running",
        "protocols": registry.schemes,
        "elevation_source": elevation,
        "stats": health_monitor.get_stats(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
