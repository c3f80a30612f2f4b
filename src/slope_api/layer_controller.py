"""
Slope overlay layer management on a MapLibre-style host map.
"""

import logging
from typing import Any, Dict, Optional, Protocol

from slope_api.color_mapping import DEFAULT_PALETTE, Palette
from slope_api.config import (
    SLOPE_LAYER_BEFORE_ID,
    SLOPE_LAYER_ID,
    SLOPE_PROTOCOL_SCHEME,
    SLOPE_SOURCE_ID,
    ElevationSourceConfig,
)
from slope_api.protocol import ProtocolRegistry, register_slope_protocol

logger = logging.getLogger(__name__)


class HostMap(Protocol):
    """The subset of the MapLibre map API the overlay needs."""

    def get_source(self, source_id: str) -> Optional[Dict[str, Any]]: ...

    def add_source(self, source_id: str, source: Dict[str, Any]) -> None: ...

    def remove_source(self, source_id: str) -> None: ...

    def get_layer(self, layer_id: str) -> Optional[Dict[str, Any]]: ...

    def add_layer(self, layer: Dict[str, Any], before_id: Optional[str] = None) -> None: ...

    def remove_layer(self, layer_id: str) -> None: ...

    def get_layout_property(self, layer_id: str, name: str) -> Any: ...

    def set_layout_property(self, layer_id: str, name: str, value: Any) -> None: ...


class SlopeLayerController:
    """
    Adds the slope overlay to a host map and flips its visibility.

    The registry is passed in rather than held globally so separate hosts (and
    tests) never share registration state.
    """

    def __init__(
        self,
        registry: ProtocolRegistry,
        source: Optional[ElevationSourceConfig],
        palette: Palette = DEFAULT_PALETTE,
        scheme: str = SLOPE_PROTOCOL_SCHEME,
        tile_url_template: Optional[str] = None,
        before_id: Optional[str] = SLOPE_LAYER_BEFORE_ID,
        source_id: str = SLOPE_SOURCE_ID,
        layer_id: str = SLOPE_LAYER_ID,
        **handler_kwargs,
    ):
        self.registry = registry
        self.source = source
        self.palette = palette
        self.scheme = scheme
        self.tile_url_template = tile_url_template or f"{scheme}://{{z}}/{{x}}/{{y}}"
        self.before_id = before_id
        self.source_id = source_id
        self.layer_id = layer_id
        self.handler_kwargs = handler_kwargs

    def source_definition(self) -> Dict[str, Any]:
        return {
            "type": "raster",
            "tiles": [self.tile_url_template],
            "tileSize": self.source.tile_size,
            "minzoom": 0,
            # The host overzooms past the elevation source's last level
            "maxzoom": self.source.max_zoom,
            "attribution": self.source.attribution,
        }

    def layer_definition(self) -> Dict[str, Any]:
        return {
            "id": self.layer_id,
            "type": "raster",
            "source": self.source_id,
            "layout": {"visibility": "none"},
            "paint": {"raster-opacity": 1.0, "raster-fade-duration": 0},
        }

    def add_layer(self, host_map: HostMap) -> bool:
        """
        Register the protocol, source and hidden layer. Safe to call repeatedly.

        Returns False (and adds nothing) when the elevation source is unconfigured.
        """
        if self.source is None:
            logger.warning("Slope layer skipped: elevation source is not configured")
            return False

        register_slope_protocol(
            self.registry, self.source, palette=self.palette, scheme=self.scheme,
            **self.handler_kwargs,
        )

        if host_map.get_source(self.source_id) is None:
            host_map.add_source(self.source_id, self.source_definition())

        if host_map.get_layer(self.layer_id) is None:
            # Insert below the slope polygons so outlines and labels stay on top
            before_id = self.before_id
            if before_id is not None and host_map.get_layer(before_id) is None:
                before_id = None
            host_map.add_layer(self.layer_definition(), before_id)
            logger.info(f"Added {self.layer_id} (before {before_id or 'top'})")

        return True

    def is_visible(self, host_map: HostMap) -> bool:
        if host_map.get_layer(self.layer_id) is None:
            return False
        return host_map.get_layout_property(self.layer_id, "visibility") == "visible"

    def toggle_visibility(self, host_map: HostMap) -> bool:
        """Flip hidden/visible and return True when the layer is now visible."""
        if host_map.get_layer(self.layer_id) is None:
            return False
        visibility = "none" if self.is_visible(host_map) else "visible"
        host_map.set_layout_property(self.layer_id, "visibility", visibility)
        return visibility == "visible"

    def remove_layer(self, host_map: HostMap) -> None:
        """Remove the layer and its source from the host; the protocol stays registered."""
        if host_map.get_layer(self.layer_id) is not None:
            host_map.remove_layer(self.layer_id)
        if host_map.get_source(self.source_id) is not None:
            host_map.remove_source(self.source_id)
