"""
In-memory MapLibre style document.

Implements the HostMap surface so the layer controller can manage the overlay
in a style that browsers load from ``/api/style.json``.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional


class StyleDocument:
    """A MapLibre GL style (version 8) that can be mutated like a live map."""

    def __init__(self, name: str = "slope-overlay", style: Optional[Dict[str, Any]] = None):
        self.style: Dict[str, Any] = copy.deepcopy(style) if style else {}
        self.style.setdefault("version", 8)
        self.style.setdefault("name", name)
        self.style.setdefault("sources", {})
        self.style.setdefault("layers", [])

    @classmethod
    def from_file(cls, path: Path) -> "StyleDocument":
        with open(path) as f:
            return cls(style=json.load(f))

    @property
    def layers(self) -> List[Dict[str, Any]]:
        return self.style["layers"]

    def _layer_index(self, layer_id: str) -> Optional[int]:
        for i, layer in enumerate(self.layers):
            if layer.get("id") == layer_id:
                return i
        return None

    # Sources

    def get_source(self, source_id: str) -> Optional[Dict[str, Any]]:
        return self.style["sources"].get(source_id)

    def add_source(self, source_id: str, source: Dict[str, Any]) -> None:
        if source_id in self.style["sources"]:
            raise ValueError(f"There is already a source with ID {source_id!r}")
        self.style["sources"][source_id] = copy.deepcopy(source)

    def remove_source(self, source_id: str) -> None:
        if any(layer.get("source") == source_id for layer in self.layers):
            raise ValueError(f"Source {source_id!r} is still used by a layer")
        self.style["sources"].pop(source_id, None)

    # Layers

    def get_layer(self, layer_id: str) -> Optional[Dict[str, Any]]:
        index = self._layer_index(layer_id)
        return None if index is None else self.layers[index]

    def add_layer(self, layer: Dict[str, Any], before_id: Optional[str] = None) -> None:
        if self._layer_index(layer["id"]) is not None:
            raise ValueError(f"Layer {layer['id']!r} already exists")
        if "source" in layer and layer["source"] not in self.style["sources"]:
            raise ValueError(f"Layer {layer['id']!r} references unknown source {layer['source']!r}")

        if before_id is None:
            self.layers.append(copy.deepcopy(layer))
            return

        index = self._layer_index(before_id)
        if index is None:
            raise ValueError(f"Cannot add layer before non-existing layer {before_id!r}")
        self.layers.insert(index, copy.deepcopy(layer))

    def remove_layer(self, layer_id: str) -> None:
        index = self._layer_index(layer_id)
        if index is not None:
            del self.layers[index]

    def get_layout_property(self, layer_id: str, name: str) -> Any:
        layer = self.get_layer(layer_id)
        if layer is None:
            return None
        value = layer.get("layout", {}).get(name)
        if value is None and name == "visibility":
            return "visible"  # MapLibre default
        return value

    def set_layout_property(self, layer_id: str, name: str, value: Any) -> None:
        layer = self.get_layer(layer_id)
        if layer is None:
            raise ValueError(f"The layer {layer_id!r} does not exist in the map's style")
        layer.setdefault("layout", {})[name] = value

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.style)
