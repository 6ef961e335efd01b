from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Optional, Sequence

from .encoder import TILE_EXTENSIONS, TileFormat

LAYER_FORMATS: Final[dict[str, str]] = {
    "heightmap-png": "heightmap-1.0",
    "raw-float": "raw-float32-1.0",
    "quantized-mesh": "quantized-mesh-1.0",
}


@dataclass
class LevelExtent:
    start_x: int
    start_y: int
    end_x: int
    end_y: int

    def include(self, x: int, y: int) -> None:
        self.start_x = min(self.start_x, x)
        self.start_y = min(self.start_y, y)
        self.end_x = max(self.end_x, x)
        self.end_y = max(self.end_y, y)

    def to_dict(self) -> dict[str, int]:
        return {
            "startX": self.start_x,
            "startY": self.start_y,
            "endX": self.end_x,
            "endY": self.end_y,
        }


class PyramidMetadata:
    """Accumulates per-zoom extents of emitted tiles.

    Not thread-safe: record tiles from a single aggregating thread.
    """

    def __init__(
        self,
        *,
        bounds: Sequence[float],
        min_zoom: int,
        max_zoom: int,
        tile_format: TileFormat = "heightmap-png",
        tile_size: int = 256,
    ) -> None:
        if min_zoom < 0 or max_zoom < min_zoom:
            raise ValueError(f"Invalid zoom range: {min_zoom}..{max_zoom}")
        self._bounds = [float(v) for v in bounds]
        self._min_zoom = int(min_zoom)
        self._max_zoom = int(max_zoom)
        self._tile_format = tile_format
        self._tile_size = int(tile_size)
        self._levels: dict[int, LevelExtent] = {}

    def record(self, z: int, x: int, y: int) -> None:
        extent = self._levels.get(z)
        if extent is None:
            self._levels[z] = LevelExtent(start_x=x, start_y=y, end_x=x, end_y=y)
        else:
            extent.include(x, y)

    def extent(self, z: int) -> Optional[LevelExtent]:
        return self._levels.get(z)

    def available(self) -> list[Optional[dict[str, int]]]:
        """Tile range per zoom, `None` where nothing was emitted."""

        levels: list[Optional[dict[str, int]]] = []
        for z in range(0, self._max_zoom + 1):
            extent = self._levels.get(z)
            if z < self._min_zoom or extent is None:
                levels.append(None)
                continue
            levels.append(extent.to_dict())
        return levels

    def finalize(self) -> dict[str, Any]:
        return build_layer_json(
            bounds=self._bounds,
            min_zoom=self._min_zoom,
            max_zoom=self._max_zoom,
            available=self.available(),
            tile_format=self._tile_format,
            tile_size=self._tile_size,
        )


def build_layer_json(
    *,
    bounds: Sequence[float],
    min_zoom: int,
    max_zoom: int,
    available: Sequence[Optional[dict[str, int]]],
    tile_format: TileFormat = "heightmap-png",
    tile_size: int = 256,
) -> dict[str, Any]:
    return {
        "tilejson": "2.1.0",
        "format": LAYER_FORMATS[tile_format],
        "version": "1.0.0",
        "scheme": "xyz",
        "projection": "EPSG:3857",
        "bounds": [float(v) for v in bounds],
        "minzoom": int(min_zoom),
        "maxzoom": int(max_zoom),
        "tiles": ["{z}/{x}/{y}" + TILE_EXTENSIONS[tile_format]],
        "available": list(available),
        "metadata": {
            "tile_size": int(tile_size),
            "encoding": tile_format,
        },
    }


def write_layer_json(path: Path, *, layer: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(layer, ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )
