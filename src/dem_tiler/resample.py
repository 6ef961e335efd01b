from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .raster import ElevationRaster
from .tiling import TileBounds


@dataclass(frozen=True)
class PixelWindow:
    """A rectangular pixel window: column/row offset plus size."""

    x: int
    y: int
    width: int
    height: int

    @property
    def size(self) -> int:
        return self.width * self.height


def extract_region(
    source: np.ndarray,
    source_width: int,
    x: int,
    y: int,
    width: int,
    height: int,
) -> np.ndarray:
    """Copy a (width x height) window at (x, y) out of a row-major buffer.

    No bounds checking: the caller must keep the window inside the source.
    """

    grid = np.asarray(source).reshape(-1, int(source_width))
    window = grid[y : y + height, x : x + width]
    return np.array(window, dtype=np.float32).reshape(-1)


def resample_elevation_data(
    source: np.ndarray,
    source_width: int,
    source_height: int,
    target_width: int,
    target_height: int,
) -> np.ndarray:
    """Bilinear resample of a row-major buffer to target_width x target_height."""

    src = np.asarray(source, dtype=np.float64).reshape(source_height, source_width)
    if source_width == target_width and source_height == target_height:
        return src.astype(np.float32).reshape(-1)

    tx = np.arange(target_width, dtype=np.float64)
    ty = np.arange(target_height, dtype=np.float64)
    sx = tx * source_width / target_width
    sy = ty * source_height / target_height

    x0 = np.floor(sx).astype(np.intp)
    y0 = np.floor(sy).astype(np.intp)
    x1 = np.minimum(x0 + 1, source_width - 1)
    y1 = np.minimum(y0 + 1, source_height - 1)

    x_frac = (sx - x0)[np.newaxis, :]
    y_frac = (sy - y0)[:, np.newaxis]

    v00 = src[y0[:, np.newaxis], x0[np.newaxis, :]]
    v10 = src[y0[:, np.newaxis], x1[np.newaxis, :]]
    v01 = src[y1[:, np.newaxis], x0[np.newaxis, :]]
    v11 = src[y1[:, np.newaxis], x1[np.newaxis, :]]

    v0 = v00 * (1.0 - x_frac) + v10 * x_frac
    v1 = v01 * (1.0 - x_frac) + v11 * x_frac
    value = v0 * (1.0 - y_frac) + v1 * y_frac
    return value.astype(np.float32).reshape(-1)


def fill_no_data(
    window: np.ndarray, no_data_value: Optional[float], fill_value: float
) -> np.ndarray:
    """Replace the no-data sentinel and non-finite samples with fill_value."""

    values = np.asarray(window, dtype=np.float32)
    mask = ~np.isfinite(values)
    if no_data_value is not None:
        mask |= values == np.float32(no_data_value)
    if not np.any(mask):
        return values
    return np.where(mask, np.float32(fill_value), values).astype(np.float32)


def clip_bounds(bounds: TileBounds, bbox: tuple[float, float, float, float]) -> TileBounds:
    """Intersection of bounds with bbox; assumes they intersect."""

    return TileBounds(
        min_lon=max(bounds.min_lon, bbox[0]),
        min_lat=max(bounds.min_lat, bbox[1]),
        max_lon=min(bounds.max_lon, bbox[2]),
        max_lat=min(bounds.max_lat, bbox[3]),
    )


def _span(start: float, end: float, limit: int) -> tuple[int, int]:
    lo = int(math.floor(start))
    hi = int(math.ceil(end))
    lo = max(0, min(limit - 1, lo))
    hi = max(lo + 1, min(limit, hi))
    return lo, hi - lo


def raster_window_for_bounds(raster: ElevationRaster, bounds: TileBounds) -> PixelWindow:
    """Pixel window of raster covering bounds, clipped to the raster, at least 1x1."""

    min_lon, min_lat, max_lon, max_lat = raster.bbox
    clip = clip_bounds(bounds, raster.bbox)
    lon_span = max_lon - min_lon
    lat_span = max_lat - min_lat

    col, width = _span(
        (clip.min_lon - min_lon) / lon_span * raster.width,
        (clip.max_lon - min_lon) / lon_span * raster.width,
        raster.width,
    )
    # Rows count southward from the northern edge.
    row, height = _span(
        (max_lat - clip.max_lat) / lat_span * raster.height,
        (max_lat - clip.min_lat) / lat_span * raster.height,
        raster.height,
    )
    return PixelWindow(x=col, y=row, width=width, height=height)


def _mercator_y(lat: float) -> float:
    return math.asinh(math.tan(math.radians(lat)))


def tile_window_for_bounds(
    tile_bounds: TileBounds, clip: TileBounds, tile_size: int
) -> PixelWindow:
    """Window inside a tile_size x tile_size tile occupied by clip.

    Columns are linear in longitude; rows follow the Mercator y of the tile.
    """

    lon_span = tile_bounds.max_lon - tile_bounds.min_lon
    col, width = _span(
        (clip.min_lon - tile_bounds.min_lon) / lon_span * tile_size,
        (clip.max_lon - tile_bounds.min_lon) / lon_span * tile_size,
        tile_size,
    )

    top = _mercator_y(tile_bounds.max_lat)
    merc_span = top - _mercator_y(tile_bounds.min_lat)
    row, height = _span(
        (top - _mercator_y(clip.max_lat)) / merc_span * tile_size,
        (top - _mercator_y(clip.min_lat)) / merc_span * tile_size,
        tile_size,
    )
    return PixelWindow(x=col, y=row, width=width, height=height)
