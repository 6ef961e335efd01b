from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Final, Literal, Mapping, Optional, Sequence

WEB_MERCATOR_MAX_LAT: Final[float] = 85.05112878

# WGS84 equatorial radius in meters.
EARTH_RADIUS: Final[float] = 6378137.0
EARTH_CIRCUMFERENCE: Final[float] = 2.0 * math.pi * EARTH_RADIUS

BBox = Sequence[float]


@dataclass(frozen=True)
class TileCoordinate:
    """Slippy-map tile coordinates (Web Mercator, y origin at north)."""

    x: int
    y: int
    z: int

    def __post_init__(self) -> None:
        if self.z < 0:
            raise ValueError(f"Invalid zoom: {self.z}")

    @property
    def in_range(self) -> bool:
        n = num_tiles(self.z)
        return 0 <= self.x < n and 0 <= self.y < n


@dataclass(frozen=True)
class TileBounds:
    """Geographic bounds of a tile in degrees."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def as_bbox(self) -> tuple[float, float, float, float]:
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)


@dataclass(frozen=True)
class TilingScheme:
    bbox: tuple[float, float, float, float]
    min_zoom: int
    max_zoom: int
    levels: Mapping[int, tuple[TileCoordinate, ...]]
    total_tiles: int

    def level_count(self, zoom: int) -> int:
        return len(self.levels.get(zoom, ()))


def num_tiles(z: int) -> int:
    """Number of tiles along each axis at zoom z."""

    if z < 0:
        raise ValueError(f"Invalid zoom: {z}")
    return 1 << z


def clamp_lat(lat: float) -> float:
    return max(-WEB_MERCATOR_MAX_LAT, min(WEB_MERCATOR_MAX_LAT, lat))


def _clamp_int(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, int(value)))


def lon_lat_to_tile(lon: float, lat: float, zoom: int) -> TileCoordinate:
    """Project a lon/lat pair onto the tile containing it.

    The result is not clamped to the tile grid, and latitudes at or near +/-90
    are not guarded: tan() diverges there.
    """

    n = num_tiles(zoom)
    x = math.floor((float(lon) + 180.0) / 360.0 * n)
    lat_rad = math.radians(float(lat))
    merc = math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad))
    y = math.floor((1.0 - merc / math.pi) / 2.0 * n)
    return TileCoordinate(x=int(x), y=int(y), z=zoom)


def tile_x_to_lon(x: float, zoom: int) -> float:
    return x / num_tiles(zoom) * 360.0 - 180.0


def tile_y_to_lat(y: float, zoom: int) -> float:
    n = num_tiles(zoom)
    lat_rad = math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n)))
    return math.degrees(lat_rad)


def tile_to_bounds(x: int, y: int, zoom: int) -> TileBounds:
    """Return the geographic bounds of tile (x, y) at zoom."""

    return TileBounds(
        min_lon=tile_x_to_lon(x, zoom),
        min_lat=tile_y_to_lat(y + 1, zoom),
        max_lon=tile_x_to_lon(x + 1, zoom),
        max_lat=tile_y_to_lat(y, zoom),
    )


def _validate_bbox(bbox: BBox) -> tuple[float, float, float, float]:
    if len(bbox) != 4:
        raise ValueError(f"Expected bbox of 4 values, got {len(bbox)}")
    min_lon, min_lat, max_lon, max_lat = (float(v) for v in bbox)
    if min_lon > max_lon:
        raise ValueError(
            f"bbox crosses the antimeridian or is inverted: minLon={min_lon} > maxLon={max_lon}"
        )
    if min_lat > max_lat:
        raise ValueError(f"Expected minLat <= maxLat, got {min_lat} > {max_lat}")
    return min_lon, min_lat, max_lon, max_lat


def get_tiles_in_bounds(bbox: BBox, zoom: int) -> list[TileCoordinate]:
    """List tiles intersecting bbox at zoom, x outer and y inner.

    Tile y grows southward, so the minimum tile comes from the north-west
    corner and the maximum from the south-east corner.
    """

    min_lon, min_lat, max_lon, max_lat = _validate_bbox(bbox)
    n = num_tiles(zoom)

    nw = lon_lat_to_tile(min_lon, clamp_lat(max_lat), zoom)
    se = lon_lat_to_tile(max_lon, clamp_lat(min_lat), zoom)

    x_min = _clamp_int(nw.x, 0, n - 1)
    x_max = _clamp_int(se.x, 0, n - 1)
    y_min = _clamp_int(nw.y, 0, n - 1)
    y_max = _clamp_int(se.y, 0, n - 1)

    tiles: list[TileCoordinate] = []
    for x in range(x_min, x_max + 1):
        for y in range(y_min, y_max + 1):
            tiles.append(TileCoordinate(x=x, y=y, z=zoom))
    return tiles


def generate_tiling_scheme(
    bbox: BBox, min_zoom: int = 0, max_zoom: int = 10
) -> TilingScheme:
    """Collect the tiles covering bbox for every zoom in [min_zoom, max_zoom]."""

    if min_zoom < 0 or max_zoom < 0:
        raise ValueError("Zoom levels must be >= 0")
    if min_zoom > max_zoom:
        raise ValueError(f"Expected min_zoom <= max_zoom, got {min_zoom} > {max_zoom}")

    normalized = _validate_bbox(bbox)
    levels: dict[int, tuple[TileCoordinate, ...]] = {}
    total = 0
    for z in range(min_zoom, max_zoom + 1):
        tiles = tuple(get_tiles_in_bounds(normalized, z))
        levels[z] = tiles
        total += len(tiles)

    return TilingScheme(
        bbox=normalized,
        min_zoom=min_zoom,
        max_zoom=max_zoom,
        levels=MappingProxyType(levels),
        total_tiles=total,
    )


def get_resolution(zoom: int, lat: float = 0.0, tile_size: int = 256) -> float:
    """Ground resolution in meters per pixel at zoom and latitude."""

    lat_rad = math.radians(float(lat))
    return EARTH_CIRCUMFERENCE * math.cos(lat_rad) / (tile_size * num_tiles(zoom))


def get_parent_tile(tile: TileCoordinate) -> Optional[TileCoordinate]:
    if tile.z == 0:
        return None
    return TileCoordinate(x=tile.x // 2, y=tile.y // 2, z=tile.z - 1)


def get_child_tiles(tile: TileCoordinate) -> list[TileCoordinate]:
    base_x = tile.x * 2
    base_y = tile.y * 2
    child_z = tile.z + 1
    return [
        TileCoordinate(x=base_x, y=base_y, z=child_z),
        TileCoordinate(x=base_x + 1, y=base_y, z=child_z),
        TileCoordinate(x=base_x, y=base_y + 1, z=child_z),
        TileCoordinate(x=base_x + 1, y=base_y + 1, z=child_z),
    ]


def format_tile_path(tile: TileCoordinate, order: Literal["zxy", "xyz"] = "zxy") -> str:
    if order == "xyz":
        return f"{tile.x}/{tile.y}/{tile.z}"
    if order != "zxy":
        raise ValueError(f"Unknown tile path order: {order!r}")
    return f"{tile.z}/{tile.x}/{tile.y}"


def bbox_intersects(a: BBox, b: BBox) -> bool:
    """Closed-interval rectangle overlap; touching edges intersect."""

    return not (
        a[2] < b[0]
        or a[0] > b[2]
        or a[3] < b[1]
        or a[1] > b[3]
    )
