from __future__ import annotations

import gzip
import io
import math
import struct
from dataclasses import dataclass
from typing import Final, Literal, Optional, get_args

import numpy as np
from PIL import Image

from .errors import EncodingFailureError
from .tiling import TileBounds

TileFormat = Literal["heightmap-png", "raw-float", "quantized-mesh"]

SUPPORTED_TILE_FORMATS: Final[tuple[str, ...]] = get_args(TileFormat)

TILE_EXTENSIONS: Final[dict[str, str]] = {
    "heightmap-png": ".png",
    "raw-float": ".raw",
    "quantized-mesh": ".terrain",
}

WGS84_A = 6378137.0
WGS84_F = 1.0 / 298.257223563
WGS84_E2 = WGS84_F * (2.0 - WGS84_F)
WGS84_B = WGS84_A * (1.0 - WGS84_F)

QUANTIZED_MESH_HEADER = struct.Struct("<dddffddddddd")


@dataclass(frozen=True)
class EncodedTile:
    data: bytes
    format: TileFormat

    @property
    def extension(self) -> str:
        return TILE_EXTENSIONS[self.format]


@dataclass(frozen=True)
class QuantizedMeshOptions:
    gzip: bool = False
    gzip_level: int = 9


def wgs84_to_ecef(
    lon_deg: float, lat_deg: float, height_m: float
) -> tuple[float, float, float]:
    lon = math.radians(float(lon_deg))
    lat = math.radians(float(lat_deg))
    sin_lat = math.sin(lat)
    cos_lat = math.cos(lat)
    sin_lon = math.sin(lon)
    cos_lon = math.cos(lon)

    n = WGS84_A / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    x = (n + height_m) * cos_lat * cos_lon
    y = (n + height_m) * cos_lat * sin_lon
    z = (n * (1.0 - WGS84_E2) + height_m) * sin_lat
    return x, y, z


def _transform_to_scaled_space(
    x: float, y: float, z: float
) -> tuple[float, float, float]:
    return x / WGS84_A, y / WGS84_A, z / WGS84_B


def normalize_elevations(
    data: np.ndarray, min_elevation: float, max_elevation: float
) -> np.ndarray:
    """Map samples onto [0, 1] over [min_elevation, max_elevation].

    A degenerate range maps every sample to 0; so do non-finite samples.
    """

    values = np.asarray(data, dtype=np.float64)
    span = float(max_elevation) - float(min_elevation)
    if not span > 0.0:
        return np.zeros(values.shape, dtype=np.float64)
    with np.errstate(invalid="ignore"):
        normalized = (values - float(min_elevation)) / span
    normalized = np.where(np.isfinite(normalized), normalized, 0.0)
    return np.clip(normalized, 0.0, 1.0)


def _quantize(normalized: np.ndarray, scale: int) -> np.ndarray:
    # Round half up so results do not depend on numpy's half-to-even rounding.
    return np.floor(normalized * float(scale) + 0.5).astype(np.int64)


def _check_size(data: np.ndarray, width: int, height: int) -> np.ndarray:
    values = np.asarray(data).reshape(-1)
    if width <= 0 or height <= 0:
        raise EncodingFailureError(f"Invalid tile dimensions: {width}x{height}")
    if values.size != width * height:
        raise EncodingFailureError(
            f"Expected {width * height} samples for {width}x{height}, got {values.size}"
        )
    return values


def encode_heightmap_png(
    data: np.ndarray,
    width: int,
    height: int,
    min_elevation: float,
    max_elevation: float,
) -> bytes:
    """Encode samples as a 16-bit grayscale PNG normalized to [0, 65535]."""

    values = _check_size(data, width, height)
    q = _quantize(normalize_elevations(values, min_elevation, max_elevation), 65535)
    raw = q.astype(">u2").tobytes()

    try:
        img = Image.frombytes("I;16", (int(width), int(height)), raw, "raw", "I;16B")
        out = io.BytesIO()
        img.save(out, format="PNG", compress_level=9)
    except (ValueError, OSError) as exc:
        raise EncodingFailureError(f"PNG encoding failed: {exc}") from exc
    return out.getvalue()


def encode_raw_heightmap(data: np.ndarray) -> bytes:
    """Samples as consecutive little-endian float32, no header."""

    return np.asarray(data, dtype="<f4").reshape(-1).tobytes()


def encode_quantized_mesh(
    data: np.ndarray,
    width: int,
    height: int,
    bounds: TileBounds,
    *,
    options: Optional[QuantizedMeshOptions] = None,
) -> bytes:
    """Encode a reduced quantized-mesh block: 88-byte header plus int16 heights.

    Heights are normalized on the tile's own min/max and quantized to
    [0, 32767]. Triangle indices, edge indices, normals and the water mask of
    the full quantized-mesh-1.0 layout are not written, so the payload is not
    loadable by renderers expecting the complete format.
    """

    options = options or QuantizedMeshOptions()
    values = _check_size(data, width, height).astype(np.float64)

    finite = values[np.isfinite(values)]
    if finite.size == 0:
        min_h = 0.0
        max_h = 0.0
    else:
        min_h = float(np.min(finite))
        max_h = float(np.max(finite))
    q_heights = _quantize(normalize_elevations(values, min_h, max_h), 32767)

    center_lon = (bounds.min_lon + bounds.max_lon) / 2.0
    center_lat = (bounds.min_lat + bounds.max_lat) / 2.0
    center_height = (min_h + max_h) / 2.0
    center_x, center_y, center_z = wgs84_to_ecef(center_lon, center_lat, center_height)

    corners = [
        (bounds.min_lon, bounds.min_lat),
        (bounds.max_lon, bounds.min_lat),
        (bounds.min_lon, bounds.max_lat),
        (bounds.max_lon, bounds.max_lat),
    ]
    max_radius = 0.0
    for lon, lat in corners:
        for h in (min_h, max_h):
            x, y, z = wgs84_to_ecef(lon, lat, h)
            dx = x - center_x
            dy = y - center_y
            dz = z - center_z
            max_radius = max(max_radius, math.sqrt(dx * dx + dy * dy + dz * dz))

    hoc_x, hoc_y, hoc_z = _transform_to_scaled_space(center_x, center_y, center_z)

    try:
        header = QUANTIZED_MESH_HEADER.pack(
            float(center_x),
            float(center_y),
            float(center_z),
            float(min_h),
            float(max_h),
            float(center_x),
            float(center_y),
            float(center_z),
            float(max_radius),
            float(hoc_x),
            float(hoc_y),
            float(hoc_z),
        )
    except (struct.error, OverflowError) as exc:
        raise EncodingFailureError(f"Quantized-mesh header encoding failed: {exc}") from exc

    raw = header + q_heights.astype("<i2").tobytes()
    if options.gzip:
        return gzip.compress(raw, compresslevel=int(options.gzip_level))
    return raw


def encode_tile(
    data: np.ndarray,
    tile_size: int,
    tile_format: TileFormat,
    *,
    bounds: TileBounds,
    min_elevation: float,
    max_elevation: float,
    options: Optional[QuantizedMeshOptions] = None,
) -> EncodedTile:
    if tile_format == "heightmap-png":
        payload = encode_heightmap_png(
            data, tile_size, tile_size, min_elevation, max_elevation
        )
    elif tile_format == "raw-float":
        payload = encode_raw_heightmap(data)
    elif tile_format == "quantized-mesh":
        payload = encode_quantized_mesh(
            data, tile_size, tile_size, bounds, options=options
        )
    else:
        raise ValueError(f"Unsupported tile format: {tile_format!r}")
    return EncodedTile(data=payload, format=tile_format)
