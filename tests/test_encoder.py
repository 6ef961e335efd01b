from __future__ import annotations

import gzip
import io
import struct

import numpy as np
import pytest
from PIL import Image

from dem_tiler.encoder import (
    TILE_EXTENSIONS,
    QuantizedMeshOptions,
    encode_heightmap_png,
    encode_quantized_mesh,
    encode_raw_heightmap,
    encode_tile,
    normalize_elevations,
    wgs84_to_ecef,
)
from dem_tiler.errors import EncodingFailureError
from dem_tiler.tiling import TileBounds

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _decode_png(payload: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(payload)) as img:
        img.load()
        return np.asarray(img).astype(np.int64)


def test_normalize_elevations() -> None:
    values = np.array([-10.0, 0.0, 50.0, 100.0, 150.0, np.nan])
    out = normalize_elevations(values, 0.0, 100.0)
    assert out.tolist() == pytest.approx([0.0, 0.0, 0.5, 1.0, 1.0, 0.0])

    assert normalize_elevations(values, 5.0, 5.0).tolist() == [0.0] * 6


def test_encode_heightmap_png_values() -> None:
    data = np.array([0.0, 25.0, 50.0, 100.0, -5.0, 200.0], dtype=np.float32)
    payload = encode_heightmap_png(data, 3, 2, 0.0, 100.0)
    assert payload[:8] == PNG_MAGIC

    decoded = _decode_png(payload)
    assert decoded.shape == (2, 3)
    assert decoded.reshape(-1).tolist() == [0, 16384, 32768, 65535, 0, 65535]


def test_encode_heightmap_png_is_deterministic() -> None:
    rng = np.random.default_rng(7)
    data = rng.uniform(0.0, 3000.0, size=32 * 32).astype(np.float32)
    first = encode_heightmap_png(data, 32, 32, 0.0, 3000.0)
    second = encode_heightmap_png(data.copy(), 32, 32, 0.0, 3000.0)
    assert first == second


def test_encode_heightmap_png_degenerate_range_is_all_zero() -> None:
    data = np.full(16, 123.0, dtype=np.float32)
    payload = encode_heightmap_png(data, 4, 4, 123.0, 123.0)
    decoded = _decode_png(payload)
    assert decoded.shape == (4, 4)
    assert not decoded.any()


def test_encode_heightmap_png_rejects_size_mismatch() -> None:
    with pytest.raises(EncodingFailureError, match="Expected 9 samples"):
        encode_heightmap_png(np.zeros(4, dtype=np.float32), 3, 3, 0.0, 1.0)
    with pytest.raises(EncodingFailureError, match="Invalid tile dimensions"):
        encode_heightmap_png(np.zeros(0, dtype=np.float32), 0, 3, 0.0, 1.0)


def test_encode_raw_heightmap_roundtrip() -> None:
    data = np.array([100.0, 200.5, -42.25, 8848.86], dtype=np.float32)
    payload = encode_raw_heightmap(data)
    assert len(payload) == 16
    assert struct.unpack("<4f", payload) == tuple(float(v) for v in data)
    np.testing.assert_array_equal(np.frombuffer(payload, dtype="<f4"), data)


def test_wgs84_to_ecef_axis_points() -> None:
    x, y, z = wgs84_to_ecef(0.0, 0.0, 0.0)
    assert x == pytest.approx(6378137.0, abs=1e-3)
    assert y == pytest.approx(0.0, abs=1e-3)
    assert z == pytest.approx(0.0, abs=1e-3)

    x, y, z = wgs84_to_ecef(90.0, 0.0, 0.0)
    assert x == pytest.approx(0.0, abs=1e-3)
    assert y == pytest.approx(6378137.0, abs=1e-3)


def test_encode_quantized_mesh_layout() -> None:
    bounds = TileBounds(min_lon=0.0, min_lat=0.0, max_lon=1.0, max_lat=1.0)
    heights = np.array(
        [0.0, 10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0], dtype=np.float32
    )

    payload = encode_quantized_mesh(heights, 3, 3, bounds)
    assert len(payload) == 88 + 9 * 2

    (
        cx,
        cy,
        cz,
        min_h,
        max_h,
        bsx,
        bsy,
        bsz,
        radius,
        _hox,
        _hoy,
        _hoz,
    ) = struct.unpack("<dddffddddddd", payload[:88])
    assert min_h == pytest.approx(0.0)
    assert max_h == pytest.approx(80.0)
    assert (bsx, bsy, bsz) == (cx, cy, cz)
    assert radius > 0.0

    q = struct.unpack("<9h", payload[88:])
    assert q[0] == 0
    assert q[-1] == 32767
    assert q[4] == 16384


def test_encode_quantized_mesh_degenerate_and_gzip() -> None:
    bounds = TileBounds(min_lon=0.0, min_lat=0.0, max_lon=1.0, max_lat=1.0)
    flat = np.full(4, 250.0, dtype=np.float32)

    payload = encode_quantized_mesh(flat, 2, 2, bounds)
    assert struct.unpack("<4h", payload[88:]) == (0, 0, 0, 0)

    zipped = encode_quantized_mesh(
        flat, 2, 2, bounds, options=QuantizedMeshOptions(gzip=True)
    )
    assert zipped[:2] == b"\x1f\x8b"
    assert gzip.decompress(zipped) == payload


def test_encode_tile_dispatch() -> None:
    bounds = TileBounds(min_lon=0.0, min_lat=0.0, max_lon=1.0, max_lat=1.0)
    data = np.linspace(0.0, 100.0, 4, dtype=np.float32)

    for fmt in ("heightmap-png", "raw-float", "quantized-mesh"):
        tile = encode_tile(
            data, 2, fmt, bounds=bounds, min_elevation=0.0, max_elevation=100.0  # type: ignore[arg-type]
        )
        assert tile.format == fmt
        assert tile.extension == TILE_EXTENSIONS[fmt]
        assert len(tile.data) > 0

    with pytest.raises(ValueError, match="Unsupported tile format"):
        encode_tile(
            data, 2, "webp", bounds=bounds, min_elevation=0.0, max_elevation=1.0  # type: ignore[arg-type]
        )
