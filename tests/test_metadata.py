from __future__ import annotations

import json
from pathlib import Path

import pytest

from dem_tiler.metadata import PyramidMetadata, build_layer_json, write_layer_json
from dem_tiler.sink import FileTileSink, MemoryTileSink, tile_relative_path


def test_pyramid_metadata_extents_follow_recorded_tiles() -> None:
    meta = PyramidMetadata(bounds=[-10, -10, 10, 10], min_zoom=1, max_zoom=3)
    meta.record(2, 1, 2)
    meta.record(2, 2, 1)
    meta.record(3, 4, 4)

    assert meta.extent(1) is None
    assert meta.available() == [
        None,
        None,
        {"startX": 1, "startY": 1, "endX": 2, "endY": 2},
        {"startX": 4, "startY": 4, "endX": 4, "endY": 4},
    ]
    assert meta.available()[2]["endX"] == 2


def test_pyramid_metadata_ignores_levels_below_min_zoom() -> None:
    meta = PyramidMetadata(bounds=[0, 0, 1, 1], min_zoom=1, max_zoom=1)
    meta.record(0, 0, 0)
    assert meta.available() == [None, None]

    with pytest.raises(ValueError, match="Invalid zoom range"):
        PyramidMetadata(bounds=[0, 0, 1, 1], min_zoom=2, max_zoom=1)


def test_finalize_descriptor_fields() -> None:
    meta = PyramidMetadata(bounds=[-10, -10, 10, 10], min_zoom=0, max_zoom=0)
    meta.record(0, 0, 0)
    layer = meta.finalize()
    assert layer["tilejson"] == "2.1.0"
    assert layer["format"] == "heightmap-1.0"
    assert layer["bounds"] == [-10.0, -10.0, 10.0, 10.0]
    assert layer["minzoom"] == 0
    assert layer["maxzoom"] == 0
    assert layer["projection"] == "EPSG:3857"
    assert layer["tiles"] == ["{z}/{x}/{y}.png"]
    assert layer["available"] == [{"startX": 0, "startY": 0, "endX": 0, "endY": 0}]
    assert layer["metadata"] == {"tile_size": 256, "encoding": "heightmap-png"}


def test_build_layer_json_for_quantized_mesh() -> None:
    layer = build_layer_json(
        bounds=[0, 0, 1, 1],
        min_zoom=0,
        max_zoom=1,
        available=[None, None],
        tile_format="quantized-mesh",
        tile_size=65,
    )
    assert layer["format"] == "quantized-mesh-1.0"
    assert layer["tiles"] == ["{z}/{x}/{y}.terrain"]


def test_write_layer_json(tmp_path: Path) -> None:
    layer = build_layer_json(bounds=[0, 0, 1, 1], min_zoom=0, max_zoom=0, available=[None])
    path = tmp_path / "out" / "layer.json"
    write_layer_json(path, layer=layer)
    assert json.loads(path.read_text(encoding="utf-8")) == layer


def test_file_tile_sink_layout(tmp_path: Path) -> None:
    sink = FileTileSink(tmp_path)
    sink.write_tile(3, 4, 5, b"abc", ".png")
    assert (tmp_path / "3" / "4" / "5.png").read_bytes() == b"abc"
    assert tile_relative_path(3, 4, 5, ".png") == Path("3/4/5.png")
    assert sink.out_dir == tmp_path


def test_memory_tile_sink() -> None:
    sink = MemoryTileSink()
    sink.write_tile(1, 0, 1, b"\x00\x01", ".raw")
    assert len(sink) == 1
    assert sink.tiles == {(1, 0, 1): (b"\x00\x01", ".raw")}
