from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from dem_tiler import cli
from dem_tiler.raster import ElevationRaster


class _StubSource:
    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> ElevationRaster:
        arr = np.linspace(0.0, 500.0, 20 * 20, dtype=np.float32).reshape(20, 20)
        return ElevationRaster.from_array(arr, (-10.0, -10.0, 10.0, 10.0))


@pytest.fixture(autouse=True)
def _stub_raster_source(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "GeoTiffRasterSource", _StubSource)


def test_cli_dry_run_prints_tile_counts(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["-i", "dem.tif", "--max-level", "2", "--dry-run"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["levels"] == {"0": 1, "1": 4, "2": 4}
    assert payload["tile_count"] == 9
    assert payload["bbox"] == [-10.0, -10.0, 10.0, 10.0]


def test_cli_info_prints_summary(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["-i", "dem.tif", "--info"]) == 0
    out = capsys.readouterr().out
    assert "=== DEM Metadata ===" in out
    assert "Dimensions: 20 x 20 pixels" in out


def test_cli_generates_tiles_and_layer_json(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    out_dir = tmp_path / "tiles"
    code = cli.main(
        [
            "-i",
            "dem.tif",
            "-o",
            str(out_dir),
            "--tile-size",
            "16",
            "--max-level",
            "1",
            "--workers",
            "2",
            "--format",
            "raw-float",
        ]
    )
    assert code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["emitted"] == 5
    assert summary["failures"] == []

    assert (out_dir / "0" / "0" / "0.raw").stat().st_size == 16 * 16 * 4
    layer = json.loads((out_dir / "layer.json").read_text(encoding="utf-8"))
    assert layer["tiles"] == ["{z}/{x}/{y}.raw"]
    assert layer["maxzoom"] == 1
    assert layer["available"][0] == {"startX": 0, "startY": 0, "endX": 0, "endY": 0}


def test_cli_merges_config_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = tmp_path / "tiler.yaml"
    config_path.write_text("tiler:\n  min_level: 1\n  max_level: 3\n", encoding="utf-8")

    code = cli.main(
        ["-i", "dem.tif", "--config", str(config_path), "--max-level", "2", "--dry-run"]
    )
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["min_level"] == 1
    assert payload["max_level"] == 2
    assert payload["levels"] == {"1": 4, "2": 4}


def test_cli_rejects_invalid_levels() -> None:
    with pytest.raises(SystemExit, match="Invalid options"):
        cli.main(["-i", "dem.tif", "--min-level", "4", "--max-level", "2", "--dry-run"])


def test_cli_requires_output_for_generation() -> None:
    with pytest.raises(SystemExit, match="--output is required"):
        cli.main(["-i", "dem.tif"])


def test_cli_reports_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(SystemExit, match="tiler config file not found"):
        cli.main(["-i", "dem.tif", "--config", str(tmp_path / "missing.yaml"), "--dry-run"])


def test_cli_reports_invalid_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "tiler.yaml"
    config_path.write_text("tiler:\n  tile_size: 0\n", encoding="utf-8")
    with pytest.raises(SystemExit, match="Invalid config"):
        cli.main(["-i", "dem.tif", "--config", str(config_path), "--dry-run"])
