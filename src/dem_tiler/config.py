from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .encoder import TileFormat

DEFAULT_TILER_CONFIG_NAME: Final[str] = "tiler.yaml"
DEFAULT_TILER_CONFIG_ENV: Final[str] = "DEM_TILER_CONFIG"


class TilerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tile_size: int = Field(default=256, gt=0)
    min_level: int = Field(default=0, ge=0)
    max_level: int = Field(default=10, ge=0)
    tile_format: TileFormat = "heightmap-png"

    # Concurrency; None means one worker per CPU core.
    workers: Optional[int] = Field(default=None, ge=1, le=128)

    # Log progress at most every N completed tiles.
    progress_log_every: int = Field(default=100, ge=1, le=1_000_000)

    # Gzip quantized-mesh payloads.
    gzip: bool = False

    # Abort on the first per-tile failure instead of skipping the tile.
    fail_fast: bool = False

    @model_validator(mode="after")
    def _validate_levels(self) -> "TilerConfig":
        if self.max_level < self.min_level:
            raise ValueError("max_level must be >= min_level")
        return self

    def resolved_workers(self) -> int:
        if self.workers is not None:
            return int(self.workers)
        return max(1, os.cpu_count() or 1)


class TilerConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tiler: TilerConfig = Field(default_factory=TilerConfig)


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Path:
    if path is not None:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = (Path.cwd() / candidate).resolve()
        return candidate

    explicit = os.environ.get(DEFAULT_TILER_CONFIG_ENV)
    if explicit:
        candidate = Path(explicit).expanduser()
        if not candidate.is_absolute():
            candidate = (Path.cwd() / candidate).resolve()
        return candidate

    return Path.cwd() / "config" / DEFAULT_TILER_CONFIG_NAME


def _parse_yaml(text: str, *, source: Path) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(text)
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to load tiler YAML: {source}") from exc

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"tiler config must be a mapping: {source}")
    return data


def load_tiler_config(path: Optional[Union[str, Path]] = None) -> TilerConfig:
    config_path = _resolve_config_path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"tiler config file not found: {config_path}")

    raw = config_path.read_text(encoding="utf-8")
    data = dict(_parse_yaml(raw, source=config_path))

    try:
        parsed = TilerConfigFile.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid tiler config ({config_path}): {exc}") from exc

    return parsed.tiler


@lru_cache(maxsize=8)
def _get_tiler_config_cached(config_path: str, mtime_ns: int, size: int) -> TilerConfig:
    _ = (mtime_ns, size)
    return load_tiler_config(config_path)


def get_tiler_config(path: Optional[Union[str, Path]] = None) -> TilerConfig:
    resolved = _resolve_config_path(path)
    try:
        stat = resolved.stat()
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"tiler config file not found: {resolved}") from exc

    return _get_tiler_config_cached(str(resolved), stat.st_mtime_ns, stat.st_size)


get_tiler_config.cache_clear = _get_tiler_config_cached.cache_clear  # type: ignore[attr-defined]
