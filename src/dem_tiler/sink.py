from __future__ import annotations

import threading
from pathlib import Path
from typing import Protocol


class TileSink(Protocol):
    """Receives encoded tiles; may be called concurrently for distinct tiles."""

    def write_tile(self, z: int, x: int, y: int, data: bytes, extension: str) -> None: ...


def tile_relative_path(z: int, x: int, y: int, extension: str) -> Path:
    return Path(str(z)) / str(x) / f"{y}{extension}"


class FileTileSink:
    """Writes tiles to `{out_dir}/{z}/{x}/{y}{extension}`."""

    def __init__(self, out_dir: Path) -> None:
        self._out_dir = Path(out_dir)

    @property
    def out_dir(self) -> Path:
        return self._out_dir

    def write_tile(self, z: int, x: int, y: int, data: bytes, extension: str) -> None:
        path = self._out_dir / tile_relative_path(z, x, y, extension)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


class MemoryTileSink:
    """Keeps tiles in memory keyed by (z, x, y)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tiles: dict[tuple[int, int, int], tuple[bytes, str]] = {}

    def write_tile(self, z: int, x: int, y: int, data: bytes, extension: str) -> None:
        with self._lock:
            self._tiles[(z, x, y)] = (bytes(data), extension)

    @property
    def tiles(self) -> dict[tuple[int, int, int], tuple[bytes, str]]:
        with self._lock:
            return dict(self._tiles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tiles)
