from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

import numpy as np

from .config import TilerConfig
from .encoder import (
    EncodedTile,
    QuantizedMeshOptions,
    TileFormat,
    encode_tile,
)
from .errors import (
    EmitFailureError,
    EncodingFailureError,
    InvalidRasterInputError,
)
from .metadata import PyramidMetadata
from .raster import ElevationRaster
from .resample import (
    clip_bounds,
    extract_region,
    fill_no_data,
    raster_window_for_bounds,
    resample_elevation_data,
    tile_window_for_bounds,
)
from .sink import TileSink
from .tiling import (
    TileBounds,
    TileCoordinate,
    TilingScheme,
    bbox_intersects,
    format_tile_path,
    generate_tiling_scheme,
    tile_to_bounds,
)

logger = logging.getLogger(__name__)

TileStatus = Literal["emitted", "skipped", "failed"]


@dataclass(frozen=True)
class TileOutcome:
    tile: TileCoordinate
    status: TileStatus
    bytes_written: int = 0
    error_kind: Optional[Literal["encoding", "emit"]] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PyramidStats:
    planned: int
    emitted: int
    skipped: int
    failed: int
    total_bytes: int
    elapsed_s: float

    @property
    def avg_bytes_per_tile(self) -> float:
        return self.total_bytes / max(1, self.emitted)

    @property
    def avg_tiles_per_s(self) -> float:
        return self.emitted / max(1e-9, self.elapsed_s)


@dataclass(frozen=True)
class PyramidResult:
    descriptor: dict[str, Any]
    stats: PyramidStats
    failures: Sequence[TileOutcome]


def render_tile_heights(
    raster: ElevationRaster, bounds: TileBounds, *, tile_size: int
) -> Optional[np.ndarray]:
    """Resample the raster under bounds onto a tile_size x tile_size grid.

    Returns None when bounds do not intersect the raster. Parts of the tile
    outside the raster, and no-data samples, take the raster's min elevation.
    """

    if not bbox_intersects(bounds.as_bbox(), raster.bbox):
        return None

    clip = clip_bounds(bounds, raster.bbox)
    src = raster_window_for_bounds(raster, bounds)
    dst = tile_window_for_bounds(bounds, clip, tile_size)

    window = extract_region(
        raster.data, raster.width, src.x, src.y, src.width, src.height
    )
    window = fill_no_data(window, raster.no_data_value, raster.min_elevation)
    resampled = resample_elevation_data(
        window, src.width, src.height, dst.width, dst.height
    )
    if dst.width == tile_size and dst.height == tile_size:
        return resampled

    out = np.full((tile_size, tile_size), raster.min_elevation, dtype=np.float32)
    out[dst.y : dst.y + dst.height, dst.x : dst.x + dst.width] = resampled.reshape(
        dst.height, dst.width
    )
    return out.reshape(-1)


def process_tile(
    raster: ElevationRaster,
    tile: TileCoordinate,
    *,
    tile_size: int,
    tile_format: TileFormat,
    options: Optional[QuantizedMeshOptions] = None,
) -> Optional[EncodedTile]:
    """Render and encode one tile; None when the tile lies outside the raster."""

    bounds = tile_to_bounds(tile.x, tile.y, tile.z)
    heights = render_tile_heights(raster, bounds, tile_size=tile_size)
    if heights is None:
        return None
    return encode_tile(
        heights,
        tile_size,
        tile_format,
        bounds=bounds,
        min_elevation=raster.min_elevation,
        max_elevation=raster.max_elevation,
        options=options,
    )


def _run_tile(
    raster: ElevationRaster,
    tile: TileCoordinate,
    sink: TileSink,
    *,
    config: TilerConfig,
    options: QuantizedMeshOptions,
) -> TileOutcome:
    try:
        encoded = process_tile(
            raster,
            tile,
            tile_size=config.tile_size,
            tile_format=config.tile_format,
            options=options,
        )
    except EncodingFailureError as exc:
        return TileOutcome(tile=tile, status="failed", error_kind="encoding", error=str(exc))

    if encoded is None:
        return TileOutcome(tile=tile, status="skipped")

    try:
        sink.write_tile(tile.z, tile.x, tile.y, encoded.data, encoded.extension)
    except Exception as exc:  # noqa: BLE001
        return TileOutcome(tile=tile, status="failed", error_kind="emit", error=str(exc))

    return TileOutcome(tile=tile, status="emitted", bytes_written=len(encoded.data))


def _validate_geographic(raster: ElevationRaster) -> None:
    min_lon, min_lat, max_lon, max_lat = raster.bbox
    if min_lon < -180.0 or max_lon > 180.0 or min_lat < -90.0 or max_lat > 90.0:
        raise InvalidRasterInputError(
            f"Raster bbox is not in geographic degrees: {list(raster.bbox)}"
        )


def plan_pyramid(raster: ElevationRaster, config: TilerConfig) -> TilingScheme:
    _validate_geographic(raster)
    return generate_tiling_scheme(raster.bbox, config.min_level, config.max_level)


def _failure_error(outcome: TileOutcome) -> Exception:
    message = f"tile {format_tile_path(outcome.tile)} failed: {outcome.error}"
    if outcome.error_kind == "emit":
        return EmitFailureError(message)
    return EncodingFailureError(message)


def generate_pyramid(
    raster: ElevationRaster,
    sink: TileSink,
    *,
    config: Optional[TilerConfig] = None,
    executor: Optional[Executor] = None,
) -> PyramidResult:
    """Render every tile of the pyramid over the raster bbox into sink.

    Tiles are processed concurrently. Outcomes are aggregated in the calling
    thread, which is the only writer of the pyramid metadata. A failed tile is
    logged and skipped unless `config.fail_fast` is set.
    """

    config = config or TilerConfig()
    scheme = plan_pyramid(raster, config)
    options = QuantizedMeshOptions(gzip=config.gzip)
    metadata = PyramidMetadata(
        bounds=raster.bbox,
        min_zoom=config.min_level,
        max_zoom=config.max_level,
        tile_format=config.tile_format,
        tile_size=config.tile_size,
    )

    jobs: list[TileCoordinate] = []
    for z in range(scheme.min_zoom, scheme.max_zoom + 1):
        tiles = scheme.levels[z]
        logger.debug("pyramid_level_planned", extra={"zoom": z, "tiles": len(tiles)})
        jobs.extend(tiles)

    total = len(jobs)
    max_workers = config.resolved_workers()
    logger.info(
        "pyramid_started",
        extra={
            "bbox": list(raster.bbox),
            "min_zoom": config.min_level,
            "max_zoom": config.max_level,
            "tile_size": config.tile_size,
            "tile_format": config.tile_format,
            "planned_tiles": total,
            "max_workers": max_workers,
        },
    )

    t0 = time.perf_counter()
    emitted = 0
    skipped = 0
    total_bytes = 0
    completed = 0
    failures: list[TileOutcome] = []

    owns_executor = executor is None
    pool = executor or ThreadPoolExecutor(max_workers=max_workers)
    aborted = False
    futures: dict[Future[TileOutcome], TileCoordinate] = {}
    try:
        for tile in jobs:
            future = pool.submit(_run_tile, raster, tile, sink, config=config, options=options)
            futures[future] = tile
        for future in as_completed(futures):
            outcome = future.result()
            completed += 1

            if outcome.status == "emitted":
                emitted += 1
                total_bytes += outcome.bytes_written
                metadata.record(outcome.tile.z, outcome.tile.x, outcome.tile.y)
            elif outcome.status == "skipped":
                skipped += 1
            else:
                failures.append(outcome)
                logger.error(
                    "tile_failed",
                    extra={
                        "tile": format_tile_path(outcome.tile),
                        "error_kind": outcome.error_kind,
                        "error": outcome.error,
                    },
                )
                if config.fail_fast:
                    raise _failure_error(outcome)

            if completed == total or completed % config.progress_log_every == 0:
                logger.info(
                    "pyramid_progress",
                    extra={
                        "completed": completed,
                        "planned_tiles": total,
                        "emitted": emitted,
                        "skipped": skipped,
                        "failed": len(failures),
                    },
                )
    except BaseException:
        # Drop queued tiles; only running ones are waited on.
        aborted = True
        for pending in futures:
            pending.cancel()
        raise
    finally:
        if owns_executor:
            pool.shutdown(wait=True, cancel_futures=aborted)

    stats = PyramidStats(
        planned=total,
        emitted=emitted,
        skipped=skipped,
        failed=len(failures),
        total_bytes=total_bytes,
        elapsed_s=time.perf_counter() - t0,
    )
    logger.info(
        "pyramid_finished",
        extra={
            "planned_tiles": stats.planned,
            "emitted": stats.emitted,
            "skipped": stats.skipped,
            "failed": stats.failed,
            "total_bytes": stats.total_bytes,
            "duration_s": stats.elapsed_s,
        },
    )
    return PyramidResult(
        descriptor=metadata.finalize(),
        stats=stats,
        failures=sorted(failures, key=lambda o: (o.tile.z, o.tile.x, o.tile.y)),
    )
