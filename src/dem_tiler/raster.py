from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

import numpy as np

from .errors import InvalidRasterInputError, RasterReadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ElevationRaster:
    """A decoded single-band DEM.

    `data` is a flat row-major array of `width * height` samples. Row 0 is the
    northern edge of `bbox`, column 0 its western edge.
    """

    data: np.ndarray
    width: int
    height: int
    bbox: tuple[float, float, float, float]
    min_elevation: float
    max_elevation: float
    no_data_value: Optional[float] = None
    crs: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.data, np.ndarray):
            raise InvalidRasterInputError(
                f"Raster samples must be a numpy array, got {type(self.data).__name__}"
            )
        if self.width <= 0 or self.height <= 0:
            raise InvalidRasterInputError(
                f"Raster dimensions must be positive, got {self.width}x{self.height}"
            )
        if len(self.bbox) != 4:
            raise InvalidRasterInputError(
                f"bbox must have 4 values, got {len(self.bbox)}"
            )
        min_lon, min_lat, max_lon, max_lat = (float(v) for v in self.bbox)
        if not all(math.isfinite(v) for v in (min_lon, min_lat, max_lon, max_lat)):
            raise InvalidRasterInputError(f"bbox must be finite: {self.bbox}")
        if not (min_lon < max_lon):
            raise InvalidRasterInputError(
                f"Expected minLon < maxLon, got {min_lon} >= {max_lon}"
            )
        if not (min_lat < max_lat):
            raise InvalidRasterInputError(
                f"Expected minLat < maxLat, got {min_lat} >= {max_lat}"
            )
        if self.data.ndim != 1:
            raise InvalidRasterInputError(
                f"Raster samples must be a flat buffer, got ndim={self.data.ndim}"
            )
        expected = int(self.width) * int(self.height)
        if int(self.data.size) != expected:
            raise InvalidRasterInputError(
                f"Sample count {self.data.size} does not match {self.width}x{self.height}={expected}"
            )
        if self.min_elevation > self.max_elevation:
            raise InvalidRasterInputError(
                f"Expected min_elevation <= max_elevation, got "
                f"{self.min_elevation} > {self.max_elevation}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        return int(self.height), int(self.width)

    @property
    def resolution(self) -> tuple[float, float]:
        """Pixel size in degrees as (x, y)."""

        min_lon, min_lat, max_lon, max_lat = self.bbox
        return (
            (max_lon - min_lon) / self.width,
            (max_lat - min_lat) / self.height,
        )

    @staticmethod
    def from_array(
        array: np.ndarray,
        bbox: Sequence[float],
        *,
        no_data_value: Optional[float] = None,
        crs: Optional[str] = None,
    ) -> "ElevationRaster":
        """Build a raster from a (height, width) array, north row first.

        The elevation range skips the no-data sentinel and non-finite samples.
        """

        arr = np.asarray(array)
        if arr.ndim != 2:
            raise InvalidRasterInputError("array must be 2D (height, width)")
        height, width = int(arr.shape[0]), int(arr.shape[1])

        valid = np.isfinite(arr)
        if no_data_value is not None:
            valid &= arr != no_data_value
        if np.any(valid):
            min_elevation = float(np.min(arr[valid]))
            max_elevation = float(np.max(arr[valid]))
        else:
            min_elevation = 0.0
            max_elevation = 0.0

        bbox_values = tuple(float(v) for v in bbox)
        return ElevationRaster(
            data=arr.reshape(-1),
            width=width,
            height=height,
            bbox=bbox_values,  # type: ignore[arg-type]
            min_elevation=min_elevation,
            max_elevation=max_elevation,
            no_data_value=float(no_data_value) if no_data_value is not None else None,
            crs=crs,
        )


class RasterSource(Protocol):
    def read(self) -> ElevationRaster: ...


@dataclass(frozen=True)
class GeoTiffRasterSource:
    """Reads the first band of an EPSG:4326 GeoTIFF with rasterio."""

    path: Path

    def read(self) -> ElevationRaster:
        path = Path(self.path)
        if not path.is_file():
            raise RasterReadError(f"DEM file not found: {path}")

        try:
            import rasterio  # type: ignore[import-not-found]
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "rasterio is required to load GeoTIFF DEMs. Install the `geotiff` extra."
            ) from exc

        try:
            with rasterio.open(path) as ds:
                if ds.count < 1:
                    raise RasterReadError(f"No raster bands found: {path}")
                if ds.crs is not None and ds.crs.to_epsg() not in (None, 4326):
                    logger.warning(
                        "raster_crs_not_geographic",
                        extra={"path": str(path), "crs": str(ds.crs)},
                    )
                arr = ds.read(1)
                nodata = ds.nodata
                crs = ds.crs.to_string() if ds.crs is not None else None
                # rasterio arrays are north->south unless the transform is south-up.
                if ds.transform.e > 0:
                    arr = np.flipud(arr)
                left, bottom, right, top = ds.bounds
        except RasterReadError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise RasterReadError(f"Failed to read DEM: {path}: {exc}") from exc

        # South-up rasters report bottom > top.
        raster = ElevationRaster.from_array(
            arr,
            (left, min(bottom, top), right, max(bottom, top)),
            no_data_value=nodata,
            crs=crs,
        )
        logger.info(
            "raster_loaded",
            extra={
                "path": str(path),
                "width": raster.width,
                "height": raster.height,
                "bbox": list(raster.bbox),
            },
        )
        return raster


def format_raster_summary(
    raster: ElevationRaster, *, path: Optional[Union[str, Path]] = None
) -> str:
    min_lon, min_lat, max_lon, max_lat = raster.bbox
    res_x, res_y = raster.resolution
    lines = ["=== DEM Metadata ==="]
    if path is not None:
        lines.append(f"File: {path}")
    lines.extend(
        [
            f"Dimensions: {raster.width} x {raster.height} pixels",
            f"Data Type: {raster.data.dtype}",
            "",
            "Geographic Extent:",
            f"  Min X: {min_lon:.6f}",
            f"  Min Y: {min_lat:.6f}",
            f"  Max X: {max_lon:.6f}",
            f"  Max Y: {max_lat:.6f}",
            "",
            "Resolution:",
            f"  X: {res_x:.6f} units/pixel",
            f"  Y: {res_y:.6f} units/pixel",
            "",
            "Elevation Range:",
            f"  Minimum: {raster.min_elevation:.2f} m",
            f"  Maximum: {raster.max_elevation:.2f} m",
            f"  Range: {raster.max_elevation - raster.min_elevation:.2f} m",
            "",
            f"Projection: {raster.crs or 'Unknown'}",
        ]
    )
    if raster.no_data_value is not None:
        lines.append(f"No Data Value: {raster.no_data_value}")
    return "\n".join(lines)
