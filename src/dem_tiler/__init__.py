"""DEM -> z/x/y terrain tile pyramid (heightmap PNG, raw float, quantized-mesh)."""

from .config import TilerConfig
from .encoder import EncodedTile
from .encoder import encode_heightmap_png
from .encoder import encode_quantized_mesh
from .encoder import encode_raw_heightmap
from .errors import EmitFailureError
from .errors import EncodingFailureError
from .errors import InvalidRasterInputError
from .errors import RasterReadError
from .errors import TerrainTilerError
from .pipeline import PyramidResult
from .pipeline import generate_pyramid
from .raster import ElevationRaster
from .raster import GeoTiffRasterSource
from .resample import extract_region
from .resample import resample_elevation_data
from .sink import FileTileSink
from .sink import MemoryTileSink
from .tiling import TileBounds
from .tiling import TileCoordinate
from .tiling import generate_tiling_scheme

__all__ = [
    "ElevationRaster",
    "EmitFailureError",
    "EncodedTile",
    "EncodingFailureError",
    "FileTileSink",
    "GeoTiffRasterSource",
    "InvalidRasterInputError",
    "MemoryTileSink",
    "PyramidResult",
    "RasterReadError",
    "TerrainTilerError",
    "TileBounds",
    "TileCoordinate",
    "TilerConfig",
    "encode_heightmap_png",
    "encode_quantized_mesh",
    "encode_raw_heightmap",
    "extract_region",
    "generate_pyramid",
    "generate_tiling_scheme",
    "resample_elevation_data",
]
