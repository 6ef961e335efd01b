from __future__ import annotations


class TerrainTilerError(RuntimeError):
    """Base error for DEM terrain tiling."""


class InvalidRasterInputError(TerrainTilerError, ValueError):
    """Raised when a raster has a malformed bbox, dimensions or sample count."""


class RasterReadError(TerrainTilerError):
    """Raised when a raster source cannot be opened or decoded."""


class EncodingFailureError(TerrainTilerError):
    """Raised when a tile buffer cannot be encoded."""


class EmitFailureError(TerrainTilerError):
    """Raised when an encoded tile cannot be handed to its sink."""
