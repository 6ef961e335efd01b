from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Optional, Sequence

from .config import TilerConfig, get_tiler_config
from .encoder import SUPPORTED_TILE_FORMATS
from .metadata import write_layer_json
from .pipeline import generate_pyramid, plan_pyramid
from .raster import GeoTiffRasterSource, format_raster_summary
from .sink import FileTileSink


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dem-tiler",
        description="Generate a z/x/y terrain tile pyramid from a single DEM raster.",
    )
    parser.add_argument(
        "-i", "--input", type=Path, required=True, help="Input DEM GeoTIFF (EPSG:4326)"
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output directory for layer.json + {z}/{x}/{y}{ext}",
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="YAML config file (tiler: ...)"
    )
    parser.add_argument("--tile-size", type=int, default=None, help="Tile edge in pixels")
    parser.add_argument("--min-level", type=int, default=None, help="Min zoom level")
    parser.add_argument("--max-level", type=int, default=None, help="Max zoom level")
    parser.add_argument(
        "--workers", type=int, default=None, help="Worker threads (default: CPU count)"
    )
    parser.add_argument(
        "--format",
        dest="tile_format",
        choices=list(SUPPORTED_TILE_FORMATS),
        default=None,
        help="Tile encoding (default: heightmap-png)",
    )
    parser.add_argument(
        "--gzip",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Gzip quantized-mesh payloads",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned tile counts without generating files",
    )
    parser.add_argument(
        "--info", action="store_true", help="Print DEM metadata and exit"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def _resolve_config(args: argparse.Namespace) -> TilerConfig:
    try:
        base = get_tiler_config(args.config) if args.config is not None else TilerConfig()
    except (FileNotFoundError, ValueError) as exc:
        raise SystemExit(f"Invalid config: {exc}") from exc
    overrides = {
        "tile_size": args.tile_size,
        "min_level": args.min_level,
        "max_level": args.max_level,
        "workers": args.workers,
        "tile_format": args.tile_format,
        "gzip": args.gzip,
    }
    data = base.model_dump()
    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return TilerConfig.model_validate(data)
    except ValueError as exc:
        raise SystemExit(f"Invalid options: {exc}") from exc


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    config = _resolve_config(args)
    raster = GeoTiffRasterSource(args.input).read()

    if args.info:
        print(format_raster_summary(raster, path=args.input))
        return 0

    if args.dry_run:
        scheme = plan_pyramid(raster, config)
        print(
            json.dumps(
                {
                    "bbox": list(raster.bbox),
                    "min_level": config.min_level,
                    "max_level": config.max_level,
                    "tile_size": config.tile_size,
                    "levels": {
                        str(z): scheme.level_count(z)
                        for z in range(scheme.min_zoom, scheme.max_zoom + 1)
                    },
                    "tile_count": scheme.total_tiles,
                },
                ensure_ascii=False,
                indent=2,
                sort_keys=True,
            )
        )
        return 0

    if args.output is None:
        raise SystemExit("--output is required unless --info or --dry-run is given")

    out_dir: Path = args.output
    out_dir.mkdir(parents=True, exist_ok=True)
    result = generate_pyramid(raster, FileTileSink(out_dir), config=config)
    write_layer_json(out_dir / "layer.json", layer=result.descriptor)

    print(
        json.dumps(
            {
                "input": str(args.input),
                "output": str(out_dir),
                "tile_format": config.tile_format,
                **asdict(result.stats),
                "avg_bytes_per_tile": result.stats.avg_bytes_per_tile,
                "avg_tiles_per_s": result.stats.avg_tiles_per_s,
                "failures": [
                    {
                        "tile": f"{o.tile.z}/{o.tile.x}/{o.tile.y}",
                        "kind": o.error_kind,
                        "error": o.error,
                    }
                    for o in result.failures
                ],
            },
            ensure_ascii=False,
            indent=2,
            sort_keys=True,
        )
    )
    return 1 if result.stats.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
