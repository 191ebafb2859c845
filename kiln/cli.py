# kiln/cli.py
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from kiln.geometry.model import MergedMesh
from kiln.geometry.primitives import create_quad_model
from kiln.log import setup_logging
from kiln.textures.distance_field import fill_image_gaps
from kiln.textures.image import load_image, save_image

logger = logging.getLogger(__name__)


def mesh_summary(mesh: MergedMesh) -> dict:
    return {
        "num_vertices": mesh.num_vertices,
        "num_indices": mesh.num_indices,
        "vertex_stride": mesh.vertex_layout.stride_bytes,
        "large_indices": mesh.large_indices,
        "bounding_box": list(mesh.aabb) if mesh.aabb is not None else None,
        "geometries": [
            [
                {
                    "index_offset": r.index_offset,
                    "index_count": r.index_count,
                    "lod_distance": r.lod_distance,
                }
                for r in levels
            ]
            for levels in mesh.geometries
        ],
    }


def cmd_fill_gaps(args: argparse.Namespace) -> int:
    image = load_image(args.input)
    result = fill_image_gaps(image, args.downsample, is_transparent=not args.luma)
    save_image(result, args.output)
    logger.info("Wrote %s", args.output)
    return 0


def cmd_mesh_quad(args: argparse.Namespace) -> int:
    summary = mesh_summary(create_quad_model())
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(json.dumps(summary, indent=2))
    logger.info("Wrote %s", args.output)
    return 0


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="kiln", description="Procedural mesh and texture tools.")
    p.add_argument("--log-level", default="INFO", help="Logging level, e.g. DEBUG")
    sub = p.add_subparsers(dest="command", required=True)

    fill = sub.add_parser("fill-gaps", help="Fill empty texels with the nearest color")
    fill.add_argument("input", type=Path, help="Input image")
    fill.add_argument("output", type=Path, help="Output PNG")
    fill.add_argument("--downsample", type=int, default=0, help="Mip levels to drop before filling")
    fill.add_argument(
        "--luma", action="store_true", help="Treat black (not transparent) texels as gaps"
    )
    fill.set_defaults(func=cmd_fill_gaps)

    quad = sub.add_parser("mesh-quad", help="Write a JSON summary of the built-in quad mesh")
    quad.add_argument("output", type=Path, help="Output JSON path")
    quad.set_defaults(func=cmd_mesh_quad)

    args = p.parse_args(argv)
    if getattr(args, "downsample", 0) < 0:
        p.error("--downsample must be >= 0")
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
