"""Tile planning and per-tile execution."""

from .executor import apply_image_tile, create_canvas, run_tile, tile_output_shape
from .planner import TileDescriptor, TilePlan, TileRect, plan_image_tiles, plan_tiles

__all__ = [
    "TileRect",
    "TileDescriptor",
    "TilePlan",
    "plan_tiles",
    "plan_image_tiles",
    "run_tile",
    "apply_image_tile",
    "create_canvas",
    "tile_output_shape",
]
