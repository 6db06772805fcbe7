"""Tile partition geometry.

An image is cut into a row-major grid of tiles no larger than the model's
sample size. Boundary tiles shrink to fit, so every source pixel belongs
to exactly one tile and the scaled destinations partition the output
canvas with no gaps and no overlaps.

Example:
    >>> plan = plan_tiles(10, 6, max_tile_size=4, scale_factor=1)
    >>> [t.source.width for t in plan.tiles[:3]]
    [4, 4, 2]
"""
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from ..exceptions import ConfigurationError


@dataclass(frozen=True)
class TileRect:
    """Axis-aligned rectangle in pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height

    def scaled(self, factor: int) -> "TileRect":
        return TileRect(self.x * factor, self.y * factor, self.width * factor, self.height * factor)

    def intersection_area(self, other: "TileRect") -> int:
        w = min(self.right, other.right) - max(self.x, other.x)
        h = min(self.bottom, other.bottom) - max(self.y, other.y)
        if w <= 0 or h <= 0:
            return 0
        return w * h


@dataclass(frozen=True)
class TileDescriptor:
    """A source region of the input and its placement in the output canvas."""
    source: TileRect
    destination: TileRect


@dataclass(frozen=True)
class TilePlan:
    """Ordered tiles for one image plus the output canvas size."""
    tiles: Tuple[TileDescriptor, ...]
    output_width: int
    output_height: int
    scale_factor: int

    def __len__(self) -> int:
        return len(self.tiles)

    def __iter__(self) -> Iterator[TileDescriptor]:
        return iter(self.tiles)

    @property
    def canvas(self) -> TileRect:
        return TileRect(0, 0, self.output_width, self.output_height)


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(
            f"{name} must be a positive integer",
            config_key=name,
            config_value=value,
        )


def _spans(length: int, max_tile_size: int) -> List[Tuple[int, int]]:
    return [
        (start, min(max_tile_size, length - start))
        for start in range(0, length, max_tile_size)
    ]


def plan_tiles(width: int, height: int, max_tile_size: int, scale_factor: int) -> TilePlan:
    """Partition a ``width x height`` image into tiles.

    Args:
        width: Source image width (>= 1)
        height: Source image height (>= 1)
        max_tile_size: Largest tile side accepted by the model (>= 1)
        scale_factor: Integer upscaling factor (>= 1)

    Returns:
        TilePlan with tiles in row-major order
    """
    _require_positive("width", width)
    _require_positive("height", height)
    _require_positive("max_tile_size", max_tile_size)
    _require_positive("scale_factor", scale_factor)

    tiles = []
    for y, tile_height in _spans(height, max_tile_size):
        for x, tile_width in _spans(width, max_tile_size):
            source = TileRect(x, y, tile_width, tile_height)
            tiles.append(TileDescriptor(source=source, destination=source.scaled(scale_factor)))

    return TilePlan(
        tiles=tuple(tiles),
        output_width=width * scale_factor,
        output_height=height * scale_factor,
        scale_factor=scale_factor,
    )


def plan_image_tiles(image, max_tile_size: int, scale_factor: int) -> TilePlan:
    """Plan tiles for any object exposing ``width`` and ``height``."""
    return plan_tiles(image.width, image.height, max_tile_size, scale_factor)
