"""Per-tile inference and canvas reassembly."""
from typing import Tuple

import numpy as np

from ..exceptions import InferenceError, ValidationError
from ..inference.upscale_model import UpscaleModel
from ..media import NormalizeType, UpscaleImage
from .planner import TileDescriptor, TileRect


def tile_output_shape(tile: TileDescriptor, channels: int) -> Tuple[int, int, int, int]:
    return 1, channels, tile.destination.height, tile.destination.width


def create_canvas(output_width: int, output_height: int, channels: int) -> np.ndarray:
    """Allocate the float32 output canvas shaped [1, C, H, W]."""
    return np.zeros((1, channels, output_height, output_width), dtype=np.float32)


async def run_tile(
    tile: TileDescriptor,
    source_image: UpscaleImage,
    model: UpscaleModel,
    normalize: NormalizeType = NormalizeType.ZERO_TO_ONE,
) -> np.ndarray:
    """Upscale one tile of ``source_image``.

    Engine failures propagate unchanged. A result whose shape differs from
    the bound output buffer raises InferenceError, so a tile is either
    returned whole or not at all.
    """
    input_tensor = source_image.get_image_tensor(
        normalize,
        channels=model.channels,
        region=tile.source.as_tuple(),
    )
    output_shape = tile_output_shape(tile, model.channels)
    result = await model.run_inference(input_tensor, output_shape)

    result = np.asarray(result)
    if result.shape != output_shape:
        raise InferenceError(
            "Model output does not match the tile's destination size",
            expected_shape=output_shape,
            actual_shape=result.shape,
            model_name=model.name,
        )
    return result


def apply_image_tile(canvas: np.ndarray, tile_tensor: np.ndarray, destination: TileRect) -> None:
    """Copy a [1, C, h, w] tile into ``canvas`` at ``destination`` in place."""
    expected = (canvas.shape[0], canvas.shape[1], destination.height, destination.width)
    if tile_tensor.shape != expected:
        raise ValidationError(
            "Tile tensor does not fit its destination",
            validation_type="tile_shape",
            expected=expected,
            actual=tile_tensor.shape,
        )
    if (
        destination.x < 0
        or destination.y < 0
        or destination.right > canvas.shape[3]
        or destination.bottom > canvas.shape[2]
    ):
        raise ValidationError(
            "Tile destination lies outside the canvas",
            validation_type="tile_destination",
            expected=(canvas.shape[3], canvas.shape[2]),
            actual=destination.as_tuple(),
        )
    canvas[:, :, destination.y:destination.bottom, destination.x:destination.right] = tile_tensor
