"""Test doubles and builders shared across the test suite."""
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from upscalewright.config import ExecutionProvider, UpscaleModelConfig
from upscalewright.inference.base import InferenceEngine, ModelMetadata, TensorInfo
from upscalewright.inference.upscale_model import UpscaleModel
from upscalewright.media import UpscaleImage
from upscalewright.pipeline import UpscalePipeline


class FakeEngine(InferenceEngine):
    """In-memory engine that upscales by nearest-neighbour pixel repetition.

    Records every call so tests can check load/unload counts, tile order and
    tensor shapes. ``on_inference`` runs before each call and may raise.
    """

    def __init__(
        self,
        scale_factor: int = 2,
        on_inference: Optional[Callable[[int], None]] = None,
        output_shape_override: Optional[Tuple[int, ...]] = None,
    ) -> None:
        self.scale_factor = scale_factor
        self.on_inference = on_inference
        self.output_shape_override = output_shape_override
        self.loaded = False
        self.load_calls = 0
        self.unload_calls = 0
        self.inference_calls = 0
        self.input_shapes: List[Tuple[int, ...]] = []
        self.output_shapes: List[Tuple[int, ...]] = []

    @property
    def is_loaded(self) -> bool:
        return self.loaded

    async def load(self) -> None:
        self.load_calls += 1
        self.loaded = True

    async def unload(self) -> None:
        self.unload_calls += 1
        self.loaded = False

    async def get_metadata(self) -> ModelMetadata:
        return ModelMetadata(
            inputs=(TensorInfo("input", (1, 3, None, None)),),
            outputs=(TensorInfo("output", (1, 3, None, None)),),
        )

    async def run_inference(self, input_tensor: np.ndarray, output_shape: Sequence[int]) -> np.ndarray:
        self.inference_calls += 1
        if self.on_inference is not None:
            self.on_inference(self.inference_calls)
        self.input_shapes.append(tuple(input_tensor.shape))
        self.output_shapes.append(tuple(output_shape))
        if self.output_shape_override is not None:
            return np.zeros(self.output_shape_override, dtype=np.float32)
        return np.repeat(np.repeat(input_tensor, self.scale_factor, axis=2), self.scale_factor, axis=3)


def make_image(width: int, height: int, channels: int = 3, seed: int = 0) -> UpscaleImage:
    """Deterministic random image."""
    rng = np.random.default_rng(seed)
    return UpscaleImage(rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8))


def nearest_upscale(image: UpscaleImage, factor: int) -> np.ndarray:
    pixels = image.to_array()
    return np.repeat(np.repeat(pixels, factor, axis=0), factor, axis=1)


def make_pipeline(
    engine: FakeEngine,
    sample_size: int = 4,
    channels: int = 3,
    name: str = "fake-x2",
) -> UpscalePipeline:
    config = UpscaleModelConfig(
        onnx_model_path=Path(f"{name}.onnx"),
        scale_factor=engine.scale_factor,
        sample_size=sample_size,
        channels=channels,
        device_id=0,
        execution_provider=ExecutionProvider.CPU,
    )
    return UpscalePipeline(name, UpscaleModel(config, engine=engine))
