"""An upscale network bound to its runtime."""
from typing import Optional, Sequence

import numpy as np

from ..config import ExecutionProvider, UpscaleModelConfig
from .base import InferenceEngine, ModelMetadata
from .onnx_engine import OnnxInferenceEngine


class UpscaleModel:
    """Pairs an :class:`UpscaleModelConfig` with the engine that runs it.

    When no engine is given, an :class:`OnnxInferenceEngine` is built from
    the config's model path and device settings.
    """

    def __init__(
        self,
        config: UpscaleModelConfig,
        engine: Optional[InferenceEngine] = None,
    ) -> None:
        self.config = config
        if engine is None:
            engine = OnnxInferenceEngine(
                config.onnx_model_path,
                execution_provider=config.execution_provider or ExecutionProvider.CPU,
                device_id=config.device_id or 0,
            )
        self.engine = engine

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def channels(self) -> int:
        return self.config.channels

    @property
    def sample_size(self) -> int:
        return self.config.sample_size

    @property
    def scale_factor(self) -> int:
        return self.config.scale_factor

    @property
    def is_loaded(self) -> bool:
        return self.engine.is_loaded

    async def load(self) -> None:
        await self.engine.load()

    async def unload(self) -> None:
        await self.engine.unload()

    async def get_metadata(self) -> ModelMetadata:
        return await self.engine.get_metadata()

    async def run_inference(self, input_tensor: np.ndarray, output_shape: Sequence[int]) -> np.ndarray:
        return await self.engine.run_inference(input_tensor, output_shape)
