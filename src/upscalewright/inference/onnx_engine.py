"""ONNX Runtime implementation of the inference engine.

Session creation and inference are blocking calls; both run in the event
loop's default executor so the pipeline's coroutine only suspends.
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import numpy as np

from ..config import ExecutionProvider
from ..exceptions import ModelError
from .base import InferenceEngine, ModelMetadata, TensorInfo

logger = logging.getLogger(__name__)


def _tensor_info(node: Any) -> TensorInfo:
    shape = tuple(d if isinstance(d, int) else None for d in node.shape)
    return TensorInfo(name=node.name, shape=shape, element_type=node.type)


class OnnxInferenceEngine(InferenceEngine):
    """Runs one ONNX model through an ``onnxruntime.InferenceSession``.

    Example:
        >>> engine = OnnxInferenceEngine("x4.onnx", ExecutionProvider.CUDA, device_id=0)
        >>> await engine.load()
        >>> result = await engine.run_inference(tensor, (1, 3, 512, 512))
    """

    def __init__(
        self,
        model_path: Union[str, Path],
        execution_provider: ExecutionProvider = ExecutionProvider.CPU,
        device_id: int = 0,
        graph_optimization: bool = True,
    ) -> None:
        self.model_path = Path(model_path)
        self.execution_provider = execution_provider
        self.device_id = device_id
        self.graph_optimization = graph_optimization
        self._session = None
        self._metadata: Optional[ModelMetadata] = None

    def __repr__(self) -> str:
        return (
            f"OnnxInferenceEngine({self.model_path.name}, "
            f"{self.execution_provider.value}:{self.device_id})"
        )

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    def _create_session(self):
        import onnxruntime as ort

        if not self.model_path.exists():
            raise ModelError(
                "Model file not found",
                model_name=self.model_path.stem,
                model_path=str(self.model_path),
            )

        sess_options = ort.SessionOptions()
        if self.graph_optimization:
            sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

        requested = self.execution_provider.onnx_providers(self.device_id)
        available = set(ort.get_available_providers())
        providers = [
            p for p in requested
            if (p[0] if isinstance(p, tuple) else p) in available
        ] or ["CPUExecutionProvider"]
        if len(providers) < len(requested):
            logger.warning(
                f"Execution provider {self.execution_provider.value} not fully available, "
                f"using {providers}"
            )

        try:
            return ort.InferenceSession(str(self.model_path), sess_options, providers=providers)
        except Exception as e:
            raise ModelError(
                f"Failed to create inference session: {e}",
                model_name=self.model_path.stem,
                model_path=str(self.model_path),
                cause=e,
            )

    async def load(self) -> None:
        if self._session is not None:
            return
        loop = asyncio.get_running_loop()
        session = await loop.run_in_executor(None, self._create_session)
        self._session = session
        self._metadata = ModelMetadata(
            inputs=tuple(_tensor_info(i) for i in session.get_inputs()),
            outputs=tuple(_tensor_info(o) for o in session.get_outputs()),
        )
        logger.info(f"Loaded ONNX model {self.model_path.name} on {session.get_providers()[0]}")

    async def unload(self) -> None:
        if self._session is None:
            return
        self._session = None
        self._metadata = None
        logger.info(f"Unloaded ONNX model {self.model_path.name}")

    async def get_metadata(self) -> ModelMetadata:
        if self._metadata is None:
            raise ModelError("Model is not loaded", model_name=self.model_path.stem)
        return self._metadata

    def _run(self, session, metadata: ModelMetadata, input_tensor: np.ndarray, output_shape) -> np.ndarray:
        output = np.empty(tuple(output_shape), dtype=np.float32)
        binding = session.io_binding()
        binding.bind_cpu_input(metadata.input_names[0], np.ascontiguousarray(input_tensor, dtype=np.float32))
        binding.bind_output(
            metadata.output_names[0],
            "cpu",
            0,
            np.float32,
            list(output.shape),
            output.ctypes.data,
        )
        session.run_with_iobinding(binding)
        return output

    async def run_inference(
        self,
        input_tensor: np.ndarray,
        output_shape: Sequence[int],
    ) -> np.ndarray:
        session, metadata = self._session, self._metadata
        if session is None or metadata is None:
            raise ModelError("Model is not loaded", model_name=self.model_path.stem)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._run, session, metadata, input_tensor, output_shape
        )
