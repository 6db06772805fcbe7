"""Abstract inference engine interface.

The pipeline depends only on this interface. An engine owns one loaded
model and runs one tensor at a time:

    >>> await engine.load()
    >>> metadata = await engine.get_metadata()
    >>> output = await engine.run_inference(tensor, (1, 3, 256, 256))
    >>> await engine.unload()
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class TensorInfo:
    """Name, shape and element type of one model input or output.

    Dynamic dimensions are reported as None.
    """
    name: str
    shape: Tuple[Optional[int], ...]
    element_type: str = "tensor(float)"


@dataclass(frozen=True)
class ModelMetadata:
    """Description of a loaded model's inputs and outputs."""
    inputs: Tuple[TensorInfo, ...] = ()
    outputs: Tuple[TensorInfo, ...] = ()
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def input_names(self) -> List[str]:
        return [t.name for t in self.inputs]

    @property
    def output_names(self) -> List[str]:
        return [t.name for t in self.outputs]


class InferenceEngine(ABC):
    """Abstract base class for model runtimes.

    Implementations must be safe to ``unload()`` when nothing is loaded.
    Exceptions raised by ``run_inference`` are propagated to the caller
    unchanged; the pipeline never retries.
    """

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        """True while a model is resident."""

    @abstractmethod
    async def load(self) -> None:
        """Acquire the model resource."""

    @abstractmethod
    async def unload(self) -> None:
        """Release the model resource; no-op when nothing is loaded."""

    @abstractmethod
    async def get_metadata(self) -> ModelMetadata:
        """Describe the loaded model."""

    @abstractmethod
    async def run_inference(
        self,
        input_tensor: np.ndarray,
        output_shape: Sequence[int],
    ) -> np.ndarray:
        """Run the model on one input tensor.

        Args:
            input_tensor: float32 tensor shaped [1, C, H, W]
            output_shape: Shape of the output buffer to bind

        Returns:
            The single result tensor
        """
