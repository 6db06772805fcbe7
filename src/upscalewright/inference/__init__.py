"""Model runtimes for Upscalewright."""

from .base import InferenceEngine, ModelMetadata, TensorInfo
from .onnx_engine import OnnxInferenceEngine
from .upscale_model import UpscaleModel

__all__ = [
    "InferenceEngine",
    "ModelMetadata",
    "TensorInfo",
    "OnnxInferenceEngine",
    "UpscaleModel",
]
