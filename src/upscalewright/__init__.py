"""Upscalewright - tile-based neural image and video upscaling on ONNX Runtime."""
__version__ = "0.1.0"

from .config import (
    ExecutionProvider,
    UpscaleModelConfig,
    UpscaleModelSet,
    load_model_sets,
    save_model_sets,
)
from .cancellation import CancellationToken
from .media import (
    NormalizeType,
    UpscaleImage,
    UpscaleVideo,
    VideoFrameWriter,
    VideoInfo,
)
from .pipeline import PipelineState, UpscalePipeline
from .service import UpscaleService

from .exceptions import (
    UpscalewrightError,
    ConfigurationError,
    ModelError,
    InferenceError,
    PipelineStateError,
    OperationCancelledError,
    ValidationError,
    MediaError,
)

from .utils.logging import (
    LogConfig,
    UpscalewrightLogger,
    configure_logging,
    get_logger,
)

__all__ = [
    "__version__",
    # Configuration
    "ExecutionProvider",
    "UpscaleModelConfig",
    "UpscaleModelSet",
    "load_model_sets",
    "save_model_sets",
    # Pipeline
    "CancellationToken",
    "NormalizeType",
    "UpscaleImage",
    "UpscaleVideo",
    "VideoFrameWriter",
    "VideoInfo",
    "PipelineState",
    "UpscalePipeline",
    "UpscaleService",
    # Exceptions
    "UpscalewrightError",
    "ConfigurationError",
    "ModelError",
    "InferenceError",
    "PipelineStateError",
    "OperationCancelledError",
    "ValidationError",
    "MediaError",
    # Logging
    "LogConfig",
    "UpscalewrightLogger",
    "configure_logging",
    "get_logger",
]
