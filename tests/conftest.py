"""Shared pytest fixtures for Upscalewright tests."""
import logging
from pathlib import Path

import pytest

from upscalewright.config import ExecutionProvider, UpscaleModelConfig, UpscaleModelSet
from upscalewright.media import UpscaleImage, UpscaleVideo, VideoInfo
from upscalewright.pipeline import UpscalePipeline
from upscalewright.utils.logging import ROOT_LOGGER_NAME

from tests.helpers import FakeEngine, make_image, make_pipeline


@pytest.fixture(autouse=True)
def reset_root_logger():
    """Drop handlers installed by configure_logging() during a test."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine(scale_factor=2)


@pytest.fixture
def pipeline(fake_engine) -> UpscalePipeline:
    """Unloaded pipeline over a 2x fake engine with 4-pixel tiles."""
    return make_pipeline(fake_engine)


@pytest.fixture
def sample_image() -> UpscaleImage:
    """10x6 RGB image; 4-pixel tiles give a 3x2 grid with shrunken edges."""
    return make_image(10, 6)


@pytest.fixture
def sample_video() -> UpscaleVideo:
    frames = [make_image(6, 5, seed=i) for i in range(3)]
    return UpscaleVideo(VideoInfo(width=6, height=5, frame_rate=24.0, frame_count=3), frames)


@pytest.fixture
def model_set() -> UpscaleModelSet:
    return UpscaleModelSet(
        name="RealESRGAN-x2",
        upscale_model_config=UpscaleModelConfig(
            onnx_model_path=Path("models/realesrgan_x2.onnx"),
            scale_factor=2,
            sample_size=4,
        ),
        device_id=1,
        execution_provider=ExecutionProvider.CUDA,
    )
