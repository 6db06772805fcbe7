"""Tile-based upscale pipeline.

The pipeline owns one :class:`UpscaleModel` and runs it over a single
image, a buffered video, or a lazily consumed frame stream. Images larger
than the model's sample size are split into tiles, each tile is upscaled
by one inference call, and the results are copied into one output canvas.

Example:
    >>> pipeline = UpscalePipeline.create_pipeline_from_file("x4.onnx", scale_factor=4)
    >>> async with pipeline:
    ...     result = await pipeline.run_image(UpscaleImage.from_file("in.png"))
    >>> result.save("out.png")
"""
from enum import Enum
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Iterable, Optional, Union

from .cancellation import CancellationToken
from .config import ExecutionProvider, UpscaleModelConfig, UpscaleModelSet
from .exceptions import PipelineStateError, ValidationError
from .inference.base import InferenceEngine
from .inference.upscale_model import UpscaleModel
from .media import NormalizeType, UpscaleImage, UpscaleVideo
from .tiling.executor import apply_image_tile, create_canvas, run_tile
from .tiling.planner import plan_image_tiles
from .utils.logging import UpscalewrightLogger, get_logger

FrameSource = Union[AsyncIterable[UpscaleImage], Iterable[UpscaleImage]]


class PipelineState(Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"


async def _iterate_frames(frames: FrameSource) -> AsyncIterator[UpscaleImage]:
    """Yield from a sync or async frame source, closing it when done."""
    if hasattr(frames, "__aiter__"):
        iterator = frames.__aiter__()
        try:
            async for frame in iterator:
                yield frame
        finally:
            if hasattr(iterator, "aclose"):
                await iterator.aclose()
    else:
        iterator = iter(frames)
        try:
            for frame in iterator:
                yield frame
        finally:
            if hasattr(iterator, "close"):
                iterator.close()


class UpscalePipeline:
    """Runs an upscale model over images, videos and frame streams.

    Lifecycle: ``UNLOADED -> load() -> LOADED -> unload() -> UNLOADED``.
    Every ``run_*`` call requires the LOADED state and raises
    PipelineStateError otherwise. Calls on one instance must not overlap;
    tiles and frames are processed strictly one after another.
    """

    def __init__(
        self,
        name: str,
        upscale_model: UpscaleModel,
        logger: Optional[UpscalewrightLogger] = None,
    ) -> None:
        self._name = name
        self._model = upscale_model
        self._logger = logger or get_logger("pipeline")
        self._state = PipelineState.UNLOADED

    def __repr__(self) -> str:
        return f"UpscalePipeline({self._name!r}, {self._state.value})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def model(self) -> UpscaleModel:
        return self._model

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state is PipelineState.LOADED

    async def load(self) -> None:
        """Load the model. Calling again while loaded does nothing."""
        if self._state is PipelineState.LOADED:
            self._logger.debug("Model already loaded", pipeline=self._name)
            return
        await self._model.load()
        self._state = PipelineState.LOADED
        self._logger.info("Model loaded", pipeline=self._name, model=self._model.name)

    async def unload(self) -> None:
        """Release the model. Does nothing when not loaded."""
        if self._state is PipelineState.UNLOADED:
            return
        await self._model.unload()
        self._state = PipelineState.UNLOADED
        self._logger.info("Model unloaded", pipeline=self._name)

    async def __aenter__(self) -> "UpscalePipeline":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.unload()

    def _require_loaded(self, operation: str) -> None:
        if self._state is not PipelineState.LOADED:
            raise PipelineStateError(
                f"Cannot {operation}: model is not loaded",
                pipeline_name=self._name,
                state=self._state.value,
            )

    async def run_image(
        self,
        image: UpscaleImage,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> UpscaleImage:
        """Upscale a single image."""
        self._require_loaded("upscale image")
        token = cancellation_token or CancellationToken()
        started = self._logger.processing_start("upscale image", width=image.width, height=image.height)
        result = await self._run_internal(image, token)
        self._logger.processing_complete(
            "upscale image", started, width=result.width, height=result.height
        )
        return result

    async def run_video(
        self,
        video: UpscaleVideo,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> UpscaleVideo:
        """Upscale every frame of a buffered video, in order.

        The output metadata copies the input's and takes its size from the
        first upscaled frame. Any failure aborts the whole video.
        """
        self._require_loaded("upscale video")
        if not video.frames:
            raise ValidationError("Video has no frames", validation_type="frame_count", actual=0)

        token = cancellation_token or CancellationToken()
        total = len(video.frames)
        started = self._logger.processing_start("upscale video", frames=total)

        upscaled_frames = []
        for index, frame in enumerate(video.frames, 1):
            token.raise_if_cancelled("upscale video")
            upscaled_frames.append(await self._run_internal(frame, token))
            self._logger.frame_processed(index, total)

        first_frame = upscaled_frames[0]
        info = video.info.with_size(first_frame.width, first_frame.height)
        self._logger.processing_complete(
            "upscale video", started, width=info.width, height=info.height
        )
        return UpscaleVideo(info, upscaled_frames)

    async def run_stream(
        self,
        frames: FrameSource,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[UpscaleImage]:
        """Lazily upscale a frame stream.

        Each input frame is pulled only when the consumer asks for the next
        output frame. The returned iterator makes a single pass.
        """
        self._require_loaded("upscale video stream")
        token = cancellation_token or CancellationToken()
        started = self._logger.processing_start("upscale video stream")

        count = 0
        source = _iterate_frames(frames)
        try:
            async for frame in source:
                token.raise_if_cancelled("upscale video stream")
                upscaled = await self._run_internal(frame, token)
                count += 1
                self._logger.frame_processed(count)
                yield upscaled
        finally:
            await source.aclose()

        self._logger.processing_complete("upscale video stream", started, frames=count)

    def run(
        self,
        source: Union[UpscaleImage, UpscaleVideo, FrameSource],
        cancellation_token: Optional[CancellationToken] = None,
    ):
        """Dispatch on the source type.

        Returns an awaitable for images and videos, and an async iterator
        for any other iterable of frames.
        """
        if isinstance(source, UpscaleImage):
            return self.run_image(source, cancellation_token)
        if isinstance(source, UpscaleVideo):
            return self.run_video(source, cancellation_token)
        return self.run_stream(source, cancellation_token)

    async def _run_internal(self, image: UpscaleImage, token: CancellationToken) -> UpscaleImage:
        plan = plan_image_tiles(image, self._model.sample_size, self._model.scale_factor)
        canvas = create_canvas(plan.output_width, plan.output_height, self._model.channels)

        total = len(plan)
        for index, tile in enumerate(plan, 1):
            token.raise_if_cancelled("upscale image")
            tile_tensor = await run_tile(tile, image, self._model)
            apply_image_tile(canvas, tile_tensor, tile.destination)
            self._logger.tile_processed(index, total)

        return UpscaleImage.from_tensor(canvas, NormalizeType.ZERO_TO_ONE)

    @classmethod
    def create_pipeline(
        cls,
        model_set: UpscaleModelSet,
        engine: Optional[InferenceEngine] = None,
        logger: Optional[UpscalewrightLogger] = None,
    ) -> "UpscalePipeline":
        """Build a pipeline from a model set. Nothing is loaded."""
        upscale_model = UpscaleModel(model_set.apply_defaults(), engine=engine)
        return cls(model_set.name, upscale_model, logger=logger)

    @classmethod
    def create_pipeline_from_file(
        cls,
        model_file: Union[str, Path],
        scale_factor: int,
        sample_size: int = 512,
        device_id: int = 0,
        execution_provider: ExecutionProvider = ExecutionProvider.DIRECTML,
        engine: Optional[InferenceEngine] = None,
        logger: Optional[UpscalewrightLogger] = None,
    ) -> "UpscalePipeline":
        """Build a pipeline for a bare model file named after its stem."""
        model_file = Path(model_file)
        model_set = UpscaleModelSet(
            name=model_file.stem,
            is_enabled=True,
            device_id=device_id,
            execution_provider=execution_provider,
            upscale_model_config=UpscaleModelConfig(
                onnx_model_path=model_file,
                channels=3,
                sample_size=sample_size,
                scale_factor=scale_factor,
            ),
        )
        return cls.create_pipeline(model_set, engine=engine, logger=logger)
