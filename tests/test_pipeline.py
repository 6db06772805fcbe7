"""Tests for the upscale pipeline run modes and lifecycle."""
import asyncio
from pathlib import Path

import numpy as np
import pytest

from upscalewright.cancellation import CancellationToken
from upscalewright.config import ExecutionProvider
from upscalewright.exceptions import (
    OperationCancelledError,
    PipelineStateError,
    ValidationError,
)
from upscalewright.inference.onnx_engine import OnnxInferenceEngine
from upscalewright.media import UpscaleImage, UpscaleVideo, VideoInfo
from upscalewright.pipeline import PipelineState, UpscalePipeline

from tests.helpers import FakeEngine, make_image, make_pipeline, nearest_upscale


async def _collect(aiter):
    return [frame async for frame in aiter]


class TestLifecycle:
    """Tests for load/unload state transitions."""

    def test_new_pipeline_is_unloaded(self, pipeline):
        assert pipeline.state is PipelineState.UNLOADED
        assert not pipeline.is_loaded

    def test_load_then_unload(self, pipeline, fake_engine):
        async def scenario():
            await pipeline.load()
            assert pipeline.state is PipelineState.LOADED
            await pipeline.unload()

        asyncio.run(scenario())
        assert pipeline.state is PipelineState.UNLOADED
        assert fake_engine.load_calls == 1
        assert fake_engine.unload_calls == 1

    def test_second_load_is_noop(self, pipeline, fake_engine):
        async def scenario():
            await pipeline.load()
            await pipeline.load()

        asyncio.run(scenario())
        assert pipeline.is_loaded
        assert fake_engine.load_calls == 1

    def test_unload_when_unloaded_is_noop(self, pipeline, fake_engine):
        asyncio.run(pipeline.unload())
        assert fake_engine.unload_calls == 0

    def test_async_context_manager(self, pipeline, fake_engine):
        async def scenario():
            async with pipeline as p:
                assert p.is_loaded

        asyncio.run(scenario())
        assert not pipeline.is_loaded
        assert fake_engine.unload_calls == 1

    def test_failed_unload_keeps_pipeline_loaded(self):
        class StickyEngine(FakeEngine):
            async def unload(self):
                await super().unload()
                if self.unload_calls == 1:
                    self.loaded = True
                    raise RuntimeError("device busy")

        engine = StickyEngine()
        pipeline = make_pipeline(engine)

        async def scenario():
            await pipeline.load()
            with pytest.raises(RuntimeError, match="device busy"):
                await pipeline.unload()
            assert pipeline.state is PipelineState.LOADED
            await pipeline.unload()

        asyncio.run(scenario())
        assert pipeline.state is PipelineState.UNLOADED
        assert engine.unload_calls == 2
        assert not engine.loaded

    def test_run_image_requires_loaded(self, pipeline, sample_image):
        with pytest.raises(PipelineStateError) as exc_info:
            asyncio.run(pipeline.run_image(sample_image))
        assert exc_info.value.details["state"] == "unloaded"

    def test_run_video_requires_loaded(self, pipeline, sample_video):
        with pytest.raises(PipelineStateError):
            asyncio.run(pipeline.run_video(sample_video))

    def test_run_stream_requires_loaded(self, pipeline, sample_image):
        with pytest.raises(PipelineStateError):
            asyncio.run(_collect(pipeline.run_stream([sample_image])))


class TestRunImage:
    """Tests for single-image upscaling."""

    def test_output_matches_nearest_upscale(self, pipeline, fake_engine, sample_image):
        async def scenario():
            async with pipeline:
                return await pipeline.run_image(sample_image)

        result = asyncio.run(scenario())

        assert isinstance(result, UpscaleImage)
        assert result.size == (20, 12)
        np.testing.assert_array_equal(result.to_array(), nearest_upscale(sample_image, 2))
        assert fake_engine.inference_calls == 6

    def test_tiles_run_in_row_major_order(self, pipeline, fake_engine, sample_image):
        async def scenario():
            async with pipeline:
                await pipeline.run_image(sample_image)

        asyncio.run(scenario())
        assert fake_engine.input_shapes == [
            (1, 3, 4, 4), (1, 3, 4, 4), (1, 3, 4, 2),
            (1, 3, 2, 4), (1, 3, 2, 4), (1, 3, 2, 2),
        ]

    def test_input_image_is_not_modified(self, pipeline, sample_image):
        before = sample_image.to_array()

        async def scenario():
            async with pipeline:
                await pipeline.run_image(sample_image)

        asyncio.run(scenario())
        np.testing.assert_array_equal(sample_image.to_array(), before)

    def test_grayscale_model(self):
        engine = FakeEngine(scale_factor=2)
        pipeline = make_pipeline(engine, sample_size=3, channels=1)
        image = make_image(5, 4, channels=1)

        async def scenario():
            async with pipeline:
                return await pipeline.run_image(image)

        result = asyncio.run(scenario())
        assert result.channels == 1
        np.testing.assert_array_equal(result.to_array(), nearest_upscale(image, 2))

    def test_engine_failure_propagates(self, sample_image):
        class DeviceError(Exception):
            pass

        def fail_on_third(call):
            if call == 3:
                raise DeviceError("out of memory")

        engine = FakeEngine(on_inference=fail_on_third)
        pipeline = make_pipeline(engine)

        async def scenario():
            async with pipeline:
                return await pipeline.run_image(sample_image)

        with pytest.raises(DeviceError):
            asyncio.run(scenario())
        assert engine.inference_calls == 3


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancelled_before_start_runs_no_inference(self, pipeline, fake_engine, sample_image):
        token = CancellationToken()
        token.cancel()

        async def scenario():
            async with pipeline:
                return await pipeline.run_image(sample_image, token)

        with pytest.raises(OperationCancelledError):
            asyncio.run(scenario())
        assert fake_engine.inference_calls == 0

    @pytest.mark.parametrize("k", [1, 2, 5])
    def test_cancelled_after_k_tiles(self, sample_image, k):
        """Cancelling during tile k allows at most k + 1 inference calls."""
        token = CancellationToken()

        def cancel_at_k(call):
            if call == k:
                token.cancel("stop")

        engine = FakeEngine(on_inference=cancel_at_k)
        pipeline = make_pipeline(engine)

        async def scenario():
            async with pipeline:
                return await pipeline.run_image(sample_image, token)

        with pytest.raises(OperationCancelledError) as exc_info:
            asyncio.run(scenario())
        assert engine.inference_calls <= k + 1
        assert engine.inference_calls < 6
        assert exc_info.value.message == "stop"

    def test_cancel_video_between_frames(self, sample_video):
        token = CancellationToken()
        tiles_per_frame = 4

        def cancel_in_second_frame(call):
            if call == tiles_per_frame + 1:
                token.cancel()

        engine = FakeEngine(on_inference=cancel_in_second_frame)
        pipeline = make_pipeline(engine)

        async def scenario():
            async with pipeline:
                return await pipeline.run_video(sample_video, token)

        with pytest.raises(OperationCancelledError):
            asyncio.run(scenario())
        assert engine.inference_calls == tiles_per_frame + 1

    def test_cancel_stream_stops_production(self, pipeline, fake_engine):
        token = CancellationToken()
        frames = [make_image(4, 4, seed=i) for i in range(5)]
        produced = []

        async def scenario():
            async with pipeline:
                async for frame in pipeline.run_stream(frames, token):
                    produced.append(frame)
                    if len(produced) == 2:
                        token.cancel()

        with pytest.raises(OperationCancelledError):
            asyncio.run(scenario())
        assert len(produced) == 2
        assert fake_engine.inference_calls == 2

    def test_cancel_stream_closes_async_source(self, pipeline):
        token = CancellationToken()
        closed = []

        async def source():
            try:
                for i in range(5):
                    yield make_image(4, 4, seed=i)
            finally:
                closed.append(True)

        async def scenario():
            async with pipeline:
                with pytest.raises(OperationCancelledError):
                    async for _ in pipeline.run_stream(source(), token):
                        token.cancel()
                assert closed == [True]

        asyncio.run(scenario())


class TestRunVideo:
    """Tests for buffered video upscaling."""

    def test_three_frame_video(self, fake_engine):
        """Three 4x4 frames at scale 2 give an 8x8, three-frame video in order."""
        frames = [make_image(4, 4, seed=i) for i in range(3)]
        video = UpscaleVideo(VideoInfo(4, 4, 30.0, 3), frames)
        pipeline = make_pipeline(fake_engine)

        async def scenario():
            async with pipeline:
                return await pipeline.run_video(video)

        result = asyncio.run(scenario())

        assert result.info.width == 8
        assert result.info.height == 8
        assert result.info.frame_rate == 30.0
        assert result.info.frame_count == 3
        assert len(result) == 3
        for source, upscaled in zip(frames, result):
            np.testing.assert_array_equal(upscaled.to_array(), nearest_upscale(source, 2))

    def test_input_info_unchanged(self, pipeline, sample_video):
        async def scenario():
            async with pipeline:
                return await pipeline.run_video(sample_video)

        asyncio.run(scenario())
        assert sample_video.info == VideoInfo(6, 5, 24.0, 3)

    def test_empty_video_raises(self, pipeline):
        video = UpscaleVideo(VideoInfo(4, 4, 24.0, 0), [])

        async def scenario():
            async with pipeline:
                return await pipeline.run_video(video)

        with pytest.raises(ValidationError):
            asyncio.run(scenario())

    def test_frame_failure_fails_whole_video(self, sample_video):
        def fail_in_last_frame(call):
            if call == 9:
                raise RuntimeError("inference failed")

        engine = FakeEngine(on_inference=fail_in_last_frame)
        pipeline = make_pipeline(engine)

        async def scenario():
            async with pipeline:
                return await pipeline.run_video(sample_video)

        with pytest.raises(RuntimeError, match="inference failed"):
            asyncio.run(scenario())


class TestRunStream:
    """Tests for lazy stream upscaling."""

    def test_preserves_order(self, pipeline):
        frames = [make_image(5, 3, seed=i) for i in range(4)]

        async def scenario():
            async with pipeline:
                return await _collect(pipeline.run_stream(frames))

        results = asyncio.run(scenario())
        assert len(results) == 4
        for source, upscaled in zip(frames, results):
            np.testing.assert_array_equal(upscaled.to_array(), nearest_upscale(source, 2))

    def test_pulls_one_frame_at_a_time(self, pipeline):
        pulled = []

        def source():
            for i in range(3):
                pulled.append(i)
                yield make_image(4, 4, seed=i)

        async def scenario():
            async with pipeline:
                stream = pipeline.run_stream(source())
                assert pulled == []
                await stream.__anext__()
                assert pulled == [0]
                await stream.__anext__()
                assert pulled == [0, 1]
                await stream.aclose()

        asyncio.run(scenario())

    def test_accepts_async_iterable(self, pipeline):
        async def source():
            for i in range(2):
                await asyncio.sleep(0)
                yield make_image(4, 4, seed=i)

        async def scenario():
            async with pipeline:
                return await _collect(pipeline.run_stream(source()))

        assert [f.size for f in asyncio.run(scenario())] == [(8, 8), (8, 8)]

    def test_engine_failure_closes_sync_source(self):
        closed = []

        def source():
            try:
                for i in range(3):
                    yield make_image(4, 4, seed=i)
            finally:
                closed.append(True)

        def fail_on_second(call):
            if call == 2:
                raise RuntimeError("inference failed")

        pipeline = make_pipeline(FakeEngine(on_inference=fail_on_second))

        async def scenario():
            async with pipeline:
                with pytest.raises(RuntimeError, match="inference failed"):
                    await _collect(pipeline.run_stream(source()))
                assert closed == [True]

        asyncio.run(scenario())

    def test_empty_stream(self, pipeline):
        async def scenario():
            async with pipeline:
                return await _collect(pipeline.run_stream([]))

        assert asyncio.run(scenario()) == []


class TestRunDispatch:
    """Tests for run() dispatch on source type."""

    def test_dispatch(self, pipeline, sample_image, sample_video):
        async def scenario():
            async with pipeline:
                image = await pipeline.run(sample_image)
                video = await pipeline.run(sample_video)
                stream = await _collect(pipeline.run([sample_image]))
                return image, video, stream

        image, video, stream = asyncio.run(scenario())
        assert isinstance(image, UpscaleImage)
        assert isinstance(video, UpscaleVideo)
        assert len(stream) == 1


class TestFactories:
    """Tests for pipeline construction helpers."""

    def test_create_pipeline_from_model_set(self, model_set, fake_engine):
        pipeline = UpscalePipeline.create_pipeline(model_set, engine=fake_engine)

        assert pipeline.name == "RealESRGAN-x2"
        assert pipeline.model.scale_factor == 2
        assert pipeline.model.config.device_id == 1
        assert pipeline.model.config.execution_provider is ExecutionProvider.CUDA
        assert fake_engine.load_calls == 0

    def test_create_pipeline_from_file_defaults(self):
        pipeline = UpscalePipeline.create_pipeline_from_file("models/4x_UltraSharp.onnx", scale_factor=4)

        config = pipeline.model.config
        assert pipeline.name == "4x_UltraSharp"
        assert config.onnx_model_path == Path("models/4x_UltraSharp.onnx")
        assert config.sample_size == 512
        assert config.channels == 3
        assert config.device_id == 0
        assert config.execution_provider is ExecutionProvider.DIRECTML
        assert not pipeline.is_loaded

    def test_default_engine_is_onnx(self):
        pipeline = UpscalePipeline.create_pipeline_from_file(
            "x2.onnx", scale_factor=2, execution_provider=ExecutionProvider.CPU
        )
        engine = pipeline.model.engine
        assert isinstance(engine, OnnxInferenceEngine)
        assert engine.execution_provider is ExecutionProvider.CPU
