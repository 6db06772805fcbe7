"""Image and video containers exchanged with the upscale pipeline.

Images are held as ``H x W x C`` uint8 arrays in RGB(A) channel order.
Model tensors are float32 ``[1, C, H, W]`` arrays in one of the
:class:`NormalizeType` value ranges.
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from .exceptions import MediaError, ValidationError

logger = logging.getLogger(__name__)

Region = Tuple[int, int, int, int]  # x, y, width, height


class NormalizeType(Enum):
    """Value range of a model tensor."""
    ZERO_TO_ONE = "zero_to_one"
    ONE_TO_ONE = "one_to_one"

    def normalize(self, pixels: np.ndarray) -> np.ndarray:
        pixels = pixels.astype(np.float32)
        if self is NormalizeType.ZERO_TO_ONE:
            return pixels / 255.0
        return pixels / 127.5 - 1.0

    def denormalize(self, values: np.ndarray) -> np.ndarray:
        if self is NormalizeType.ZERO_TO_ONE:
            pixels = values * 255.0
        else:
            pixels = (values + 1.0) * 127.5
        return np.clip(np.rint(pixels), 0, 255).astype(np.uint8)


def _convert_channels(pixels: np.ndarray, channels: int) -> np.ndarray:
    """Convert an HxWxC array to the requested channel count."""
    current = pixels.shape[2]
    if current == channels:
        return pixels
    if channels == 1:
        code = cv2.COLOR_RGBA2GRAY if current == 4 else cv2.COLOR_RGB2GRAY
        return cv2.cvtColor(pixels, code)[:, :, np.newaxis]
    if channels == 3:
        if current == 1:
            return np.repeat(pixels, 3, axis=2)
        return pixels[:, :, :3]
    if channels == 4:
        rgb = pixels if current == 3 else np.repeat(pixels, 3, axis=2)
        alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
        return np.concatenate([rgb, alpha], axis=2)
    raise ValidationError(
        f"Unsupported channel count {channels}",
        validation_type="channels",
        expected=[1, 3, 4],
        actual=channels,
    )


class UpscaleImage:
    """An in-memory picture.

    The wrapped array is treated as read-only; every conversion returns
    new data.
    """

    def __init__(self, pixels: np.ndarray) -> None:
        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        if pixels.ndim != 3 or pixels.shape[2] not in (1, 3, 4):
            raise ValidationError(
                "Image array must be HxW, HxWx1, HxWx3 or HxWx4",
                validation_type="shape",
                actual=pixels.shape,
            )
        if pixels.shape[0] < 1 or pixels.shape[1] < 1:
            raise ValidationError(
                "Image must be at least 1x1",
                validation_type="shape",
                actual=pixels.shape,
            )
        if pixels.dtype != np.uint8:
            raise ValidationError(
                "Image array must be uint8",
                validation_type="dtype",
                expected="uint8",
                actual=str(pixels.dtype),
            )
        self._pixels = pixels

    def __repr__(self) -> str:
        return f"UpscaleImage({self.width}x{self.height}x{self.channels})"

    @property
    def width(self) -> int:
        return self._pixels.shape[1]

    @property
    def height(self) -> int:
        return self._pixels.shape[0]

    @property
    def channels(self) -> int:
        return self._pixels.shape[2]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def to_array(self) -> np.ndarray:
        """Return a copy of the pixel data (HxWxC, RGB(A), uint8)."""
        return self._pixels.copy()

    def get_image_tensor(
        self,
        normalize: NormalizeType = NormalizeType.ZERO_TO_ONE,
        channels: Optional[int] = None,
        region: Optional[Region] = None,
    ) -> np.ndarray:
        """Convert the image, or a rectangular region of it, to a model tensor.

        Args:
            normalize: Value range of the returned tensor
            channels: Channel count expected by the model (default: image's own)
            region: Optional (x, y, width, height) sub-rectangle

        Returns:
            float32 array shaped [1, channels, height, width]
        """
        pixels = self._pixels
        if region is not None:
            x, y, w, h = region
            if x < 0 or y < 0 or w < 1 or h < 1 or x + w > self.width or y + h > self.height:
                raise ValidationError(
                    "Region lies outside the image",
                    validation_type="region",
                    expected=(self.width, self.height),
                    actual=region,
                )
            pixels = pixels[y:y + h, x:x + w]

        pixels = _convert_channels(pixels, channels or self.channels)
        tensor = normalize.normalize(pixels).transpose(2, 0, 1)[np.newaxis, ...]
        return np.ascontiguousarray(tensor)

    @classmethod
    def from_tensor(
        cls,
        tensor: np.ndarray,
        normalize: NormalizeType = NormalizeType.ZERO_TO_ONE,
    ) -> "UpscaleImage":
        """Build an image from a [1, C, H, W] or [C, H, W] tensor."""
        if tensor.ndim == 4:
            if tensor.shape[0] != 1:
                raise ValidationError(
                    "Only single-image tensors can be converted",
                    validation_type="batch",
                    expected=1,
                    actual=tensor.shape[0],
                )
            tensor = tensor[0]
        if tensor.ndim != 3:
            raise ValidationError(
                "Tensor must be [1, C, H, W] or [C, H, W]",
                validation_type="shape",
                actual=tensor.shape,
            )
        pixels = normalize.denormalize(np.asarray(tensor, dtype=np.float32))
        return cls(np.ascontiguousarray(pixels.transpose(1, 2, 0)))

    @classmethod
    def from_bgr(cls, frame: np.ndarray) -> "UpscaleImage":
        """Wrap an OpenCV BGR(A) or grayscale frame."""
        if frame.ndim == 3 and frame.shape[2] == 3:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        elif frame.ndim == 3 and frame.shape[2] == 4:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
        return cls(frame)

    def to_bgr(self) -> np.ndarray:
        """Return the pixels in OpenCV channel order."""
        if self.channels == 3:
            return cv2.cvtColor(self._pixels, cv2.COLOR_RGB2BGR)
        if self.channels == 4:
            return cv2.cvtColor(self._pixels, cv2.COLOR_RGBA2BGRA)
        return self._pixels[:, :, 0].copy()

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "UpscaleImage":
        """Decode an image file."""
        frame = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if frame is None:
            raise MediaError("Failed to read image", path=str(path), operation="read")
        if frame.dtype != np.uint8:
            # 16-bit PNG/TIFF
            frame = (frame / 257).astype(np.uint8)
        return cls.from_bgr(frame)

    def save(self, path: Union[str, Path]) -> Path:
        """Encode the image to a file; the format follows the extension."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(path), self.to_bgr()):
            raise MediaError("Failed to write image", path=str(path), operation="write")
        return path


@dataclass(frozen=True)
class VideoInfo:
    """Immutable video metadata."""
    width: int
    height: int
    frame_rate: float
    frame_count: int

    def with_size(self, width: int, height: int) -> "VideoInfo":
        return replace(self, width=width, height=height)


class UpscaleVideo:
    """Video metadata plus its ordered frames."""

    def __init__(self, info: VideoInfo, frames: Sequence[UpscaleImage]) -> None:
        self.info = info
        self.frames: List[UpscaleImage] = list(frames)

    def __repr__(self) -> str:
        return (
            f"UpscaleVideo({self.info.width}x{self.info.height}, "
            f"{len(self.frames)} frames @ {self.info.frame_rate:g} fps)"
        )

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[UpscaleImage]:
        return iter(self.frames)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "UpscaleVideo":
        """Decode every frame of a video file into memory."""
        info = read_video_info(path)
        frames = list(iter_video_frames(path))
        return cls(replace(info, frame_count=len(frames)), frames)

    def save(self, path: Union[str, Path], fourcc: str = "mp4v") -> Path:
        """Encode the frames to a video file."""
        return write_video_frames(path, self.frames, self.info.frame_rate, fourcc=fourcc)


def _open_capture(path: Union[str, Path]) -> "cv2.VideoCapture":
    cap = cv2.VideoCapture(str(path))
    if not cap.isOpened():
        raise MediaError("Failed to open video", path=str(path), operation="open")
    return cap


def read_video_info(path: Union[str, Path]) -> VideoInfo:
    """Read width, height, frame rate and frame count from a video file."""
    cap = _open_capture(path)
    try:
        return VideoInfo(
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            frame_rate=float(cap.get(cv2.CAP_PROP_FPS)),
            frame_count=int(cap.get(cv2.CAP_PROP_FRAME_COUNT)),
        )
    finally:
        cap.release()


def iter_video_frames(path: Union[str, Path]) -> Iterator[UpscaleImage]:
    """Lazily decode the frames of a video file in order."""
    cap = _open_capture(path)
    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                break
            yield UpscaleImage.from_bgr(frame)
    finally:
        cap.release()


async def iter_video_frames_async(path: Union[str, Path]) -> AsyncIterator[UpscaleImage]:
    """Decode frames in the default executor so the event loop keeps running.

    Frames are read one at a time as the consumer asks for them.
    """
    loop = asyncio.get_running_loop()
    cap = await loop.run_in_executor(None, _open_capture, path)
    try:
        while True:
            ret, frame = await loop.run_in_executor(None, cap.read)
            if not ret:
                break
            yield UpscaleImage.from_bgr(frame)
    finally:
        cap.release()


class VideoFrameWriter:
    """Incremental video encoder; the first frame fixes the output size.

    Example:
        >>> with VideoFrameWriter("out.mp4", frame_rate=24.0) as writer:
        ...     for frame in frames:
        ...         writer.write(frame)
    """

    def __init__(self, path: Union[str, Path], frame_rate: float, fourcc: str = "mp4v") -> None:
        self.path = Path(path)
        self.frame_rate = frame_rate
        self.fourcc = fourcc
        self.frames_written = 0
        self._writer = None
        self._size: Optional[Tuple[int, int]] = None

    def write(self, frame: UpscaleImage) -> None:
        if self._writer is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._size = frame.size
            self._writer = cv2.VideoWriter(
                str(self.path),
                cv2.VideoWriter_fourcc(*self.fourcc),
                self.frame_rate,
                self._size,
            )
            if not self._writer.isOpened():
                raise MediaError("Failed to open video writer", path=str(self.path), operation="write")
        elif frame.size != self._size:
            raise ValidationError(
                "All frames of a video must have the same size",
                validation_type="frame_size",
                expected=self._size,
                actual=frame.size,
            )
        self._writer.write(frame.to_bgr())
        self.frames_written += 1

    def close(self) -> None:
        if self._writer is not None:
            self._writer.release()
            self._writer = None

    def __enter__(self) -> "VideoFrameWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def write_video_frames(
    path: Union[str, Path],
    frames: Iterable[UpscaleImage],
    frame_rate: float,
    fourcc: str = "mp4v",
) -> Path:
    """Encode an iterable of same-sized frames."""
    with VideoFrameWriter(path, frame_rate, fourcc=fourcc) as writer:
        for frame in frames:
            writer.write(frame)

    if writer.frames_written == 0:
        raise MediaError("No frames to write", path=str(path), operation="write")
    logger.info(f"Wrote {writer.frames_written} frames to {writer.path}")
    return writer.path
