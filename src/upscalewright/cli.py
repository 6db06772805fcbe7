#!/usr/bin/env python3
"""
Upscalewright CLI - tile-based neural image and video upscaling.
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional

from tqdm import tqdm

from .cancellation import CancellationToken
from .config import ExecutionProvider, load_model_sets
from .exceptions import OperationCancelledError, UpscalewrightError
from .media import UpscaleImage, VideoFrameWriter, iter_video_frames_async, read_video_info
from .pipeline import UpscalePipeline
from .utils.logging import add_logging_arguments, configure_from_cli


class Colors:
    """ANSI color codes for terminal output."""
    OKBLUE = '\033[94m'
    OKGREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def print_colored(message: str, color: str = Colors.OKBLUE):
    """Print colored message to console."""
    print(f"{color}{message}{Colors.ENDC}")


def build_pipeline(args: argparse.Namespace) -> UpscalePipeline:
    """Create the pipeline from --config/--model-name or from --model."""
    if args.config:
        model_sets = {m.name: m for m in load_model_sets(args.config)}
        name = args.model_name or next(iter(model_sets), None)
        if name not in model_sets:
            raise UpscalewrightError(
                f"Model set '{name}' not found in {args.config}",
                details={"available": sorted(model_sets)},
            )
        return UpscalePipeline.create_pipeline(model_sets[name])

    if not args.model:
        raise UpscalewrightError("Either --model or --config is required")
    return UpscalePipeline.create_pipeline_from_file(
        args.model,
        scale_factor=args.scale,
        sample_size=args.sample_size,
        device_id=args.device_id,
        execution_provider=ExecutionProvider.parse(args.provider),
    )


def _install_cancel_handler(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "Operation cancelled by user")
    except (NotImplementedError, RuntimeError):
        # Windows event loops: Ctrl+C surfaces as KeyboardInterrupt instead
        pass


async def _upscale_image(args: argparse.Namespace) -> None:
    token = CancellationToken()
    _install_cancel_handler(token)
    image = UpscaleImage.from_file(args.input)
    async with build_pipeline(args) as pipeline:
        result = await pipeline.run_image(image, token)
    result.save(args.output)
    print_colored(
        f"Upscaled {image.width}x{image.height} -> {result.width}x{result.height}: {args.output}",
        Colors.OKGREEN,
    )


async def _upscale_video(args: argparse.Namespace) -> None:
    token = CancellationToken()
    _install_cancel_handler(token)
    info = read_video_info(args.input)
    frame_rate = args.fps or info.frame_rate

    async with build_pipeline(args) as pipeline:
        with VideoFrameWriter(args.output, frame_rate, fourcc=args.fourcc) as writer, \
                tqdm(total=info.frame_count or None, desc="Upscaling frames", unit="frame") as pbar:
            async for frame in pipeline.run_stream(iter_video_frames_async(args.input), token):
                writer.write(frame)
                pbar.update(1)

    print_colored(f"Wrote {writer.frames_written} frames to {args.output}", Colors.OKGREEN)


def cmd_image(args: argparse.Namespace) -> None:
    asyncio.run(_upscale_image(args))


def cmd_video(args: argparse.Namespace) -> None:
    asyncio.run(_upscale_video(args))


def cmd_models(args: argparse.Namespace) -> None:
    for model_set in load_model_sets(args.config):
        model = model_set.apply_defaults()
        status = "enabled" if model_set.is_enabled else "disabled"
        print_colored(model_set.name, Colors.BOLD)
        print(f"  path:     {model.onnx_model_path}")
        print(f"  scale:    x{model.scale_factor}  sample size: {model.sample_size}  channels: {model.channels}")
        print(f"  device:   {model.execution_provider.value}:{model.device_id}  ({status})")


def _add_model_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--input', '-i', type=str, required=True, help='Input file path')
    parser.add_argument('--output', '-o', type=str, required=True, help='Output file path')
    parser.add_argument('--model', '-m', type=str, help='ONNX model file')
    parser.add_argument('--scale', type=int, default=4, help='Model scale factor (default: 4)')
    parser.add_argument('--sample-size', type=int, default=512,
                        help='Largest tile side the model accepts (default: 512)')
    parser.add_argument('--device-id', type=int, default=0, help='Device index (default: 0)')
    parser.add_argument('--provider', type=str, default='cpu',
                        choices=[p.value for p in ExecutionProvider],
                        help='Execution provider (default: cpu)')
    parser.add_argument('--config', type=str, help='YAML model set file (instead of --model)')
    parser.add_argument('--model-name', type=str, help='Model set to use from --config')


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='upscalewright',
        description='Upscalewright - tile-based neural upscaling',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upscale an image 4x on the CPU
  upscalewright image -i photo.png -o photo_x4.png -m realesrgan_x4.onnx --scale 4

  # Upscale a video with a model set from a config file
  upscalewright video -i clip.mp4 -o clip_x2.mp4 --config models.yaml --model-name x2

  # List configured model sets
  upscalewright models --config models.yaml
        """
    )
    add_logging_arguments(parser)
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    image_parser = subparsers.add_parser('image', help='Upscale one image')
    _add_model_arguments(image_parser)
    image_parser.set_defaults(func=cmd_image)

    video_parser = subparsers.add_parser('video', help='Upscale a video frame by frame')
    _add_model_arguments(video_parser)
    video_parser.add_argument('--fps', type=float, default=None,
                              help='Output frame rate (default: same as input)')
    video_parser.add_argument('--fourcc', type=str, default='mp4v', help='Output codec (default: mp4v)')
    video_parser.set_defaults(func=cmd_video)

    models_parser = subparsers.add_parser('models', help='List model sets in a config file')
    models_parser.add_argument('--config', type=str, required=True, help='YAML model set file')
    models_parser.set_defaults(func=cmd_models)

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_from_cli(
        log_level=args.log_level,
        log_format=args.log_format,
        log_file=args.log_file,
    )

    if not args.command:
        parser.print_help()
        return 0

    try:
        args.func(args)
    except (KeyboardInterrupt, OperationCancelledError):
        print_colored("\n\nOperation cancelled by user", Colors.WARNING)
        return 130
    except UpscalewrightError as e:
        print_colored(f"\nError: {e}", Colors.FAIL)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
