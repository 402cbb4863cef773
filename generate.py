import os
import sys
import time
import warnings
from dataclasses import dataclass
from pathlib import Path

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

if _suppress_messages:
    warnings.filterwarnings(
        "ignore",
        message=r"Protobuf gencode version .* is exactly one major version older than the runtime version .*",
        category=UserWarning,
        module="google.protobuf",
    )

VERBOSE = _cli_verbose


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import logging

import tensorflow as tf
import numpy as np

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")
    for handler in tf.get_logger().handlers:
        handler.setLevel("ERROR")

# Imports for output
import PIL.Image
import imageio.v2 as imageio

from escapetime import (
    BAND_ROWS,
    BandResult,
    GenerationMode,
    GenerationParams,
    ImageCanvas,
    InvalidParameters,
    RenderListener,
    RenderSession,
    validate_params,
)

from argparse import ArgumentParser


@dataclass
class OutputConfig:
    image_path: Path
    image_format: str
    gif_path: Path | None
    gif_frame_duration: float


def build_parser():
    parser = ArgumentParser(description='Render the Mandelbrot set, whole or band by band.')

    parser.add_argument('--width', type=int,
                        dest='width', help='image width in pixels',
                        metavar='WIDTH', default=800)

    parser.add_argument('--height', type=int,
                        dest='height', help='image height in pixels',
                        metavar='HEIGHT', default=600)

    parser.add_argument('--iterations', type=int,
                        dest='iterations', help='maximum number of iterations per point',
                        metavar='ITERATIONS', default=100)

    parser.add_argument('--zoom', type=float,
                        dest='zoom', help='magnification; the horizontal span of the view is 3.5 / ZOOM',
                        metavar='ZOOM', default=1.0)

    parser.add_argument('--center-x', type=float,
                        dest='center_x', help='real coordinate of the view centre',
                        metavar='CENTER_X', default=-0.5)

    parser.add_argument('--center-y', type=float,
                        dest='center_y', help='imaginary coordinate of the view centre',
                        metavar='CENTER_Y', default=0.0)

    parser.add_argument('--mode', choices=[mode.value for mode in GenerationMode], default='whole',
                        help='"whole" renders in one pass; "progressive" delivers the image in row bands.')

    parser.add_argument('--band-rows', type=int,
                        dest='band_rows', help='rows per band in progressive mode',
                        metavar='BAND_ROWS', default=BAND_ROWS)

    parser.add_argument('--workers', type=int,
                        dest='workers', help='threads computing bands in progressive mode',
                        metavar='WORKERS', default=1)

    parser.add_argument('--backend', choices=['tensorflow', 'python'], default='tensorflow',
                        help='"tensorflow" evaluates whole bands at once; "python" walks pixel by pixel.')

    parser.add_argument('--output', dest='output', type=str, default=None,
                        help='Destination image file. Defaults to fractal.<format> in the working directory.')

    parser.add_argument('--format', type=str,
                        dest='format', help='file format for the image. Can be any extension supported by Pillow. Default: "png".',
                        metavar='FORMAT', default='png')

    parser.add_argument('--progress-gif', dest='progress_gif', type=str, default=None,
                        help='Progressive mode only: write a GIF with one frame per delivered band.')

    parser.add_argument('--gif-frame-duration', type=float, dest='gif_frame_duration', default=0.1,
                        help='Seconds each frame of --progress-gif is shown.')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow diagnostics.')

    return parser


def resolve_output_config(opt, parser: ArgumentParser) -> OutputConfig:
    image_format = (getattr(opt, "format", "png") or "png").lower().lstrip(".")
    if not image_format:
        image_format = "png"

    if opt.output:
        output_path = Path(opt.output).expanduser()
        if output_path.exists() and output_path.is_dir():
            parser.error("--output must point to a file, not a directory.")
        suffix = output_path.suffix
        expected_suffix = f".{image_format}"
        if suffix:
            if suffix.lower() != expected_suffix.lower():
                parser.error(f"--output extension {suffix} does not match --format {image_format}.")
        else:
            output_path = output_path.with_suffix(expected_suffix)
        image_path = output_path.resolve()
    else:
        image_path = Path(f"fractal.{image_format}").expanduser().resolve()

    gif_path: Path | None = None
    if opt.progress_gif:
        if opt.mode != GenerationMode.PROGRESSIVE.value:
            parser.error("--progress-gif requires --mode progressive.")
        gif_output = Path(opt.progress_gif).expanduser()
        if gif_output.suffix:
            if gif_output.suffix.lower() != ".gif":
                parser.error("GIF outputs must end with .gif.")
        else:
            gif_output = gif_output.with_suffix(".gif")
        gif_path = gif_output.resolve()

    if opt.gif_frame_duration <= 0:
        parser.error("--gif-frame-duration must be positive.")

    return OutputConfig(
        image_path=image_path,
        image_format=image_format,
        gif_path=gif_path,
        gif_frame_duration=opt.gif_frame_duration,
    )


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def write_single_image(image: PIL.Image.Image, output_path: Path, image_format: str) -> None:
    """Write a single image to ``output_path`` using the provided format."""

    pil_format = _pil_format_name(image_format)
    if pil_format == "JPEG" and image.mode == "RGBA":
        image = image.convert("RGB")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format=pil_format)


class CanvasListener(RenderListener):
    """Collects deliveries on a white canvas and mirrors band progress to the terminal."""

    def __init__(self, canvas: ImageCanvas, gif_writer=None):
        self.canvas = canvas
        self.gif_writer = gif_writer
        self.completed = False
        self.error: str | None = None

    def on_image(self, epoch: int, pixels: np.ndarray) -> None:
        self.canvas.paste(pixels, 0)
        self.completed = True

    def on_band(self, epoch: int, result: BandResult) -> None:
        self.canvas.paste(result.pixels, result.band.start_row)
        if self.gif_writer is not None:
            self.gif_writer.append_data(self.canvas.snapshot())
        print("generating: {0}%".format(result.progress), end='\r')
        log("band rows {0}-{1} delivered".format(result.band.start_row, result.band.end_row - 1))

    def on_complete(self, epoch: int) -> None:
        self.completed = True

    def on_error(self, epoch: int, message: str) -> None:
        self.error = message

    def close(self) -> None:
        if self.gif_writer is not None:
            self.gif_writer.close()
            self.gif_writer = None


def main(argv=None):
    parser = build_parser()
    opt = parser.parse_args(argv)

    output_config = resolve_output_config(opt, parser)

    global VERBOSE
    VERBOSE = bool(opt.verbose) or VERBOSE
    if VERBOSE:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    log("TensorFlow version: %s" % tf.__version__)

    params = GenerationParams(
        pixel_width=opt.width,
        pixel_height=opt.height,
        max_iterations=opt.iterations,
        zoom=opt.zoom,
        center_x=opt.center_x,
        center_y=opt.center_y,
    )
    mode = GenerationMode(opt.mode)

    try:
        validate_params(params)
    except InvalidParameters as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    gif_writer = None
    if output_config.gif_path is not None:
        output_config.gif_path.parent.mkdir(parents=True, exist_ok=True)
        gif_writer = imageio.get_writer(
            str(output_config.gif_path), mode='I', duration=output_config.gif_frame_duration, loop=0
        )

    listener = CanvasListener(ImageCanvas(opt.width, opt.height), gif_writer)
    session = RenderSession(listener, backend=opt.backend, workers=opt.workers, band_rows=opt.band_rows)

    start_time = time.perf_counter()
    try:
        session.submit(params, mode)
        session.join()
    finally:
        listener.close()
    elapsed = time.perf_counter() - start_time

    if listener.error is not None:
        print(f"error: {listener.error}", file=sys.stderr)
        return 1
    if not listener.completed:
        print("error: generation did not complete", file=sys.stderr)
        return 1

    write_single_image(listener.canvas.to_image(), output_config.image_path, output_config.image_format)

    suffix = " (progressive)" if mode is GenerationMode.PROGRESSIVE else ""
    print(f"fractal generated in {elapsed:.2f} s{suffix}")
    log("image written to %s" % output_config.image_path)
    if output_config.gif_path is not None:
        log("band animation written to %s" % output_config.gif_path)
    return 0


if __name__ == '__main__':
    sys.exit(main())
