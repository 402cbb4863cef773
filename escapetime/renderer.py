"""Rendering primitives for escape-time Mandelbrot images.

Pixel buffers are ``numpy.uint8`` arrays of shape ``(rows, width, 4)`` laid out
row-major with channels R, G, B, A; alpha is always 255. A buffer handed to a
caller is freshly allocated and never touched again by the renderer.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from numbers import Integral, Real
from typing import Callable, Iterator, Optional

import numpy as np

from .errors import FractalError, InternalFailure, InvalidParameters
from .evaluator import escape_iterations, escape_iterations_grid
from .palette import OPAQUE, colorize, map_color

logger = logging.getLogger(__name__)

BASE_SPAN = 3.5
BAND_ROWS = 20
BACKENDS = ("tensorflow", "python")


@dataclass(frozen=True)
class GenerationParams:
    """Parameters that describe a single generation run."""

    pixel_width: int
    pixel_height: int
    max_iterations: int
    zoom: float = 1.0
    center_x: float = 0.0
    center_y: float = 0.0


@dataclass(frozen=True)
class Viewport:
    """Rectangle of the complex plane mapped onto the pixel grid."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float


@dataclass(frozen=True)
class RowBand:
    """Contiguous horizontal slice ``[start_row, start_row + height)`` of the image."""

    start_row: int
    height: int

    @property
    def end_row(self) -> int:
        return self.start_row + self.height


@dataclass(frozen=True)
class BandResult:
    """A computed band together with the progress reached after it."""

    pixels: np.ndarray
    band: RowBand
    progress: int


def _is_positive_int(value: object) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool) and value > 0


def _is_finite_real(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def validate_params(params: GenerationParams) -> None:
    """Raise :class:`InvalidParameters` unless ``params`` can be rendered."""

    for name in ("pixel_width", "pixel_height", "max_iterations"):
        value = getattr(params, name)
        if not _is_positive_int(value):
            raise InvalidParameters(f"{name} must be a positive integer, got {value!r}")
    if not _is_finite_real(params.zoom) or params.zoom <= 0:
        raise InvalidParameters(f"zoom must be a positive finite number, got {params.zoom!r}")
    for name in ("center_x", "center_y"):
        value = getattr(params, name)
        if not _is_finite_real(value):
            raise InvalidParameters(f"{name} must be a finite number, got {value!r}")


def _check_backend(backend: str) -> None:
    if backend not in BACKENDS:
        raise InvalidParameters(f"unknown backend {backend!r}; choose one of {', '.join(BACKENDS)}")


def compute_viewport(params: GenerationParams) -> Viewport:
    """Complex-plane bounds for ``params``; the vertical span follows the aspect ratio."""

    scale = BASE_SPAN / params.zoom
    return Viewport(
        min_x=params.center_x - scale / 2,
        max_x=params.center_x + scale / 2,
        min_y=params.center_y - scale * params.pixel_height / params.pixel_width / 2,
        max_y=params.center_y + scale * params.pixel_height / params.pixel_width / 2,
    )


def pixel_to_complex(params: GenerationParams, viewport: Viewport, px: int, py: int) -> tuple[float, float]:
    """Map pixel ``(px, py)`` of the full image onto the complex plane."""

    x0 = viewport.min_x + (px / params.pixel_width) * (viewport.max_x - viewport.min_x)
    y0 = viewport.min_y + (py / params.pixel_height) * (viewport.max_y - viewport.min_y)
    return x0, y0


def plan_bands(pixel_height: int, band_rows: int = BAND_ROWS) -> list[RowBand]:
    """Partition ``[0, pixel_height)`` into bands of ``band_rows``; the last may be shorter."""

    if not _is_positive_int(band_rows):
        raise InvalidParameters(f"band_rows must be a positive integer, got {band_rows!r}")
    return [
        RowBand(start_row=start, height=min(band_rows, pixel_height - start))
        for start in range(0, pixel_height, band_rows)
    ]


def progress_percent(end_row: int, pixel_height: int) -> int:
    return int(math.floor(end_row / pixel_height * 100 + 0.5))


def _render_region_python(params: GenerationParams, viewport: Viewport, band: RowBand) -> np.ndarray:
    pixels = np.empty((band.height, params.pixel_width, 4), dtype=np.uint8)
    for row in range(band.height):
        py = band.start_row + row
        for px in range(params.pixel_width):
            x0, y0 = pixel_to_complex(params, viewport, px, py)
            iteration = escape_iterations(x0, y0, params.max_iterations)
            pixels[row, px, :3] = map_color(iteration, params.max_iterations)
            pixels[row, px, 3] = OPAQUE
    return pixels


def _render_region_tensorflow(params: GenerationParams, viewport: Viewport, band: RowBand) -> np.ndarray:
    px = np.arange(params.pixel_width, dtype=np.float64)
    py = np.arange(band.start_row, band.end_row, dtype=np.float64)
    x = viewport.min_x + (px / params.pixel_width) * (viewport.max_x - viewport.min_x)
    y = viewport.min_y + (py / params.pixel_height) * (viewport.max_y - viewport.min_y)
    X, Y = np.meshgrid(x, y)
    iterations = escape_iterations_grid(X, Y, params.max_iterations)
    return colorize(iterations, params.max_iterations)


def render_region(
    params: GenerationParams,
    viewport: Viewport,
    band: RowBand,
    backend: str = "tensorflow",
) -> np.ndarray:
    """Compute the pixels of ``band`` using absolute row indices of the full image."""

    try:
        if backend == "python":
            return _render_region_python(params, viewport, band)
        return _render_region_tensorflow(params, viewport, band)
    except FractalError:
        raise
    except Exception as exc:
        raise InternalFailure(
            f"failed to compute rows {band.start_row}-{band.end_row - 1}: {exc}"
        ) from exc


def render_full(params: GenerationParams, *, backend: str = "tensorflow") -> np.ndarray:
    """Render the whole ``pixel_height x pixel_width`` image in a single pass."""

    validate_params(params)
    _check_backend(backend)
    viewport = compute_viewport(params)
    logger.debug("rendering %dx%d image over %s", params.pixel_width, params.pixel_height, viewport)
    start = time.perf_counter()
    pixels = render_region(params, viewport, RowBand(0, params.pixel_height), backend)
    logger.debug("whole image done in %.3f s", time.perf_counter() - start)
    return pixels


def iter_bands(
    params: GenerationParams,
    *,
    band_rows: int = BAND_ROWS,
    backend: str = "tensorflow",
    workers: int = 1,
    cancel: Optional[threading.Event] = None,
) -> Iterator[BandResult]:
    """Yield the image band by band in ascending row order.

    With ``workers > 1`` bands are computed concurrently on a thread pool but
    still yielded in order. Setting ``cancel`` ends the iteration at the next
    band boundary. Invalid arguments raise :class:`InvalidParameters` at call
    time, before any band is computed.
    """

    validate_params(params)
    _check_backend(backend)
    if not _is_positive_int(workers):
        raise InvalidParameters(f"workers must be a positive integer, got {workers!r}")
    bands = plan_bands(params.pixel_height, band_rows)
    viewport = compute_viewport(params)
    logger.debug("rendering %d bands of up to %d rows over %s", len(bands), band_rows, viewport)
    return _iter_bands(params, viewport, bands, backend, workers, cancel)


def _iter_bands(
    params: GenerationParams,
    viewport: Viewport,
    bands: list[RowBand],
    backend: str,
    workers: int,
    cancel: Optional[threading.Event],
) -> Iterator[BandResult]:
    def cancelled() -> bool:
        if cancel is not None and cancel.is_set():
            logger.debug("run cancelled, stopping at band boundary")
            return True
        return False

    def result(band: RowBand, pixels: np.ndarray) -> BandResult:
        return BandResult(pixels, band, progress_percent(band.end_row, params.pixel_height))

    if workers == 1:
        for band in bands:
            if cancelled():
                return
            yield result(band, render_region(params, viewport, band, backend))
        return

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="escapetime-band") as pool:
        futures = [pool.submit(render_region, params, viewport, band, backend) for band in bands]
        try:
            for band, future in zip(bands, futures):
                if cancelled():
                    return
                yield result(band, future.result())
        finally:
            for future in futures:
                future.cancel()


def render_progressive(
    params: GenerationParams,
    on_band: Callable[[np.ndarray, RowBand, int], None],
    on_complete: Callable[[], None],
    *,
    band_rows: int = BAND_ROWS,
    backend: str = "tensorflow",
    workers: int = 1,
    cancel: Optional[threading.Event] = None,
) -> None:
    """Deliver each band to ``on_band`` as soon as it is ready, then call ``on_complete``.

    ``on_complete`` is skipped when the run is cancelled or a band fails; in
    the latter case the error propagates after the bands already delivered.
    """

    start = time.perf_counter()
    for item in iter_bands(params, band_rows=band_rows, backend=backend, workers=workers, cancel=cancel):
        on_band(item.pixels, item.band, item.progress)
    if cancel is not None and cancel.is_set():
        return
    logger.debug("progressive render done in %.3f s", time.perf_counter() - start)
    on_complete()
