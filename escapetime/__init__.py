"""Public API for escape-time Mandelbrot rendering."""

from .canvas import ImageCanvas
from .errors import FractalError, InternalFailure, InvalidParameters
from .evaluator import escape_iterations, escape_iterations_grid
from .palette import colorize, hsv_to_rgb, map_color
from .renderer import (
    BAND_ROWS,
    BandResult,
    GenerationParams,
    RowBand,
    Viewport,
    compute_viewport,
    iter_bands,
    pixel_to_complex,
    plan_bands,
    progress_percent,
    render_full,
    render_progressive,
    render_region,
    validate_params,
)
from .session import GenerationMode, RenderListener, RenderSession

__all__ = [
    "BAND_ROWS",
    "BandResult",
    "FractalError",
    "GenerationMode",
    "GenerationParams",
    "ImageCanvas",
    "InternalFailure",
    "InvalidParameters",
    "RenderListener",
    "RenderSession",
    "RowBand",
    "Viewport",
    "colorize",
    "compute_viewport",
    "escape_iterations",
    "escape_iterations_grid",
    "hsv_to_rgb",
    "iter_bands",
    "map_color",
    "pixel_to_complex",
    "plan_bands",
    "progress_percent",
    "render_full",
    "render_progressive",
    "render_region",
    "validate_params",
]
