"""Map escape iteration counts onto an HSV gradient."""

from __future__ import annotations

import math
from bisect import bisect_right

import numpy as np

INSIDE_COLOR = (0, 0, 0)
OPAQUE = 255

# Hue boundaries in degrees; a hue equal to a boundary belongs to the next sector.
SECTOR_BOUNDS = (60.0, 120.0, 180.0, 240.0, 300.0)

# For each sector, which of (chroma, x, 0) lands in the r, g and b channels.
SECTOR_CHANNELS = (
    (0, 1, 2),
    (1, 0, 2),
    (2, 0, 1),
    (2, 1, 0),
    (1, 2, 0),
    (0, 2, 1),
)


def _to_byte(channel: float) -> int:
    return int(math.floor(channel * 255 + 0.5))


def hsv_to_rgb(hue: float, saturation: float, value: float) -> tuple[int, int, int]:
    """Convert ``hue`` in degrees plus saturation/value in [0, 1] to 8-bit RGB."""

    chroma = value * saturation
    x = chroma * (1 - abs(((hue / 60) % 2) - 1))
    m = value - chroma
    components = (chroma, x, 0.0)
    order = SECTOR_CHANNELS[bisect_right(SECTOR_BOUNDS, hue)]
    r, g, b = (components[index] for index in order)
    return _to_byte(r + m), _to_byte(g + m), _to_byte(b + m)


def _gradient(ratio: float) -> tuple[float, float, float]:
    hue = ratio * 360
    value = 2 * ratio if ratio < 0.5 else 1.0
    return hue, 1.0, value


def map_color(iteration: int, max_iterations: int) -> tuple[int, int, int]:
    """Colour for a pixel that stopped after ``iteration`` of ``max_iterations`` steps."""

    if iteration == max_iterations:
        return INSIDE_COLOR
    return hsv_to_rgb(*_gradient(iteration / max_iterations))


def colorize(iterations: np.ndarray, max_iterations: int) -> np.ndarray:
    """Vectorized :func:`map_color` returning an RGBA ``uint8`` array.

    The result has the shape of ``iterations`` plus a trailing channel axis of
    length four; alpha is always 255.
    """

    iterations = np.asarray(iterations)
    ratio = iterations.astype(np.float64) / max_iterations
    hue = ratio * 360
    value = np.where(ratio < 0.5, 2 * ratio, 1.0)
    chroma = value * 1.0
    x = chroma * (1 - np.abs(np.mod(hue / 60, 2) - 1))
    m = value - chroma

    components = np.stack((chroma, x, np.zeros_like(chroma)), axis=-1)
    sectors = np.searchsorted(np.asarray(SECTOR_BOUNDS), hue, side="right")
    order = np.asarray(SECTOR_CHANNELS)[sectors]
    rgb = np.take_along_axis(components, order, axis=-1) + m[..., np.newaxis]

    rgba = np.empty(iterations.shape + (4,), dtype=np.uint8)
    rgba[..., :3] = np.floor(rgb * 255 + 0.5).astype(np.uint8)
    rgba[..., 3] = OPAQUE

    inside = iterations == max_iterations
    rgba[inside, :3] = INSIDE_COLOR
    return rgba
