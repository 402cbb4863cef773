"""Consumer-side surface that assembles delivered buffers into one image."""

from __future__ import annotations

import numpy as np
import PIL.Image

WHITE = (255, 255, 255, 255)


class ImageCanvas:
    """An RGBA surface onto which band buffers are pasted at their start row."""

    def __init__(self, width: int, height: int, background: tuple[int, int, int, int] = WHITE):
        if width <= 0 or height <= 0:
            raise ValueError(f"canvas size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self._pixels = np.empty((height, width, 4), dtype=np.uint8)
        self._pixels[...] = background

    @property
    def pixels(self) -> np.ndarray:
        return self._pixels

    def paste(self, pixels: np.ndarray, start_row: int = 0) -> None:
        """Copy ``pixels`` into the canvas with its first row at ``start_row``."""

        if pixels.ndim != 3 or pixels.shape[1:] != (self.width, 4):
            raise ValueError(f"expected a buffer of shape (rows, {self.width}, 4), got {pixels.shape}")
        end_row = start_row + pixels.shape[0]
        if start_row < 0 or end_row > self.height:
            raise ValueError(f"rows {start_row}-{end_row - 1} fall outside a canvas of height {self.height}")
        self._pixels[start_row:end_row] = pixels

    def snapshot(self) -> np.ndarray:
        return self._pixels.copy()

    def to_image(self) -> PIL.Image.Image:
        return PIL.Image.fromarray(self.snapshot())
