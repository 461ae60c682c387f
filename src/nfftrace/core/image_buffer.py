"""In-memory RGB image produced by a render.

Pixels are linear floats in [0, 1], stored row-major as a (height, width, 3)
NumPy array with row 0 at the top of the image. The buffer supports the NumPy
array protocol, so it can be passed anywhere an array is expected.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import numpy.typing as npt


class ImageBuffer:
    """A width x height grid of RGB colors.

    Attributes:
        pixels: The (height, width, 3) float32 pixel array.
    """

    def __init__(self, pixels: npt.ArrayLike) -> None:
        array = np.asarray(pixels, dtype=np.float32)
        if array.ndim != 3 or array.shape[2] != 3:
            raise ValueError(f"Image buffer needs shape (height, width, 3), got {array.shape}")
        if array.shape[0] == 0 or array.shape[1] == 0:
            raise ValueError("Image buffer must have at least one pixel")
        self.pixels = array

    @classmethod
    def blank(
        cls, width: int, height: int, color: Sequence[float] = (0.0, 0.0, 0.0)
    ) -> ImageBuffer:
        """Create a buffer filled with one color."""
        pixels = np.empty((height, width, 3), dtype=np.float32)
        pixels[...] = np.asarray(color, dtype=np.float32)
        return cls(pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def get_pixel(self, x: int, y: int) -> tuple[float, float, float]:
        """Color of column x, row y (row 0 at the top)."""
        r, g, b = self.pixels[y, x]
        return (float(r), float(g), float(b))

    def set_pixel(self, x: int, y: int, color: Sequence[float]) -> None:
        self.pixels[y, x] = color

    def copy(self) -> ImageBuffer:
        return ImageBuffer(self.pixels.copy())

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self.pixels
        return self.pixels.astype(dtype)

    def __repr__(self) -> str:
        return f"ImageBuffer(width={self.width}, height={self.height})"
