"""Stone pixel classifier and the boolean mask it produces.

A pixel is candidate black-stone material when it is dark and achromatic::

    R < black_threshold and |R-G|, |R-B|, |G-B| <= grayness_limit

Black stones photograph as dark, nearly neutral pixels. The grayness clamp
keeps out dark saturated colours such as wood grain and shadows on a
coloured board.
"""

import logging
from typing import Optional

import numpy as np

from .config import BLACK_THRESHOLD, GRAYNESS_LIMIT, ParserConfig
from .geometry import abs_diff
from .image import PixelImage

logger = logging.getLogger(__name__)

_SET_CELLS = bytes([0] + [1] * 255)


def is_stone_pixel(
    r: int,
    g: int,
    b: int,
    black_threshold: int = BLACK_THRESHOLD,
    grayness_limit: int = GRAYNESS_LIMIT,
) -> bool:
    """Classify a single RGB8 pixel."""
    return (
        r < black_threshold
        and abs_diff(r, g) <= grayness_limit
        and abs_diff(r, b) <= grayness_limit
        and abs_diff(g, b) <= grayness_limit
    )


def stone_pixel_mask(
    pixels: np.ndarray,
    black_threshold: int = BLACK_THRESHOLD,
    grayness_limit: int = GRAYNESS_LIMIT,
) -> np.ndarray:
    """Vectorised :func:`is_stone_pixel` over an ``(H, W, 3)`` uint8 array."""
    # uint8 subtraction wraps; widen first.
    rgb = pixels.astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    return (
        (r < black_threshold)
        & (np.abs(r - g) <= grayness_limit)
        & (np.abs(r - b) <= grayness_limit)
        & (np.abs(g - b) <= grayness_limit)
    )


class MaskGrid:
    """Flat ``width * height`` byte grid with bounds-checked access.

    Out-of-range coordinates, negative ones included, read as ``False``.
    The blob extractor clears the whole grid once it has labelled it.
    """

    def __init__(self, width: int, height: int, cells: Optional[bytes] = None):
        if width < 1 or height < 1:
            raise ValueError(f"Mask must be at least 1x1, got {width}x{height}")
        self.width = width
        self.height = height
        if cells is None:
            self._cells = bytearray(width * height)
        else:
            if len(cells) != width * height:
                raise ValueError(f"Expected {width * height} cells, got {len(cells)}")
            # Store every non-zero byte as 1; find and count look for 1.
            self._cells = bytearray(bytes(cells).translate(_SET_CELLS))

    @classmethod
    def from_array(cls, array: np.ndarray) -> "MaskGrid":
        array = np.asarray(array, dtype=bool)
        if array.ndim != 2:
            raise ValueError(f"Expected a 2-D boolean array, got shape {array.shape}")
        height, width = array.shape
        return cls(width, height, array.astype(np.uint8).tobytes())

    def get(self, x: int, y: int) -> bool:
        if 0 <= x < self.width and 0 <= y < self.height:
            return self._cells[y * self.width + x] != 0
        return False

    def clear(self, x: int, y: int) -> None:
        if 0 <= x < self.width and 0 <= y < self.height:
            self._cells[y * self.width + x] = 0

    def next_set(self, start: int = 0) -> int:
        """Row-major index of the first set cell at or after ``start``, or -1."""
        return self._cells.find(1, start)

    def count(self) -> int:
        return self._cells.count(1)

    def clear_all(self) -> None:
        self._cells[:] = bytes(len(self._cells))

    def to_array(self) -> np.ndarray:
        flat = np.frombuffer(bytes(self._cells), dtype=np.uint8)
        return flat.reshape(self.height, self.width).astype(bool)


def classify_pixels(image: PixelImage, config: Optional[ParserConfig] = None) -> MaskGrid:
    """Build the stone-pixel mask for ``image``."""
    config = config or ParserConfig()
    mask = stone_pixel_mask(image.pixels, config.black_threshold, config.grayness_limit)
    grid = MaskGrid.from_array(mask)
    logger.debug(
        "Classified %d of %d pixels as stone material",
        grid.count(), image.width * image.height,
    )
    return grid
