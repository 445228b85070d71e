"""RGB raster wrapper that the pipeline reads pixels from."""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import cv2
import numpy as np
from PIL import Image


@dataclass(frozen=True, eq=False)
class PixelImage:
    """Immutable row-major RGB8 raster of shape ``(height, width, 3)``."""

    pixels: np.ndarray

    def __post_init__(self):
        pixels = self.pixels
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"Expected an (H, W, 3) array, got shape {pixels.shape}")
        if pixels.shape[0] < 1 or pixels.shape[1] < 1:
            raise ValueError(f"Image must be at least 1x1, got {pixels.shape[1]}x{pixels.shape[0]}")
        if pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
        pixels = np.array(pixels, copy=True, order="C")
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelImage":
        """Accept RGB, RGBA (alpha dropped) or single-channel gray arrays."""
        array = np.asarray(array)
        if array.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {array.dtype}")
        if array.size == 0:
            raise ValueError(f"Image must be at least 1x1, got shape {array.shape}")
        if array.ndim == 3 and array.shape[2] == 1:
            array = array[:, :, 0]
        if array.ndim == 2:
            array = cv2.cvtColor(np.ascontiguousarray(array), cv2.COLOR_GRAY2RGB)
        elif array.ndim == 3 and array.shape[2] == 4:
            array = cv2.cvtColor(np.ascontiguousarray(array), cv2.COLOR_RGBA2RGB)
        return cls(array)

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> "PixelImage":
        """Build from a packed row-major RGB8 buffer."""
        if width < 1 or height < 1:
            raise ValueError(f"Image must be at least 1x1, got {width}x{height}")
        expected = width * height * 3
        if len(data) != expected:
            raise ValueError(f"Expected {expected} bytes for {width}x{height} RGB, got {len(data)}")
        pixels = np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, 3)
        return cls(pixels)

    @classmethod
    def from_pil(cls, img: Image.Image) -> "PixelImage":
        if img.mode != "RGB":
            img = img.convert("RGB")
        return cls(np.array(img))

    @classmethod
    def open(cls, path: Union[str, Path]) -> "PixelImage":
        """Decode any Pillow-supported file into RGB."""
        with Image.open(path) as img:
            return cls.from_pil(img)

    @classmethod
    def coerce(cls, image: Union["PixelImage", np.ndarray, Image.Image]) -> "PixelImage":
        if isinstance(image, PixelImage):
            return image
        if isinstance(image, Image.Image):
            return cls.from_pil(image)
        return cls.from_array(image)
