"""Debug images for inspecting what the parser saw.

Writes three PNGs per photo into a directory:
  - ``pixels.png``: the stone pixel mask, black on white
  - ``stones.png``: accepted stone boxes, white on black
  - ``board.png``: the photo with the fitted lattice and stone verdicts drawn on
"""

import logging
from pathlib import Path
from typing import List, Tuple

import cv2
import numpy as np
from PIL import Image

from .geometry import Blob
from .image import PixelImage
from .mask import MaskGrid

logger = logging.getLogger(__name__)

LATTICE_COLOR = (255, 0, 0)
MAPPED_COLOR = (0, 200, 0)
REJECTED_COLOR = (255, 160, 0)
REFERENCE_COLOR = (0, 120, 255)


def _lattice_positions(origin: int, spacing: float, limit: int) -> List[int]:
    """Pixel positions of lattice lines through ``origin`` within ``[0, limit)``."""
    first = origin - int(origin // spacing) * spacing
    positions = []
    pos = first
    while pos < limit:
        positions.append(int(round(pos)))
        pos += spacing
    return positions


def render_board_overlay(image: PixelImage, reading) -> np.ndarray:
    """Draw lattice lines, mapped stones and rejected stones over the photo."""
    canvas = image.pixels.copy()
    h, w = canvas.shape[:2]
    ref = reading.reference
    for x in _lattice_positions(ref.x, reading.spacing, w):
        cv2.line(canvas, (x, 0), (x, h - 1), LATTICE_COLOR, 1)
    for y in _lattice_positions(ref.y, reading.spacing, h):
        cv2.line(canvas, (0, y), (w - 1, y), LATTICE_COLOR, 1)

    radius = max(2, int(reading.stone_size // 2))
    for center in reading.board.values():
        cv2.circle(canvas, (int(center.x), int(center.y)), radius, MAPPED_COLOR, 2)
    for center in reading.rejected:
        cx, cy = int(center.x), int(center.y)
        cv2.drawMarker(canvas, (cx, cy), REJECTED_COLOR, cv2.MARKER_TILTED_CROSS, radius * 2, 2)
    cv2.circle(canvas, (int(ref.x), int(ref.y)), max(2, radius // 2), REFERENCE_COLOR, -1)
    return canvas


class DebugSink:
    """Writes pipeline intermediates as images; never alters the outcome."""

    def __init__(self, output_dir: Path, prefix: str = ""):
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.written: List[Path] = []

    def _save(self, name: str, array: np.ndarray) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{self.prefix}{name}.png"
        Image.fromarray(array).save(path)
        self.written.append(path)
        logger.debug("Wrote debug image %s", path)
        return path

    def pixels(self, mask: MaskGrid) -> Path:
        cells = mask.to_array()
        return self._save("pixels", np.where(cells, 0, 255).astype(np.uint8))

    def stones(self, width: int, height: int, stones: List[Blob]) -> Path:
        canvas = np.zeros((height, width), dtype=np.uint8)
        for stone in stones:
            tl, br = stone.top_left, stone.bottom_right
            canvas[tl.y:br.y + 1, tl.x:br.x + 1] = 255
        return self._save("stones", canvas)

    def board(self, image: PixelImage, reading) -> Path:
        return self._save("board", render_board_overlay(image, reading))

    def saved_names(self) -> Tuple[str, ...]:
        return tuple(path.name for path in self.written)
