"""Public interface for the board parser: black stone lattices from board photos."""

from __future__ import annotations

from .board import (
    BoardParser,
    BoardReading,
    NoBoardDetected,
    NoBoardReason,
    board_map,
    read_board,
)
from .config import ParserConfig
from .geometry import Blob, BoardMap, Point
from .image import PixelImage

__all__ = [
    "Blob",
    "BoardMap",
    "BoardParser",
    "BoardReading",
    "NoBoardDetected",
    "NoBoardReason",
    "ParserConfig",
    "PixelImage",
    "Point",
    "board_map",
    "read_board",
]
