"""Pixel-space value types shared by the pipeline stages."""

from dataclasses import dataclass
from typing import Dict, NamedTuple, Sequence, Tuple


class Point(NamedTuple):
    x: int
    y: int


# Lattice (column, row) relative to the reference stone -> stone pixel centre.
BoardMap = Dict[Tuple[int, int], Point]


def abs_diff(a, b):
    """Absolute difference that never goes through a negative intermediate."""
    return a - b if a > b else b - a


def upper_median(values: Sequence):
    """Element at ``len // 2`` of the ascending sort (upper median on even counts)."""
    if not values:
        raise ValueError("Cannot take the median of an empty sequence.")
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


@dataclass
class Blob:
    """Bounding box of one 8-connected run of stone pixels."""

    top_left: Point
    bottom_right: Point
    area: int = 1

    @property
    def width(self) -> int:
        return self.bottom_right.x - self.top_left.x

    @property
    def height(self) -> int:
        return self.bottom_right.y - self.top_left.y

    def center(self) -> Point:
        # Integer halving from the bottom-right corner: odd spans lean
        # towards bottom-right. Lattice assignments depend on this exact form.
        br = self.bottom_right
        return Point(br.x - self.width // 2, br.y - self.height // 2)
