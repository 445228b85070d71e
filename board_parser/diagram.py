"""Plain-text board diagrams.

One line per board row, one character per intersection::

    x0xx
    x10x

``x`` is empty, ``0`` a black stone and ``1`` a white stone. Diagrams are the
ground truth for checking a parsed photo, and the same alphabet is used to
print a :data:`BoardMap` on the console.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Set, Tuple, Union

from .geometry import BoardMap


class Intersection(str, Enum):
    EMPTY = "x"
    WHITE = "1"
    BLACK = "0"


def normalize_lattice(points: Iterable[Tuple[int, int]]) -> Set[Tuple[int, int]]:
    """Shift points so the smallest column and the smallest row become 0."""
    points = list(points)
    if not points:
        return set()
    min_x = min(x for x, _ in points)
    min_y = min(y for _, y in points)
    return {(x - min_x, y - min_y) for x, y in points}


@dataclass
class DiagramComparison:
    matched: Set[Tuple[int, int]] = field(default_factory=set)
    missing: Set[Tuple[int, int]] = field(default_factory=set)
    extra: Set[Tuple[int, int]] = field(default_factory=set)

    @property
    def exact(self) -> bool:
        return not self.missing and not self.extra


@dataclass
class BoardDiagram:
    rows: List[List[Intersection]]

    @classmethod
    def from_text(cls, text: str) -> "BoardDiagram":
        rows = []
        for line_no, line in enumerate(text.splitlines(), 1):
            line = line.strip()
            if not line:
                continue
            try:
                rows.append([Intersection(c) for c in line])
            except ValueError:
                raise ValueError(f"Unrecognized board char on line {line_no}: {line!r}") from None
        return cls(rows)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "BoardDiagram":
        return cls.from_text(Path(path).read_text())

    def black_stones(self) -> List[Tuple[int, int]]:
        """``(column, row)`` of every black stone, row-major."""
        return [
            (x, y)
            for y, row in enumerate(self.rows)
            for x, point in enumerate(row)
            if point is Intersection.BLACK
        ]

    def compare(self, board: BoardMap) -> DiagramComparison:
        """Match a parsed board against the diagram's black stones.

        Both sides are normalised first: the parser's origin is an arbitrary
        stone, the diagram's is the board corner.
        """
        expected = normalize_lattice(self.black_stones())
        found = normalize_lattice(board.keys())
        return DiagramComparison(
            matched=expected & found,
            missing=expected - found,
            extra=found - expected,
        )


def format_board(board: BoardMap) -> str:
    """Render the lattice points of ``board`` as diagram text."""
    points = normalize_lattice(board.keys())
    if not points:
        return ""
    width = max(x for x, _ in points) + 1
    height = max(y for _, y in points) + 1
    lines = []
    for y in range(height):
        lines.append("".join(
            Intersection.BLACK.value if (x, y) in points else Intersection.EMPTY.value
            for x in range(width)
        ))
    return "\n".join(lines)
