"""Parser configuration: pixel thresholds, stone size window, lattice limits."""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional, Tuple


# ---------------------------------------------------------------------------
# Pixel classification
# ---------------------------------------------------------------------------
# Red channel must be strictly below this for a pixel to count as stone material.
BLACK_THRESHOLD = 30
# Maximum pairwise channel difference; keeps dark wood grain out.
GRAYNESS_LIMIT = 8

# ---------------------------------------------------------------------------
# Blobs and stones
# ---------------------------------------------------------------------------
# Blobs must be wider and taller than this (in pixels) to survive extraction.
MIN_STONE_SIZE = 5
# Accepted width/height window around the median, both ends exclusive.
SIZE_TOLERANCE: Tuple[float, float] = (0.66, 1.5)
# Fewer black stones than this and the lattice cannot be fitted.
MIN_BLACK_STONES_ON_BOARD = 6

# ---------------------------------------------------------------------------
# Lattice
# ---------------------------------------------------------------------------
# No legal board puts a stone further than this many points from another.
MAX_LATTICE_OFFSET = 20
MAX_FIT_ERROR = 0.5
# The spacing estimator stops once the mean correction drops below this.
SPACING_TOLERANCE = 1.0
MAX_SPACING_ITERATIONS = 64


@dataclass
class ParserConfig:
    """Runtime configuration for :class:`board_parser.board.BoardParser`."""

    black_threshold: int = BLACK_THRESHOLD
    grayness_limit: int = GRAYNESS_LIMIT
    min_stone_size: int = MIN_STONE_SIZE
    size_tolerance: Tuple[float, float] = SIZE_TOLERANCE
    min_stones: int = MIN_BLACK_STONES_ON_BOARD
    max_lattice_offset: int = MAX_LATTICE_OFFSET
    max_fit_error: float = MAX_FIT_ERROR
    spacing_tolerance: float = SPACING_TOLERANCE
    max_spacing_iterations: int = MAX_SPACING_ITERATIONS
    # Seed the spacing estimator with the median nearest-neighbour distance
    # instead of the bare stone size.
    seed_from_neighbors: bool = True
    debug_dir: Optional[Path] = None

    def __post_init__(self):
        self.size_tolerance = tuple(self.size_tolerance)
        if self.debug_dir is not None:
            self.debug_dir = Path(self.debug_dir)

    def validate(self) -> "ParserConfig":
        low, high = self.size_tolerance
        if not 0 < self.black_threshold <= 256:
            raise ValueError(f"black_threshold out of range: {self.black_threshold}")
        if self.grayness_limit < 0:
            raise ValueError(f"grayness_limit must be >= 0, got {self.grayness_limit}")
        if self.min_stone_size < 0:
            raise ValueError(f"min_stone_size must be >= 0, got {self.min_stone_size}")
        if not 0 < low < 1 < high:
            raise ValueError(f"size_tolerance must satisfy 0 < low < 1 < high, got {self.size_tolerance}")
        if self.min_stones < 1:
            raise ValueError(f"min_stones must be >= 1, got {self.min_stones}")
        if self.max_lattice_offset < 1:
            raise ValueError(f"max_lattice_offset must be >= 1, got {self.max_lattice_offset}")
        if not 0 < self.max_fit_error <= 1:
            raise ValueError(f"max_fit_error must lie in (0, 1], got {self.max_fit_error}")
        if self.spacing_tolerance <= 0:
            raise ValueError(f"spacing_tolerance must be positive, got {self.spacing_tolerance}")
        if self.max_spacing_iterations < 1:
            raise ValueError(
                f"max_spacing_iterations must be >= 1, got {self.max_spacing_iterations}"
            )
        return self

    def to_dict(self) -> dict:
        data = asdict(self)
        data["size_tolerance"] = list(self.size_tolerance)
        data["debug_dir"] = str(self.debug_dir) if self.debug_dir is not None else None
        return data

    @classmethod
    def from_dict(cls, d: dict) -> "ParserConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**d).validate()

    @classmethod
    def load(cls, path: Path) -> "ParserConfig":
        with Path(path).open() as handle:
            return cls.from_dict(json.load(handle))
