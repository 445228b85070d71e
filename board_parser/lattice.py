"""Fit the board lattice to stone centres.

Three steps:

1. Sample horizontal and vertical separations between pairs of stones.
2. Refine the intersection spacing: every separation spans an unknown whole
   number of lattice units, so ``d / round(d / spacing)`` is a one-unit
   estimate; averaging the corrections over all samples damps the jitter of
   individual stone positions.
3. Snap each stone onto integer ``(column, row)`` offsets from a reference
   stone, dropping stones that sit too far between intersections.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import (
    MAX_SPACING_ITERATIONS,
    SPACING_TOLERANCE,
    ParserConfig,
)
from .geometry import BoardMap, Point, abs_diff, upper_median

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Distance sampling
# ---------------------------------------------------------------------------


@dataclass
class DistanceSample:
    """Axis-aligned separations in emission order, with per-axis counts."""

    distances: List[float] = field(default_factory=list)
    horizontal: int = 0
    vertical: int = 0

    def add_pair(self, a: Point, b: Point, stone_size: float) -> None:
        # Same-row (same-column) pairs would add a near-zero dx (dy).
        dx = float(abs_diff(a.x, b.x))
        dy = float(abs_diff(a.y, b.y))
        if dx > stone_size:
            self.distances.append(dx)
            self.horizontal += 1
        if dy > stone_size:
            self.distances.append(dy)
            self.vertical += 1

    @property
    def spans_both_axes(self) -> bool:
        return self.horizontal > 0 and self.vertical > 0

    def __len__(self) -> int:
        return len(self.distances)


def sample_distances(centers: Sequence[Point], stone_size: float) -> DistanceSample:
    """Pair stones by their position in extraction order.

    ``centers`` must keep the row-major order the blobs were found in: index
    neighbours are then likely neighbours on the board. For each ``i`` below
    ``N - 2`` the stone is paired with the next one, with its mirror
    ``N - 1 - i`` (far across the board) and, in the first half, with
    ``i + N // 2``.
    """
    sample = DistanceSample()
    count = len(centers)
    half = count // 2
    for i in range(max(count - 2, 0)):
        stone = centers[i]
        sample.add_pair(stone, centers[i + 1], stone_size)
        sample.add_pair(stone, centers[count - 1 - i], stone_size)
        if i < half:
            sample.add_pair(stone, centers[i + half], stone_size)
    return sample


# ---------------------------------------------------------------------------
# Spacing
# ---------------------------------------------------------------------------


def nearest_neighbor_distance(centers: Sequence[Point]) -> float:
    """Median over stones of the chessboard distance to the closest other stone.

    ``max(|dx|, |dy|)`` is one lattice unit for orthogonal and diagonal
    neighbours alike, so sparse diagonal shapes seed the same as dense ones.
    Rows are measured one at a time to keep memory linear in the stone count.
    """
    if len(centers) < 2:
        raise ValueError("Need at least two stones to measure neighbour distances.")
    points = np.asarray(centers, dtype=np.int64)
    xs, ys = points[:, 0], points[:, 1]
    far = np.iinfo(np.int64).max
    nearest = []
    for i in range(len(points)):
        row = np.maximum(np.abs(xs - xs[i]), np.abs(ys - ys[i]))
        row[i] = far
        nearest.append(int(row.min()))
    return float(upper_median(nearest))


def estimate_spacing(
    distances: Sequence[float],
    initial: float,
    tolerance: float = SPACING_TOLERANCE,
    max_iterations: int = MAX_SPACING_ITERATIONS,
) -> float:
    """Fixed-point refinement of the pixel distance between adjacent intersections.

    Args:
        distances: Sampled separations, each spanning a whole number of units.
        initial: Starting estimate of one unit.
        tolerance: Stop once the mean correction is smaller than this.
        max_iterations: Hard cap; the latest estimate is returned when hit.
    """
    if not distances:
        raise ValueError("Cannot estimate spacing from an empty sample.")
    if initial <= 0:
        raise ValueError(f"Initial spacing must be positive, got {initial}")

    estimate = float(initial)
    for iteration in range(1, max_iterations + 1):
        total_change = 0.0
        for d in distances:
            units = max(1, round(d / estimate))
            total_change += d / units - estimate
        average_change = total_change / len(distances)
        estimate += average_change
        if abs(average_change) < tolerance:
            logger.debug("Spacing converged to %.3f px after %d iteration(s)", estimate, iteration)
            return estimate
    logger.warning(
        "Spacing did not converge in %d iterations; using %.3f px", max_iterations, estimate
    )
    return estimate


# ---------------------------------------------------------------------------
# Lattice assignment
# ---------------------------------------------------------------------------


def _frac(value: float) -> float:
    return value - math.floor(value)


def fit_error(dx: float, dy: float, spacing: float) -> float:
    """How far an offset is from whole lattice units: 0 on an intersection, 1 halfway.

    Fractions of 7.6 and 5.2 units give ``1 - |.5 - .6| - |.5 - .2| = .6``.
    """
    qx = abs(dx) / spacing
    qy = abs(dy) / spacing
    return 1.0 - abs(0.5 - _frac(qy)) - abs(0.5 - _frac(qx))


def choose_reference(centers: Sequence[Point]) -> int:
    """Index of the stone closest to the centroid; the earliest one wins ties."""
    if not centers:
        raise ValueError("Cannot choose a reference stone from an empty list.")
    mean_x = sum(c.x for c in centers) / len(centers)
    mean_y = sum(c.y for c in centers) / len(centers)
    return min(
        range(len(centers)),
        key=lambda i: (centers[i].x - mean_x) ** 2 + (centers[i].y - mean_y) ** 2,
    )


def _signed_units(delta: int, q: float) -> int:
    units = int(round(q))
    return -units if delta < 0 else units


@dataclass
class LatticeFit:
    """Stones snapped to lattice points, plus what was left out."""

    reference: Point
    board: BoardMap = field(default_factory=dict)
    errors: Dict[Tuple[int, int], float] = field(default_factory=dict)
    rejected: List[Point] = field(default_factory=list)


def assign_lattice(
    centers: Sequence[Point],
    spacing: float,
    config: Optional[ParserConfig] = None,
) -> LatticeFit:
    """Map stone centres to ``(column, row)`` offsets from the reference stone.

    When two stones claim the same lattice point the one with the lower fit
    error keeps it.
    """
    config = config or ParserConfig()
    if spacing <= 0:
        raise ValueError(f"Spacing must be positive, got {spacing}")
    reference = centers[choose_reference(centers)]
    fit = LatticeFit(reference=reference)

    for stone in centers:
        dx = stone.x - reference.x
        dy = stone.y - reference.y
        qx = abs(dx) / spacing
        qy = abs(dy) / spacing
        if qx > config.max_lattice_offset or qy > config.max_lattice_offset:
            fit.rejected.append(stone)
            continue
        error = fit_error(dx, dy, spacing)
        if error > config.max_fit_error:
            fit.rejected.append(stone)
            continue

        key = (_signed_units(dx, qx), _signed_units(dy, qy))
        current = fit.errors.get(key)
        if current is None:
            fit.board[key] = stone
            fit.errors[key] = error
        elif error < current:
            fit.rejected.append(fit.board[key])
            fit.board[key] = stone
            fit.errors[key] = error
        else:
            fit.rejected.append(stone)

    logger.debug(
        "Lattice fit: %d stones placed, %d rejected, reference at (%d, %d)",
        len(fit.board), len(fit.rejected), reference.x, reference.y,
    )
    return fit
