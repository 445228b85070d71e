"""Stage-by-stage tests for the black stone pipeline.

Synthetic boards are drawn as dark squares on a wood-coloured background so
that stone centres are known exactly.
"""

from __future__ import annotations

import tracemalloc

import numpy as np
import pytest

from board_parser.blobs import extract_blobs, find_blobs, is_stone_shaped
from board_parser.config import ParserConfig
from board_parser.geometry import Blob, Point, abs_diff, upper_median
from board_parser.lattice import (
    assign_lattice,
    choose_reference,
    estimate_spacing,
    fit_error,
    nearest_neighbor_distance,
    sample_distances,
)
from board_parser.mask import MaskGrid, classify_pixels, is_stone_pixel, stone_pixel_mask
from board_parser.image import PixelImage
from board_parser.stones import select_stones


# ---------------------------------------------------------------------------
# Synthetic image helpers
# ---------------------------------------------------------------------------

WOOD = (214, 172, 110)
STONE = (12, 12, 12)


def _blank(width: int, height: int) -> np.ndarray:
    return np.full((height, width, 3), WOOD, dtype=np.uint8)


def _draw_square(img: np.ndarray, cx: int, cy: int, size: int = 10) -> None:
    """Dark square whose bounding-box centre (bottom-right biased) is (cx, cy)."""
    half = size // 2
    img[cy - half:cy - half + size, cx - half:cx - half + size] = STONE


def _blob(w: int, h: int, x: int = 0, y: int = 0) -> Blob:
    return Blob(top_left=Point(x, y), bottom_right=Point(x + w, y + h))


# ---------------------------------------------------------------------------
# Tests: pixel classifier
# ---------------------------------------------------------------------------


class TestClassifier:
    def test_dark_gray_boundary(self):
        assert is_stone_pixel(29, 29, 29)
        assert not is_stone_pixel(30, 30, 30)
        assert is_stone_pixel(0, 0, 0)

    def test_grayness_clamp(self):
        assert is_stone_pixel(20, 28, 20)
        assert not is_stone_pixel(20, 29, 20), "|R-G| = 9 exceeds the limit"
        assert not is_stone_pixel(20, 20, 29), "|R-B| = 9 exceeds the limit"
        assert not is_stone_pixel(10, 10, 19), "|G-B| = 9 exceeds the limit"
        assert not is_stone_pixel(5, 60, 5), "dark green is not stone material"

    def test_pure_function(self):
        for rgb in [(29, 29, 29), (30, 30, 30), (12, 4, 20), (255, 255, 255)]:
            assert is_stone_pixel(*rgb) == is_stone_pixel(*rgb)

    def test_vectorised_matches_scalar(self):
        values = np.arange(0, 48, 3, dtype=np.uint8)
        r, g, b = np.meshgrid(values, values, values, indexing="ij")
        pixels = np.stack([r.ravel(), g.ravel(), b.ravel()], axis=1).reshape(1, -1, 3)
        mask = stone_pixel_mask(pixels)[0]
        expected = [is_stone_pixel(int(p[0]), int(p[1]), int(p[2])) for p in pixels[0]]
        assert mask.tolist() == expected

    def test_no_uint8_wraparound(self):
        pixels = np.array([[[5, 250, 5], [250, 5, 5]]], dtype=np.uint8)
        assert not stone_pixel_mask(pixels).any()

    def test_custom_thresholds(self):
        cfg = ParserConfig(black_threshold=50, grayness_limit=2)
        img = PixelImage.from_array(np.array([[[40, 41, 40], [40, 45, 40]]], dtype=np.uint8))
        grid = classify_pixels(img, cfg)
        assert grid.get(0, 0) and not grid.get(1, 0)


# ---------------------------------------------------------------------------
# Tests: mask grid
# ---------------------------------------------------------------------------


class TestMaskGrid:
    def test_out_of_range_reads_false(self):
        grid = MaskGrid.from_array(np.ones((3, 4), dtype=bool))
        assert grid.get(0, 0) and grid.get(3, 2)
        for x, y in [(-1, 0), (0, -1), (4, 0), (0, 3), (-1, -1), (4, 3)]:
            assert not grid.get(x, y)

    def test_row_major_layout(self):
        array = np.zeros((3, 4), dtype=bool)
        array[2, 1] = True
        grid = MaskGrid.from_array(array)
        assert grid.next_set(0) == 2 * 4 + 1
        grid.clear(1, 2)
        assert grid.next_set(0) == -1
        assert grid.count() == 0

    def test_round_trip_array(self):
        rng = np.random.RandomState(3)
        array = rng.rand(7, 5) < 0.5
        assert np.array_equal(MaskGrid.from_array(array).to_array(), array)

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            MaskGrid(0, 5)

    def test_any_nonzero_byte_is_set(self):
        grid = MaskGrid(2, 2, bytes([0, 2, 255, 1]))
        assert [grid.get(x, y) for y in range(2) for x in range(2)] == [False, True, True, True]
        assert grid.count() == 3
        assert grid.next_set(0) == 1
        blobs = extract_blobs(grid)
        assert len(blobs) == 1 and blobs[0].area == 3
        assert grid.count() == 0


# ---------------------------------------------------------------------------
# Tests: blob extraction
# ---------------------------------------------------------------------------


def _scan_components(mask: np.ndarray):
    """Boxes and areas of 8-connected components, in order of first raster cell."""
    seen = np.zeros_like(mask, dtype=bool)
    height, width = mask.shape
    components = []
    for y in range(height):
        for x in range(width):
            if not mask[y, x] or seen[y, x]:
                continue
            seen[y, x] = True
            stack, cells = [(x, y)], []
            while stack:
                cx, cy = stack.pop()
                cells.append((cx, cy))
                for nx in range(cx - 1, cx + 2):
                    for ny in range(cy - 1, cy + 2):
                        if 0 <= nx < width and 0 <= ny < height and mask[ny, nx] and not seen[ny, nx]:
                            seen[ny, nx] = True
                            stack.append((nx, ny))
            xs = [c[0] for c in cells]
            ys = [c[1] for c in cells]
            components.append((min(xs), min(ys), max(xs), max(ys), len(cells)))
    return components


class TestBlobExtraction:
    def test_matches_scan_order_fill(self):
        rng = np.random.RandomState(7)
        mask = rng.rand(60, 80) < 0.35
        grid = MaskGrid.from_array(mask)
        blobs = extract_blobs(grid)

        found = [
            (b.top_left.x, b.top_left.y, b.bottom_right.x, b.bottom_right.y, b.area)
            for b in blobs
        ]
        assert found == _scan_components(mask)
        assert sum(b.area for b in blobs) == int(mask.sum())
        assert grid.count() == 0, "extraction should consume the mask"

    def test_order_follows_first_cell_not_label(self):
        # The right-hand hook starts higher up, so it is found first even
        # though most of its cells lie below the left-hand bar.
        mask = np.zeros((12, 12), dtype=bool)
        mask[3, 0:4] = True
        mask[1:11, 9] = True
        mask[10, 2:10] = True
        blobs = extract_blobs(MaskGrid.from_array(mask))
        assert [b.top_left for b in blobs] == [Point(2, 1), Point(0, 3)]

    def test_bounding_boxes_are_tight(self):
        rng = np.random.RandomState(11)
        mask = rng.rand(40, 40) < 0.3
        for blob in extract_blobs(MaskGrid.from_array(mask)):
            tl, br = blob.top_left, blob.bottom_right
            assert tl.x <= br.x and tl.y <= br.y
            box = mask[tl.y:br.y + 1, tl.x:br.x + 1]
            assert box[0].any() and box[-1].any()
            assert box[:, 0].any() and box[:, -1].any()

    def test_diagonal_cells_join(self):
        mask = np.eye(6, dtype=bool)
        blobs = extract_blobs(MaskGrid.from_array(mask))
        assert len(blobs) == 1
        assert blobs[0].bottom_right == Point(5, 5)
        assert blobs[0].area == 6

    def test_row_major_seed_order(self):
        img = _blank(100, 60)
        _draw_square(img, 70, 20)
        _draw_square(img, 20, 20)
        _draw_square(img, 45, 45)
        blobs = find_blobs(classify_pixels(PixelImage(img)))
        assert [b.center() for b in blobs] == [Point(20, 20), Point(70, 20), Point(45, 45)]

    def test_last_cell_is_scanned(self):
        mask = np.zeros((5, 5), dtype=bool)
        mask[4, 4] = True
        blobs = extract_blobs(MaskGrid.from_array(mask))
        assert len(blobs) == 1 and blobs[0].top_left == Point(4, 4)

    def test_large_component_does_not_recurse(self):
        mask = np.ones((300, 300), dtype=bool)
        blobs = extract_blobs(MaskGrid.from_array(mask))
        assert len(blobs) == 1
        assert blobs[0].area == 300 * 300

    def test_empty_mask(self):
        assert extract_blobs(MaskGrid.from_array(np.zeros((10, 10), dtype=bool))) == []

    def test_noise_filter(self):
        assert not is_stone_shaped(_blob(5, 10)), "width must exceed the floor"
        assert not is_stone_shaped(_blob(10, 5)), "height must exceed the floor"
        assert is_stone_shaped(_blob(6, 6))
        assert not is_stone_shaped(_blob(20, 8)), "too wide for a stone"
        assert not is_stone_shaped(_blob(8, 20)), "too tall for a stone"
        assert is_stone_shaped(_blob(12, 10))


class TestBlobGeometry:
    def test_center_leans_bottom_right(self):
        blob = _blob(3, 3)
        assert blob.center() == Point(2, 2)
        assert _blob(4, 4, 10, 20).center() == Point(12, 22)

    def test_dimensions_span_inclusive_corners(self):
        blob = Blob(top_left=Point(3, 2), bottom_right=Point(6, 7), area=3)
        assert (blob.width, blob.height) == (3, 5)
        assert blob.center() == Point(5, 5)

    def test_helpers(self):
        assert abs_diff(3, 10) == abs_diff(10, 3) == 7
        assert upper_median([4, 1, 3, 2]) == 3
        assert upper_median([5, 1, 3]) == 3
        with pytest.raises(ValueError):
            upper_median([])


# ---------------------------------------------------------------------------
# Tests: stone filter
# ---------------------------------------------------------------------------


class TestStoneFilter:
    SIZES = [(10, 10), (11, 9), (10, 12), (9, 10), (30, 4), (2, 20), (14, 15), (6, 7)]

    def _accepted(self, scale: int):
        blobs = [_blob(w * scale, h * scale) for w, h in self.SIZES]
        selection = select_stones(blobs)
        return [i for i, blob in enumerate(blobs) if blob in selection.stones], selection

    def test_median_window(self):
        accepted, selection = self._accepted(1)
        assert selection.median_width == 10
        assert selection.median_height == 10
        assert selection.stone_size == 10
        # (14, 15) sits exactly on the upper height bound, which is exclusive.
        assert accepted == [0, 1, 2, 3]

    def test_scale_invariance(self):
        base, _ = self._accepted(1)
        for scale in (2, 3, 5):
            accepted, _ = self._accepted(scale)
            assert accepted == base, f"scale {scale} changed the accepted set"

    def test_preserves_order(self):
        blobs = [_blob(10, 10, x=50 - 10 * i) for i in range(5)]
        assert select_stones(blobs).stones == blobs

    def test_empty_input(self):
        with pytest.raises(ValueError):
            select_stones([])


# ---------------------------------------------------------------------------
# Tests: distance sampling
# ---------------------------------------------------------------------------


class TestDistanceSampler:
    def test_pairing_policy(self):
        centers = [Point(0, 0), Point(30, 0), Point(60, 0), Point(0, 30), Point(30, 30), Point(60, 30)]
        sample = sample_distances(centers, stone_size=9)
        assert sample.distances == [
            30, 60, 30, 30,
            30, 30, 30,
            60, 30, 60, 30, 30,
            30, 60, 30,
        ]
        assert sample.horizontal == 7
        assert sample.vertical == 8
        assert sample.spans_both_axes

    def test_single_row_has_no_vertical_samples(self):
        centers = [Point(25 + 30 * k, 25) for k in range(6)]
        sample = sample_distances(centers, stone_size=9)
        assert len(sample) > 0
        assert sample.vertical == 0
        assert not sample.spans_both_axes

    def test_small_separations_suppressed(self):
        centers = [Point(10 + k, 10 + k) for k in range(6)]
        assert len(sample_distances(centers, stone_size=9)) == 0

    def test_too_few_stones(self):
        assert len(sample_distances([Point(0, 0), Point(50, 50)], stone_size=9)) == 0


# ---------------------------------------------------------------------------
# Tests: spacing estimation
# ---------------------------------------------------------------------------


class TestSpacingEstimator:
    @pytest.mark.parametrize("initial", [24.1, 25.9])
    def test_converges_on_jittered_multiples(self, initial):
        # Odd multiples jittered by 0.29 of a unit either way, even ones exact.
        s = 25.0
        samples = []
        for k in range(1, 11):
            eps = 0.29 * s if k % 2 else 0.0
            samples.extend([k * s + eps, k * s - eps])
        estimate = estimate_spacing(samples, initial=initial)
        assert abs(estimate - s) < 1.0
        assert abs(estimate - s) < abs(initial - s), "estimate did not move towards s"

    def test_keeps_iterating_until_tolerance(self):
        samples = [30.0 * k for k in (1, 2, 3)]
        # 28 -> 30 in one step; a tight tolerance needs a second, zero-sized step.
        assert estimate_spacing(samples, initial=28.0, tolerance=0.01) == pytest.approx(30.0)

    def test_exact_multiples_are_a_fixed_point(self):
        samples = [30.0 * k for k in (1, 2, 3, 5, 8)]
        assert estimate_spacing(samples, initial=30.0) == pytest.approx(30.0)

    def test_iteration_cap(self):
        # One step moves 40 -> 50; a single allowed iteration stops there.
        assert estimate_spacing([50.0], initial=40.0, max_iterations=1) == pytest.approx(50.0)
        assert estimate_spacing([50.0], initial=40.0) == pytest.approx(50.0)

    def test_rejects_empty_sample(self):
        with pytest.raises(ValueError):
            estimate_spacing([], initial=10.0)

    def test_nearest_neighbor_distance(self):
        centers = [Point(25 + 30 * k, 25 + 30 * j) for j in range(3) for k in range(3)]
        centers.append(Point(200, 200))
        assert nearest_neighbor_distance(centers) == pytest.approx(30.0)

    def test_diagonal_neighbours_measure_one_unit(self):
        centers = [Point(30 * k, 30 * k) for k in range(6)]
        centers += [Point(30 * k + 60, 30 * k) for k in range(4)]
        assert nearest_neighbor_distance(centers) == pytest.approx(30.0)

    def test_nearest_neighbor_memory_is_linear(self):
        rng = np.random.RandomState(2)
        centers = [Point(int(x), int(y)) for x, y in rng.randint(0, 5000, size=(4000, 2))]
        tracemalloc.start()
        try:
            nearest_neighbor_distance(centers)
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()
        assert peak < 8 * 1024 * 1024, f"peak {peak / 1e6:.1f} MB"


# ---------------------------------------------------------------------------
# Tests: lattice assignment
# ---------------------------------------------------------------------------


REF = Point(400, 400)
S = 30


def _grid(radius: int = 5):
    return [
        Point(REF.x + k * S, REF.y + j * S)
        for j in range(-radius, radius + 1)
        for k in range(-radius, radius + 1)
    ]


class TestLatticeAssigner:
    def test_fit_error_values(self):
        assert fit_error(0, 0, S) == pytest.approx(0.0)
        assert fit_error(15, 15, S) == pytest.approx(1.0)
        assert fit_error(3, -3, S) == pytest.approx(0.2)
        # 7.6 and 5.2 units: 1 - |.5 - .6| - |.5 - .2|
        assert fit_error(76, 52, 10) == pytest.approx(0.6)

    def test_reference_is_closest_to_centroid(self):
        centers = [Point(0, 0), Point(100, 0), Point(0, 100), Point(100, 100), Point(45, 55)]
        assert choose_reference(centers) == 4

    def test_reference_tie_keeps_first(self):
        centers = [Point(0, 0), Point(10, 0), Point(0, 10), Point(10, 10)]
        assert choose_reference(centers) == 0

    def test_snaps_full_grid(self):
        fit = assign_lattice(_grid(), S)
        expected = {(k, j) for k in range(-5, 6) for j in range(-5, 6)}
        assert set(fit.board) == expected
        assert fit.board[(0, 0)] == REF
        assert fit.board[(-3, 2)] == Point(REF.x - 90, REF.y + 60)
        assert fit.rejected == []

    def test_rejects_far_stone(self):
        far = Point(REF.x + 21 * S, REF.y)
        fit = assign_lattice(_grid() + [far], S)
        assert fit.reference == REF
        assert (21, 0) not in fit.board
        assert far in fit.rejected

    def test_fit_error_threshold(self):
        halfway = Point(REF.x + 3 * S + 15, REF.y + 15)
        near = Point(REF.x + 3 * S + 3, REF.y + 2 * S + 3)
        fit = assign_lattice(_grid(2) + [halfway, near], S)
        assert fit.reference == REF
        assert halfway in fit.rejected
        assert fit.board[(3, 2)] == near
        assert fit.errors[(3, 2)] == pytest.approx(0.2)

    def test_collision_keeps_lower_error(self):
        exact = Point(REF.x + S, REF.y)
        nudged = Point(REF.x + S + 3, REF.y + 3)
        centers = [nudged] + _grid(2)
        fit = assign_lattice(centers, S)
        assert fit.board[(1, 0)] == exact
        assert fit.errors[(1, 0)] == pytest.approx(0.0)
        assert nudged in fit.rejected

    def test_negative_offsets(self):
        fit = assign_lattice(_grid(1), S)
        assert fit.board[(-1, -1)] == Point(REF.x - S, REF.y - S)

    def test_custom_offset_limit(self):
        cfg = ParserConfig(max_lattice_offset=3)
        fit = assign_lattice(_grid(5), S, cfg)
        assert max(abs(k) for k, _ in fit.board) == 3
        assert len(fit.board) == 49
