"""
Black stone lattice reconstruction from a single board photograph.

The pipeline runs four stages:
1. Classify pixels into dark achromatic stone material
2. Extract 8-connected blobs and keep the stone-sized ones
3. Estimate the intersection spacing from stone-to-stone separations
4. Snap every stone onto integer lattice coordinates around a reference stone

A photo the pipeline cannot make sense of yields no board rather than an
exception; see :class:`NoBoardReason` for the ways that happens.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from PIL import Image

from .blobs import find_blobs
from .config import ParserConfig
from .geometry import BoardMap, Point
from .image import PixelImage
from .lattice import (
    assign_lattice,
    estimate_spacing,
    nearest_neighbor_distance,
    sample_distances,
)
from .mask import classify_pixels
from .stones import select_stones

logger = logging.getLogger(__name__)

ImageLike = Union[PixelImage, np.ndarray, Image.Image]


class NoBoardReason(str, Enum):
    NO_CANDIDATE_PIXELS = "no_candidate_pixels"
    TOO_FEW_STONES = "too_few_stones"
    DEGENERATE_GEOMETRY = "degenerate_geometry"


class NoBoardDetected(Exception):
    """The photo does not contain a board the lattice can be fitted to."""

    def __init__(self, reason: NoBoardReason, message: str):
        super().__init__(message)
        self.reason = reason


@dataclass
class BoardReading:
    """Everything the pipeline learned about one photo."""

    board: BoardMap
    spacing: float
    stone_size: float
    reference: Point
    stones: List[Point] = field(default_factory=list)
    rejected: List[Point] = field(default_factory=list)
    errors: Dict[Tuple[int, int], float] = field(default_factory=dict)


class BoardParser:
    """Reconstructs the black stone lattice of a board photograph."""

    def __init__(self, config: Optional[ParserConfig] = None, debug_sink=None):
        """
        Args:
            config: Thresholds; defaults match the tuned constants.
            debug_sink: Optional :class:`board_parser.debug.DebugSink`. When
                omitted and ``config.debug_dir`` is set, one is created there.
        """
        self.config = (config or ParserConfig()).validate()
        if debug_sink is None and self.config.debug_dir is not None:
            from .debug import DebugSink

            debug_sink = DebugSink(self.config.debug_dir)
        self.debug_sink = debug_sink
        self.last_metrics: Optional[dict] = None

    def run(self, image: ImageLike) -> Optional[BoardMap]:
        """Return the board map, or ``None`` when no board is detected."""
        try:
            return self.read(image).board
        except NoBoardDetected as exc:
            logger.info("No board detected (%s): %s", exc.reason.value, exc)
            return None

    def read(self, image: ImageLike) -> BoardReading:
        """Run the full pipeline.

        Raises:
            NoBoardDetected: the photo yields no usable lattice.
        """
        image = PixelImage.coerce(image)
        metrics: dict = {
            "width": image.width,
            "height": image.height,
            "candidate_pixels": 0,
            "blobs": 0,
            "stones": 0,
            "stone_size": None,
            "samples": 0,
            "spacing": None,
            "mapped": 0,
            "failure": None,
        }
        self.last_metrics = metrics
        try:
            reading = self._read(image, metrics)
        except NoBoardDetected as exc:
            metrics["failure"] = exc.reason.value
            raise
        if self.debug_sink is not None:
            self.debug_sink.board(image, reading)
        return reading

    # ------------------------- stages ---------------------------

    def _read(self, image: PixelImage, metrics: dict) -> BoardReading:
        config = self.config

        mask = classify_pixels(image, config)
        metrics["candidate_pixels"] = mask.count()
        if self.debug_sink is not None:
            self.debug_sink.pixels(mask)
        if metrics["candidate_pixels"] == 0:
            raise NoBoardDetected(NoBoardReason.NO_CANDIDATE_PIXELS, "No stone-coloured pixels")

        blobs = find_blobs(mask, config)
        metrics["blobs"] = len(blobs)
        if not blobs:
            raise NoBoardDetected(NoBoardReason.TOO_FEW_STONES, "No stone-shaped blobs")

        selection = select_stones(blobs, config)
        metrics["stones"] = len(selection.stones)
        metrics["stone_size"] = selection.stone_size
        if self.debug_sink is not None:
            self.debug_sink.stones(image.width, image.height, selection.stones)
        if len(selection.stones) < config.min_stones:
            raise NoBoardDetected(
                NoBoardReason.TOO_FEW_STONES,
                f"Found {len(selection.stones)} stones, need {config.min_stones}",
            )
        if selection.stone_size <= 0:
            raise NoBoardDetected(
                NoBoardReason.DEGENERATE_GEOMETRY, f"Stone size {selection.stone_size} px"
            )

        # From here on only the centres matter.
        centers = [blob.center() for blob in selection.stones]
        spacing = self._estimate_spacing(centers, selection.stone_size, metrics)

        fit = assign_lattice(centers, spacing, config)
        metrics["mapped"] = len(fit.board)
        if len(fit.board) < config.min_stones:
            raise NoBoardDetected(
                NoBoardReason.TOO_FEW_STONES,
                f"Only {len(fit.board)} stones fit the lattice, need {config.min_stones}",
            )
        return BoardReading(
            board=fit.board,
            spacing=spacing,
            stone_size=selection.stone_size,
            reference=fit.reference,
            stones=centers,
            rejected=fit.rejected,
            errors=fit.errors,
        )

    def _estimate_spacing(self, centers: List[Point], stone_size: float, metrics: dict) -> float:
        config = self.config
        sample = sample_distances(centers, stone_size)
        metrics["samples"] = len(sample)
        if not sample.distances:
            raise NoBoardDetected(NoBoardReason.DEGENERATE_GEOMETRY, "Every stone pair was suppressed")
        if not sample.spans_both_axes:
            raise NoBoardDetected(
                NoBoardReason.DEGENERATE_GEOMETRY,
                f"Stones span one axis only ({sample.horizontal} horizontal, "
                f"{sample.vertical} vertical separations)",
            )

        seed = stone_size
        if config.seed_from_neighbors:
            seed = max(stone_size, nearest_neighbor_distance(centers))
        spacing = estimate_spacing(
            sample.distances,
            seed,
            tolerance=config.spacing_tolerance,
            max_iterations=config.max_spacing_iterations,
        )
        metrics["spacing"] = spacing
        if spacing <= 0:
            raise NoBoardDetected(NoBoardReason.DEGENERATE_GEOMETRY, f"Spacing {spacing:.3f} px")
        logger.debug("Two stones are neighbours approx. %.2f px apart", spacing)
        return spacing


def read_board(image: ImageLike, config: Optional[ParserConfig] = None) -> BoardReading:
    """Run the pipeline once; raises :class:`NoBoardDetected` on failure."""
    return BoardParser(config).read(image)


def board_map(image: ImageLike, config: Optional[ParserConfig] = None) -> Optional[BoardMap]:
    """Lattice coordinates -> stone pixel centres, or ``None`` when no board is found."""
    return BoardParser(config).run(image)
