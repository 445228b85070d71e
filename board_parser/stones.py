"""Pick the blobs that look like black stones.

In a late-game photograph stones dominate the dark pixel mass, so the median
blob width and height are a robust estimate of one stone. Anything well
outside that size (letters, shadows, the board edge) is dropped.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .config import ParserConfig
from .geometry import Blob, upper_median

logger = logging.getLogger(__name__)


@dataclass
class StoneSelection:
    """Accepted blobs and the size estimate they were judged against."""

    stone_size: float
    median_width: float
    median_height: float
    stones: List[Blob]


def _within(value: float, reference: float, low: float, high: float) -> bool:
    return low * reference < value < high * reference


def select_stones(blobs: List[Blob], config: Optional[ParserConfig] = None) -> StoneSelection:
    """Keep blobs whose width and height sit inside the tolerance window.

    Order of ``blobs`` is preserved; later stages rely on it.
    """
    config = config or ParserConfig()
    if not blobs:
        raise ValueError("Cannot select stones from an empty blob list.")
    low, high = config.size_tolerance

    median_width = float(upper_median([blob.width for blob in blobs]))
    median_height = float(upper_median([blob.height for blob in blobs]))

    stones = [
        blob
        for blob in blobs
        if _within(blob.width, median_width, low, high)
        and _within(blob.height, median_height, low, high)
    ]
    stone_size = (median_width + median_height) / 2.0
    logger.debug(
        "Median blob %.1fx%.1f px, %d of %d blobs accepted as stones",
        median_width, median_height, len(stones), len(blobs),
    )
    return StoneSelection(
        stone_size=stone_size,
        median_width=median_width,
        median_height=median_height,
        stones=stones,
    )
