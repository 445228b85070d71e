"""Connected-component extraction over the stone pixel mask.

Components are 8-connected and labelled by OpenCV. Blobs come back in the
row-major order of their first cell, the order a top-to-bottom scan of the
mask would discover them in.
"""

import logging
from typing import List, Optional

import cv2
import numpy as np

from .config import ParserConfig
from .geometry import Blob, Point
from .mask import MaskGrid

logger = logging.getLogger(__name__)


def extract_blobs(mask: MaskGrid) -> List[Blob]:
    """Return one bounding box per 8-connected component, in row-major seed order.

    ``mask`` is consumed: every set cell is cleared on return.
    """
    cells = mask.to_array().astype(np.uint8)
    _, labels, stats, _ = cv2.connectedComponentsWithStats(cells, connectivity=8)

    # Label 0 is the background; OpenCV's numbering is not scan order.
    found, first = np.unique(labels.ravel(), return_index=True)
    keep = found != 0
    order = found[keep][np.argsort(first[keep], kind="stable")]

    blobs: List[Blob] = []
    for label in order:
        left, top, width, height, area = (int(v) for v in stats[label])
        blobs.append(
            Blob(
                top_left=Point(left, top),
                bottom_right=Point(left + width - 1, top + height - 1),
                area=area,
            )
        )
    mask.clear_all()
    return blobs


def is_stone_shaped(blob: Blob, config: Optional[ParserConfig] = None) -> bool:
    """Drop specks and slivers: both sides above the floor, roughly square."""
    config = config or ParserConfig()
    low, high = config.size_tolerance
    w, h = blob.width, blob.height
    return (
        w > config.min_stone_size
        and h > config.min_stone_size
        and low * h < w < high * h
    )


def find_blobs(mask: MaskGrid, config: Optional[ParserConfig] = None) -> List[Blob]:
    """Extract blobs from ``mask`` and discard noise."""
    config = config or ParserConfig()
    blobs = extract_blobs(mask)
    kept = [blob for blob in blobs if is_stone_shaped(blob, config)]
    logger.debug("Extracted %d blobs, %d after noise filter", len(blobs), len(kept))
    return kept
