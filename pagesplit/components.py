"""
Connected-component extraction of ink blobs from a binary page image.
"""

import logging
from typing import List

import cv2
import numpy as np

from pagesplit.preprocessing import INK
from pagesplit.region import TextBlob

logger = logging.getLogger(__name__)

DEFAULT_MIN_PIXELS = 200
DEFAULT_STRIDE = 5


def label_components(binary: np.ndarray):
    """
    Label 8-connected ink components.

    Args:
        binary: Binary image (0=ink, 255=background)

    Returns:
        Tuple of (num_labels, labels, stats) as returned by OpenCV;
        label 0 is the background.
    """
    ink = (binary == INK).astype(np.uint8)
    num_labels, labels, stats, _ = cv2.connectedComponentsWithStats(ink, connectivity=8)
    return num_labels, labels, stats


def seeded_labels(labels: np.ndarray, stride: int) -> np.ndarray:
    """
    Labels hit by the sampling grid (every `stride`-th pixel on both axes).

    A component with no pixel on the grid is never seeded, which is the
    recall trade-off of sampled seeding; stride=1 scans every pixel.
    """
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")

    hits = np.unique(labels[::stride, ::stride])
    return hits[hits != 0]


def extract_blobs(binary: np.ndarray,
                  min_pixel_count: int = DEFAULT_MIN_PIXELS,
                  stride: int = DEFAULT_STRIDE) -> List[TextBlob]:
    """
    Find text blobs in a binary image.

    Each seeded component whose pixel count exceeds `min_pixel_count`
    becomes one TextBlob; no pixel is shared between blobs.

    Args:
        binary: Binary image (0=ink, 255=background)
        min_pixel_count: Components with this many pixels or fewer are noise
        stride: Seed sampling step in pixels

    Returns:
        List of TextBlob in label order
    """
    if binary.size == 0:
        return []

    num_labels, labels, stats = label_components(binary)
    if num_labels <= 1:
        return []

    blobs = []
    for label in seeded_labels(labels, stride):
        x, y, w, h, area = (int(v) for v in stats[label])
        if area <= min_pixel_count:
            continue
        blobs.append(TextBlob(x=x, y=y, width=w, height=h, pixel_count=area))

    logger.debug("Found %d text blobs out of %d components (stride=%d, min=%d)",
                 len(blobs), num_labels - 1, stride, min_pixel_count)
    return blobs
