"""
Grouping of text blobs into candidate regions when no template is given.
"""

import logging
import math
from dataclasses import dataclass
from typing import List

from pagesplit.region import (AUTO_DETECTED, FOOTER, HEADER, LEFT_MARGIN, LEFT_TEXT,
                              RIGHT_MARGIN, RIGHT_TEXT, CandidateRegion, Rectangle,
                              TextBlob)

logger = logging.getLogger(__name__)

# Blobs whose top or left edges are this close are treated as aligned
ALIGN_TOLERANCE = 20
REGION_PADDING = 5


@dataclass
class BlobGroup:
    """Blobs merged around a seed blob."""

    blobs: List[TextBlob]

    @property
    def bounds(self) -> Rectangle:
        return Rectangle.union(self.blobs)

    @property
    def pixel_count(self) -> int:
        return sum(b.pixel_count for b in self.blobs)

    @property
    def density(self) -> float:
        area = self.bounds.area
        return self.pixel_count / area if area > 0 else 0.0


def is_aligned(a: Rectangle, b: Rectangle, tolerance: float = ALIGN_TOLERANCE) -> bool:
    """Same text row (near-equal top) or same column (near-equal left)."""
    return abs(a.y - b.y) < tolerance or abs(a.x - b.x) < tolerance


def group_blobs(blobs: List[TextBlob], max_distance: float = 80) -> List[BlobGroup]:
    """
    Greedily group blobs around seeds, largest blob first.

    A blob joins the current seed's group when its center is closer than
    `max_distance` to the seed center, or when it is row/column aligned
    with the seed. Every blob ends up in exactly one group.

    Args:
        blobs: Text blobs from the component extractor
        max_distance: Center-to-center distance threshold in pixels

    Returns:
        List of groups, in seed order
    """
    ordered = sorted(blobs, key=lambda b: b.area, reverse=True)
    used = [False] * len(ordered)
    groups = []

    for i, seed in enumerate(ordered):
        if used[i]:
            continue
        used[i] = True
        members = [seed]

        for j in range(i + 1, len(ordered)):
            if used[j]:
                continue
            other = ordered[j]
            if seed.center_distance(other) < max_distance or is_aligned(seed, other):
                used[j] = True
                members.append(other)

        groups.append(BlobGroup(blobs=members))

    return groups


def guess_region_type(rect: Rectangle, image_w: float, image_h: float) -> str:
    """
    Guess a region type from its position and shape on the page.

    Wide bands near the top or bottom are header/footer, tall narrow
    strips near an edge are margins, everything else is a text column
    split at the page middle.
    """
    center_x, center_y = rect.center
    aspect = rect.aspect_ratio

    if center_y < image_h * 0.2 and aspect > 2:
        return HEADER
    if center_y > image_h * 0.8 and aspect > 2:
        return FOOTER

    narrow_and_tall = rect.width < image_w * 0.3 and rect.height > image_h * 0.3
    if narrow_and_tall and center_x < image_w * 0.3:
        return LEFT_MARGIN
    if narrow_and_tall and center_x > image_w * 0.7:
        return RIGHT_MARGIN

    return LEFT_TEXT if center_x < image_w * 0.5 else RIGHT_TEXT


def size_score(area: float) -> float:
    return min(1.0, math.sqrt(area) / 200) if area > 0 else 0.0


def group_confidence(group: BlobGroup) -> float:
    """Mean of density, size and blob-count scores, kept within [0.1, 0.9]."""
    density_score = min(1.0, group.density * 10)
    count_score = min(1.0, len(group.blobs) / 5)
    score = (density_score + size_score(group.bounds.area) + count_score) / 3
    return max(0.1, min(0.9, score))


def build_regions_from_blobs(blobs: List[TextBlob], image_w: float, image_h: float,
                             max_distance: float = 80,
                             source: str = AUTO_DETECTED) -> List[CandidateRegion]:
    """
    Turn blobs into typed, scored candidate regions.

    Args:
        blobs: Text blobs
        image_w: Page width in pixels
        image_h: Page height in pixels
        max_distance: Grouping distance, see group_blobs
        source: Source tag for the created candidates

    Returns:
        One padded, clamped candidate per group
    """
    groups = group_blobs(blobs, max_distance)
    regions = []

    for group in groups:
        bounds = group.bounds
        box = bounds.padded(REGION_PADDING).clamped(image_w, image_h)
        if box.area <= 0:
            continue
        regions.append(CandidateRegion(
            x=box.x, y=box.y, width=box.width, height=box.height,
            type=guess_region_type(bounds, image_w, image_h),
            confidence=group_confidence(group),
            source=source,
        ))

    logger.debug("Grouped %d blobs into %d regions", len(blobs), len(regions))
    return regions
