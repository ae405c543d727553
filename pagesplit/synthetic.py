"""
Generate synthetic two-column pages with known regions.

Words are drawn as filled dark bars, large enough to survive the default
noise filter, inside a fixed layout: header, footer, two text columns and
a narrow note margin on each side. The layout boxes double as the ideal
regions for sweeps and tests.
"""

import json
import random
from typing import List, Optional, Tuple

import cv2
import numpy as np

from pagesplit.region import (FOOTER, HEADER, LEFT_MARGIN, LEFT_TEXT, RIGHT_MARGIN, RIGHT_TEXT,
                              TemplateRegion)

INK_COLOR = (30, 30, 30)
WORD_HEIGHT = 8
LINE_SPACING = 14
WORD_GAP = 8

# (type, x0, y0, x1, y1) as fractions of the page size
LAYOUT = [
    (HEADER, 0.1125, 0.02, 0.8875, 0.06),
    (LEFT_MARGIN, 0.0125, 0.1, 0.0875, 0.9),
    (LEFT_TEXT, 0.1125, 0.1, 0.475, 0.9),
    (RIGHT_TEXT, 0.525, 0.1, 0.8875, 0.9),
    (RIGHT_MARGIN, 0.9125, 0.1, 0.9875, 0.9),
    (FOOTER, 0.1125, 0.94, 0.8875, 0.98),
]


def layout_regions(width: int, height: int) -> List[TemplateRegion]:
    """Ideal regions of a generated page, in pixel coordinates."""
    regions = []
    for region_type, fx0, fy0, fx1, fy1 in LAYOUT:
        x0, y0 = int(round(fx0 * width)), int(round(fy0 * height))
        x1, y1 = int(round(fx1 * width)), int(round(fy1 * height))
        regions.append(TemplateRegion(x0, y0, x1 - x0, y1 - y0, type=region_type))
    return regions


def _draw_words(img: np.ndarray, region: TemplateRegion, rng: random.Random,
                min_word: int, max_word: int, row_fill: float):
    x0, y0 = int(region.x), int(region.y)
    x1, y1 = int(region.x2), int(region.y2)

    y = y0
    while y + WORD_HEIGHT <= y1:
        if rng.random() < row_fill:
            x = x0
            while True:
                w = rng.randint(min_word, max_word)
                if x + w > x1:
                    break
                cv2.rectangle(img, (x, y), (x + w - 1, y + WORD_HEIGHT - 1), INK_COLOR, -1)
                x += w + WORD_GAP
        y += LINE_SPACING


def generate_synthetic_page(width: int = 800, height: int = 1000,
                            seed: Optional[int] = None) -> Tuple[np.ndarray, List[TemplateRegion]]:
    """
    Render a synthetic page.

    Args:
        width: Page width in pixels
        height: Page height in pixels
        seed: Seed for the word layout; the same seed gives the same page

    Returns:
        Tuple of (RGB uint8 image, ideal regions)
    """
    rng = random.Random(seed)
    img = np.full((height, width, 3), 255, dtype=np.uint8)
    regions = layout_regions(width, height)

    for region in regions:
        if region.type in (LEFT_MARGIN, RIGHT_MARGIN):
            # Sparse notes
            _draw_words(img, region, rng, 30, 40, row_fill=0.3)
        elif region.type in (HEADER, FOOTER):
            _draw_words(img, region, rng, 40, 90, row_fill=1.0)
        else:
            # Occasional blank line between paragraphs
            _draw_words(img, region, rng, 30, 80, row_fill=0.9)

    return img, regions


def save_regions(regions: List[TemplateRegion], path: str):
    with open(path, 'w') as f:
        json.dump([r.to_dict() for r in regions], f, indent=2)
