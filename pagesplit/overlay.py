"""
Draw detected regions over the page for visual inspection.
"""

from typing import Iterable

import cv2
import numpy as np

from pagesplit.region import FOOTER, HEADER, LEFT_MARGIN, LEFT_TEXT, RIGHT_MARGIN, RIGHT_TEXT

# RGB, matching load_image
COLOR_MAP = {
    LEFT_MARGIN: (220, 140, 40),
    RIGHT_MARGIN: (220, 90, 160),
    LEFT_TEXT: (50, 180, 50),
    RIGHT_TEXT: (40, 140, 220),
    HEADER: (220, 50, 50),
    FOOTER: (130, 60, 200),
}
DEFAULT_COLOR = (150, 150, 150)


def draw_overlay(image: np.ndarray, regions: Iterable, show_confidence: bool = True) -> np.ndarray:
    """
    Draw region rectangles and labels on a copy of the image.

    Args:
        image: Grayscale, RGB or RGBA page
        regions: Regions with x, y, width, height, type (and optionally confidence)
        show_confidence: Append the confidence to the label when available

    Returns:
        RGB image with the overlay
    """
    out = image.copy()
    if out.ndim == 2:
        out = cv2.cvtColor(out, cv2.COLOR_GRAY2RGB)
    elif out.shape[2] == 4:
        out = cv2.cvtColor(out, cv2.COLOR_RGBA2RGB)
    out = np.ascontiguousarray(out)

    for r in regions:
        c = COLOR_MAP.get(r.type, DEFAULT_COLOR)
        x1, y1 = int(round(r.x)), int(round(r.y))
        x2, y2 = int(round(r.x2)), int(round(r.y2))
        cv2.rectangle(out, (x1, y1), (x2, y2), c, 2)

        label = r.type or "region"
        confidence = getattr(r, 'confidence', None)
        if show_confidence and confidence is not None:
            label = f"{label} {confidence:.2f}"
        cv2.putText(out, label, (x1 + 3, y1 + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.45, c, 1, cv2.LINE_AA)

    return out
