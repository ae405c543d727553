"""
Region dataclasses for page region detection.
Rectangles, text blobs, template regions and scored candidate regions.
"""

import math
from dataclasses import dataclass, field, replace
from typing import List, Mapping, Optional


# Well-known region type tags. Any other string is a user-defined type.
LEFT_MARGIN = "left-margin"
RIGHT_MARGIN = "right-margin"
LEFT_TEXT = "left-text"
RIGHT_TEXT = "right-text"
HEADER = "header"
FOOTER = "footer"

REGION_TYPES = (LEFT_MARGIN, RIGHT_MARGIN, LEFT_TEXT, RIGHT_TEXT, HEADER, FOOTER)

# Candidate sources
TEMPLATE_REFINED = "template_refined"
TEMPLATE_EXPANDED = "template_expanded"
TEMPLATE_ONLY = "template_only"
AUTO_DETECTED = "auto_detected"
AUTO_DETECTED_ADDITIONAL = "auto_detected_additional"


@dataclass
class Rectangle:
    """Axis-aligned rectangle in image pixel coordinates."""

    x: float  # Top-left x coordinate
    y: float  # Top-left y coordinate
    width: float
    height: float

    @classmethod
    def from_bounds(cls, min_x: float, min_y: float,
                    max_x: float, max_y: float) -> 'Rectangle':
        """Build from exclusive max bounds."""
        return cls(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)

    @classmethod
    def from_dict(cls, data: Mapping) -> 'Rectangle':
        return cls(**_rect_fields(data))

    @property
    def x2(self) -> float:
        """Right edge x coordinate."""
        return self.x + self.width

    @property
    def y2(self) -> float:
        """Bottom edge y coordinate."""
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> tuple:
        """Center point (cx, cy)."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def aspect_ratio(self) -> float:
        """Width to height ratio. Returns inf if height is 0."""
        return self.width / self.height if self.height > 0 else float('inf')

    def overlaps(self, other: 'Rectangle', padding: float = 0) -> bool:
        """
        Check if this rectangle overlaps with another.

        Args:
            other: Another rectangle
            padding: Expand both rectangles by padding pixels before checking

        Returns:
            True if the rectangles overlap
        """
        return not (self.x2 + padding <= other.x - padding or
                    other.x2 + padding <= self.x - padding or
                    self.y2 + padding <= other.y - padding or
                    other.y2 + padding <= self.y - padding)

    def intersection_area(self, other: 'Rectangle') -> float:
        inter_w = min(self.x2, other.x2) - max(self.x, other.x)
        inter_h = min(self.y2, other.y2) - max(self.y, other.y)
        if inter_w <= 0 or inter_h <= 0:
            return 0
        return inter_w * inter_h

    def iou(self, other: 'Rectangle') -> float:
        """
        Calculate Intersection over Union (IoU) with another rectangle.

        Returns:
            IoU score between 0 and 1, 0 when they do not overlap
        """
        intersection = self.intersection_area(other)
        if intersection == 0:
            return 0.0

        union = self.area + other.area - intersection
        return intersection / union if union > 0 else 0.0

    def center_distance(self, other: 'Rectangle') -> float:
        """Euclidean distance between the two centers."""
        cx1, cy1 = self.center
        cx2, cy2 = other.center
        return math.hypot(cx1 - cx2, cy1 - cy2)

    def gap_distance(self, other: 'Rectangle') -> float:
        """Edge-to-edge distance; 0 when the rectangles touch or overlap."""
        dx = max(other.x - self.x2, self.x - other.x2, 0)
        dy = max(other.y - self.y2, self.y - other.y2, 0)
        return math.hypot(dx, dy)

    def is_near(self, other: 'Rectangle', distance: float) -> bool:
        return self.overlaps(other) or self.gap_distance(other) <= distance

    def padded(self, padding: float) -> 'Rectangle':
        return Rectangle(self.x - padding, self.y - padding,
                         self.width + 2 * padding, self.height + 2 * padding)

    def clamped(self, image_w: float, image_h: float) -> 'Rectangle':
        """Clip to [0, image_w] x [0, image_h]."""
        min_x = min(max(self.x, 0), image_w)
        min_y = min(max(self.y, 0), image_h)
        max_x = min(max(self.x2, 0), image_w)
        max_y = min(max(self.y2, 0), image_h)
        return Rectangle.from_bounds(min_x, min_y, max(min_x, max_x), max(min_y, max_y))

    def normalized(self) -> 'Rectangle':
        """Flip negative width/height so the rectangle is well formed."""
        x, y, w, h = self.x, self.y, self.width, self.height
        if w < 0:
            x, w = x + w, -w
        if h < 0:
            y, h = y + h, -h
        return Rectangle(x, y, w, h)

    def scaled(self, scale: float) -> 'Rectangle':
        return Rectangle(self.x * scale, self.y * scale,
                         self.width * scale, self.height * scale)

    def is_within(self, image_w: float, image_h: float) -> bool:
        """True for a non-empty rectangle fully inside the image."""
        return (self.x >= 0 and self.y >= 0 and
                self.width > 0 and self.height > 0 and
                self.x2 <= image_w and self.y2 <= image_h)

    def bounds(self) -> 'Rectangle':
        """Plain geometry copy, dropping any subclass payload."""
        return Rectangle(self.x, self.y, self.width, self.height)

    @staticmethod
    def union(rects: List['Rectangle']) -> 'Rectangle':
        """
        Bounding box of several rectangles.

        Raises:
            ValueError: for an empty list
        """
        if not rects:
            raise ValueError("Cannot merge empty list of rectangles")

        return Rectangle.from_bounds(
            min(r.x for r in rects),
            min(r.y for r in rects),
            max(r.x2 for r in rects),
            max(r.y2 for r in rects),
        )

    def to_dict(self) -> dict:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass
class TextBlob(Rectangle):
    """Connected ink component with its bounding box."""

    pixel_count: int = 0

    @property
    def density(self) -> float:
        return self.pixel_count / self.area if self.area > 0 else 0.0


@dataclass
class TemplateRegion(Rectangle):
    """User-drawn region with a type tag."""

    type: str = "unknown"

    @classmethod
    def from_dict(cls, data: Mapping) -> 'TemplateRegion':
        region_type = data.get('type', data.get('label')) or "unknown"
        return cls(type=str(region_type), **_rect_fields(data))

    def to_dict(self) -> dict:
        d = super().to_dict()
        d['type'] = self.type
        return d


@dataclass
class CandidateRegion(Rectangle):
    """Scored region proposed by the detector."""

    type: str = "unknown"
    confidence: float = 0.0
    source: str = AUTO_DETECTED
    template: Optional[TemplateRegion] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping) -> 'CandidateRegion':
        return cls(
            type=str(data.get('type', data.get('label')) or "unknown"),
            confidence=float(data.get('confidence', 0.0)),
            source=str(data.get('source', AUTO_DETECTED)),
            **_rect_fields(data),
        )

    def with_confidence(self, confidence: float) -> 'CandidateRegion':
        return replace(self, confidence=confidence)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d.update({'type': self.type, 'confidence': self.confidence, 'source': self.source})
        return d


def _rect_fields(data: Mapping) -> dict:
    """Read x/y/width/height, also accepting the w/h shorthand."""
    width = data.get('width', data.get('w', 0))
    height = data.get('height', data.get('h', 0))
    return {
        'x': _number(data.get('x', 0)),
        'y': _number(data.get('y', 0)),
        'width': _number(width),
        'height': _number(height),
    }


def _number(value):
    value = float(value)
    return int(value) if value.is_integer() else value
