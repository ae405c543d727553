"""
Template-guided refinement: snap user template regions to nearby text.
"""

import logging
from typing import List, Optional

from pagesplit.config import DetectionConfig, RegionTypeConfig
from pagesplit.grouping import build_regions_from_blobs, size_score
from pagesplit.region import (AUTO_DETECTED, AUTO_DETECTED_ADDITIONAL, TEMPLATE_EXPANDED,
                              TEMPLATE_ONLY, TEMPLATE_REFINED, CandidateRegion, Rectangle,
                              TemplateRegion, TextBlob)

logger = logging.getLogger(__name__)

SOURCE_MULTIPLIERS = {
    TEMPLATE_REFINED: 1.2,
    TEMPLATE_EXPANDED: 0.8,
    AUTO_DETECTED: 1.0,
}
DEFAULT_SOURCE_MULTIPLIER = 0.9

MAX_CONFIDENCE = 0.95
# Blobs further than this from every template count as missed text
UNMATCHED_DISTANCE = 50
ADDITIONAL_PENALTY = 0.2
ADDITIONAL_FLOOR = 0.3


def find_relevant_blobs(template: Rectangle, blobs: List[TextBlob],
                        distance: float) -> List[TextBlob]:
    """Blobs overlapping the template or within `distance` of its edges."""
    return [b for b in blobs if template.is_near(b, distance)]


def adjust_boundaries(template: TemplateRegion, blobs: List[TextBlob],
                      expansion: float, keep_template_position: bool) -> Rectangle:
    """
    Fit the template around its relevant blobs.

    Args:
        template: User template region
        blobs: Relevant blobs (non-empty)
        expansion: Padding added around text, in pixels
        keep_template_position: Only grow toward blobs that stick out

    Returns:
        Adjusted rectangle (not yet clamped)
    """
    if keep_template_position:
        min_x, min_y, max_x, max_y = template.x, template.y, template.x2, template.y2
        for blob in blobs:
            if blob.x < min_x:
                min_x = blob.x - expansion
            if blob.y < min_y:
                min_y = blob.y - expansion
            if blob.x2 > max_x:
                max_x = blob.x2 + expansion
            if blob.y2 > max_y:
                max_y = blob.y2 + expansion
        return Rectangle.from_bounds(min_x, min_y, max_x, max_y)

    return Rectangle.union([template] + list(blobs)).padded(expansion)


def enforce_min_size(box: Rectangle, min_width: float, min_height: float,
                     image_w: float, image_h: float) -> Rectangle:
    """Grow symmetrically around the center up to the minimum size."""
    cx, cy = box.center
    width = max(box.width, min_width)
    height = max(box.height, min_height)
    grown = Rectangle(cx - width / 2, cy - height / 2, width, height)
    return grown.clamped(image_w, image_h)


def violates_ratios(box: Rectangle, type_config: Optional[RegionTypeConfig],
                    image_w: float, image_h: float) -> bool:
    if type_config is None:
        return False

    width_ratio = box.width / image_w if image_w > 0 else 0.0
    height_ratio = box.height / image_h if image_h > 0 else 0.0

    if type_config.max_width_ratio is not None and width_ratio > type_config.max_width_ratio:
        return True
    if type_config.min_width_ratio is not None and width_ratio < type_config.min_width_ratio:
        return True
    if type_config.max_height_ratio is not None and height_ratio > type_config.max_height_ratio:
        return True
    if type_config.min_height_ratio is not None and height_ratio < type_config.min_height_ratio:
        return True
    return False


def region_confidence(box: Rectangle, blobs: List[TextBlob],
                      type_config: Optional[RegionTypeConfig], source: str) -> float:
    """
    Score a refined region from the text it encloses.

    Coverage is blob-box area over region area, density is ink pixels over
    blob-box area. Regions below the type's required text density get the
    type's floor; otherwise the weighted score is scaled by the source
    multiplier and clamped to [floor, 0.95].
    """
    floor = type_config.min_confidence if type_config is not None else 0.1
    floor = floor or 0.1

    region_area = box.area
    text_area = sum(b.area for b in blobs)
    pixel_count = sum(b.pixel_count for b in blobs)

    coverage = min(1.0, text_area / region_area) if region_area > 0 else 0.0
    density = pixel_count / text_area if text_area > 0 else 0.0

    required = type_config.require_text_density if type_config is not None else None
    if required is not None and density < required:
        return floor

    score = 0.4 * coverage + 0.3 * min(1.0, density) + 0.3 * size_score(region_area)
    score *= SOURCE_MULTIPLIERS.get(source, DEFAULT_SOURCE_MULTIPLIER)
    return max(floor, min(MAX_CONFIDENCE, score))


def refine_template(template: TemplateRegion, blobs: List[TextBlob],
                    image_w: float, image_h: float,
                    config: DetectionConfig) -> Optional[CandidateRegion]:
    """
    Refine one template region.

    Returns:
        The refined candidate, the unchanged template as `template_only`
        when no text is near it and adherence is high, or None when the
        template is dropped or rejected by its ratio bounds.
    """
    type_config = config.type_config(template.type)
    expansion = config.boundary_expansion_for(template.type)
    adherence = config.template_adherence

    relevant = find_relevant_blobs(template, blobs, expansion)

    if not relevant:
        if adherence <= 0.5:
            return None
        min_confidence = type_config.min_confidence if type_config is not None else None
        return CandidateRegion(
            x=template.x, y=template.y, width=template.width, height=template.height,
            type=template.type,
            confidence=max(0.1, min_confidence or 0.2),
            source=TEMPLATE_ONLY,
            template=template,
        )

    prefer_position = bool(type_config is not None and type_config.prefer_template_position)
    box = adjust_boundaries(template, relevant, expansion,
                            keep_template_position=prefer_position and adherence > 0.5)
    box = box.clamped(image_w, image_h)

    if type_config is not None and type_config.allow_height_adjustment is False:
        fixed = template.clamped(image_w, image_h)
        box = Rectangle(box.x, fixed.y, box.width, fixed.height)

    min_width = type_config.min_width if type_config is not None else 20
    min_height = type_config.min_height if type_config is not None else 10
    box = enforce_min_size(box, min_width, min_height, image_w, image_h)

    if box.area <= 0 or violates_ratios(box, type_config, image_w, image_h):
        logger.debug("Rejected %s candidate %s", template.type, box)
        return None

    return CandidateRegion(
        x=box.x, y=box.y, width=box.width, height=box.height,
        type=template.type,
        confidence=region_confidence(box, relevant, type_config, TEMPLATE_REFINED),
        source=TEMPLATE_REFINED,
        template=template,
    )


def find_unmatched_blobs(templates: List[TemplateRegion], blobs: List[TextBlob],
                         distance: float = UNMATCHED_DISTANCE) -> List[TextBlob]:
    return [b for b in blobs if not any(t.is_near(b, distance) for t in templates)]


def refine_templates(templates: List[TemplateRegion], blobs: List[TextBlob],
                     image_w: float, image_h: float,
                     config: DetectionConfig) -> List[CandidateRegion]:
    """
    Refine every template, then recover text the templates missed.

    Templates are processed independently in input order. When template
    adherence is below 0.8, blobs far from every template are grouped
    into `auto_detected_additional` regions with reduced confidence.

    Args:
        templates: User template regions
        blobs: Text blobs of the page
        image_w: Page width in pixels
        image_h: Page height in pixels
        config: Detection configuration

    Returns:
        Candidate regions, refined templates first
    """
    candidates = []
    for template in templates:
        candidate = refine_template(template, blobs, image_w, image_h, config)
        if candidate is not None:
            candidates.append(candidate)

    if config.template_adherence < 0.8:
        unmatched = find_unmatched_blobs(templates, blobs)
        if unmatched:
            extra = build_regions_from_blobs(unmatched, image_w, image_h,
                                             config.max_group_distance,
                                             source=AUTO_DETECTED_ADDITIONAL)
            candidates.extend(
                r.with_confidence(max(ADDITIONAL_FLOOR, r.confidence - ADDITIONAL_PENALTY))
                for r in extra
            )
            logger.debug("Recovered %d additional regions from %d unmatched blobs",
                         len(extra), len(unmatched))

    return candidates
