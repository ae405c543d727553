"""
Main pipeline for page region detection.
Integrates all steps: thresholding, blob extraction, template refinement
or grouping, and final scoring.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Union

import numpy as np

from pagesplit.components import extract_blobs
from pagesplit.config import DetectionConfig
from pagesplit.grouping import build_regions_from_blobs
from pagesplit.merge import finalize
from pagesplit.preprocessing import binarize, to_grayscale
from pagesplit.refine import refine_templates
from pagesplit.region import CandidateRegion, TemplateRegion

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Outcome of one detection run; check `success` before using regions."""

    success: bool
    regions: List[CandidateRegion] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.success:
            return {'success': False, 'error': self.error, 'regions': []}
        return {
            'success': True,
            'regions': [r.to_dict() for r in self.regions],
            'metadata': self.metadata,
        }


def _as_config(config: Union[DetectionConfig, Mapping, None]) -> DetectionConfig:
    if isinstance(config, DetectionConfig):
        return config
    return DetectionConfig.from_dict(config)


def _as_templates(template_regions: Optional[Sequence]) -> List[TemplateRegion]:
    templates = []
    for region in template_regions or []:
        if not isinstance(region, TemplateRegion):
            region = TemplateRegion.from_dict(region)
        templates.append(region)
    return templates


def auto_detect_regions(image: np.ndarray,
                        template_regions: Optional[Sequence] = None,
                        config: Union[DetectionConfig, Mapping, None] = None) -> DetectionResult:
    """
    Complete region detection pipeline.

    Args:
        image: Page raster (grayscale, RGB or RGBA array)
        template_regions: TemplateRegion objects or their JSON dicts;
            empty or None runs pure text-based grouping
        config: DetectionConfig, a JSON-shaped mapping, or None for defaults

    Returns:
        DetectionResult; faults are reported with success=False rather
        than raised
    """
    try:
        config = _as_config(config)
        templates = _as_templates(template_regions)
        use_template = config.use_template_guidance and len(templates) > 0

        image_h, image_w = image.shape[:2]

        gray = to_grayscale(image)
        binary = binarize(gray, config.threshold)
        blobs = extract_blobs(binary, config.min_region_size, config.sample_stride)

        if use_template:
            candidates = refine_templates(templates, blobs, image_w, image_h, config)
        else:
            candidates = build_regions_from_blobs(blobs, image_w, image_h,
                                                  config.max_group_distance)

        regions, overlaps_prevented = finalize(candidates, config)

        logger.debug("Detected %d regions from %d blobs (template=%s)",
                     len(regions), len(blobs), use_template)

        return DetectionResult(
            success=True,
            regions=regions,
            metadata={
                'textAreasFound': len(blobs),
                'regionsProposed': len(regions),
                'usedTemplate': use_template,
                'templateCount': len(templates),
                'overlapsPrevented': overlaps_prevented,
                'settings': config.to_dict(),
            },
        )

    except Exception as exc:
        logger.exception("Auto-detection failed")
        return DetectionResult(success=False, error=str(exc))
