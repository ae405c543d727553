"""
Configuration sweep: run detection with many parameter sets against a set
of ideal regions and rank the configurations by similarity.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from pagesplit.config import DetectionConfig, RegionTypeConfig
from pagesplit.detector import auto_detect_regions
from pagesplit.preprocessing import to_grayscale
from pagesplit.region import (FOOTER, HEADER, LEFT_MARGIN, RIGHT_MARGIN, Rectangle,
                              TemplateRegion)

logger = logging.getLogger(__name__)

MODES = ('quick', 'normal', 'thorough')
# Best IoU above this counts as a found region
MATCH_IOU = 0.3
EXTRA_REGION_PENALTY = 0.1
DEFAULT_TOP_N = 10

RegionTypes = Dict[str, RegionTypeConfig]


# ── Similarity scoring ────────────────────────────────────────────────


@dataclass(frozen=True)
class SimilarityScore:
    overall: float
    avg_iou: float
    type_accuracy: float
    region_recall: float
    avg_position_error: float
    extra_regions: int

    def to_dict(self) -> dict:
        return {
            'overall': self.overall,
            'avgIoU': self.avg_iou,
            'typeAccuracy': self.type_accuracy,
            'regionRecall': self.region_recall,
            'avgPositionError': self.avg_position_error,
            'extraRegions': self.extra_regions,
        }


def calculate_iou(a: Rectangle, b: Rectangle) -> float:
    return a.iou(b)


def calculate_similarity_score(ideal_regions: Sequence, detected_regions: Sequence) -> SimilarityScore:
    """
    Compare detected regions with ideal regions.

    Each ideal region is matched to the detected region with the highest
    IoU. Regions with no overlapping detection contribute zero IoU.

    Args:
        ideal_regions: Typed reference regions, in image coordinates
        detected_regions: Typed detected regions

    Returns:
        SimilarityScore; overall = 0.4*IoU + 0.3*type accuracy +
        0.3*recall - 0.1 per extra region, floored at 0
    """
    total_iou = 0.0
    type_matches = 0
    region_matches = 0
    position_errors = []

    for ideal in ideal_regions:
        best_match = None
        best_iou = 0.0
        for detected in detected_regions:
            iou = calculate_iou(ideal, detected)
            if iou > best_iou:
                best_iou = iou
                best_match = detected

        if best_match is None:
            continue

        total_iou += best_iou
        if best_match.type == ideal.type:
            type_matches += 1
        if best_iou > MATCH_IOU:
            region_matches += 1
        position_errors.append(ideal.center_distance(best_match))

    n_ideal = len(ideal_regions)
    avg_iou = total_iou / n_ideal if n_ideal else 0.0
    type_accuracy = type_matches / n_ideal if n_ideal else 0.0
    region_recall = region_matches / n_ideal if n_ideal else 0.0
    avg_position_error = float(np.mean(position_errors)) if position_errors else 0.0

    extra_regions = max(0, len(detected_regions) - n_ideal)
    overall = (avg_iou * 0.4 + type_accuracy * 0.3 + region_recall * 0.3
               - extra_regions * EXTRA_REGION_PENALTY)

    return SimilarityScore(
        overall=max(0.0, overall),
        avg_iou=avg_iou,
        type_accuracy=type_accuracy,
        region_recall=region_recall,
        avg_position_error=avg_position_error,
        extra_regions=extra_regions,
    )


# ── Region variants ───────────────────────────────────────────────────


def _is_margin(name: str) -> bool:
    return 'margin' in name


def _is_text(name: str) -> bool:
    return 'text' in name


def _precision(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    changes = {
        'min_confidence': min(0.7, confidence + 0.3),
        'boundary_expansion': max(2, cfg.boundary_expansion - 3),
    }
    if cfg.prefer_template_position is not None:
        changes['prefer_template_position'] = True
    return cfg.with_overrides(**changes)


def _loose(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    changes = {
        'min_confidence': max(0.2, confidence - 0.2),
        'boundary_expansion': cfg.boundary_expansion + 8,
    }
    if cfg.allow_height_adjustment is not None:
        changes['allow_height_adjustment'] = True
    return cfg.with_overrides(**changes)


def _strict(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    changes = {
        'min_confidence': min(0.8, confidence + 0.4),
        'boundary_expansion': max(1, cfg.boundary_expansion - 5),
    }
    if cfg.prefer_template_position is not None:
        changes['prefer_template_position'] = True
    if cfg.allow_height_adjustment is not None:
        changes['allow_height_adjustment'] = False
    return cfg.with_overrides(**changes)


def _expanded(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    return cfg.with_overrides(boundary_expansion=cfg.boundary_expansion + 15,
                              min_confidence=max(0.25, confidence - 0.15))


def _conservative(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    return cfg.with_overrides(boundary_expansion=max(2, cfg.boundary_expansion - 2),
                              min_confidence=min(0.6, confidence + 0.1))


def _loose_margins(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    if name not in (LEFT_MARGIN, RIGHT_MARGIN):
        return cfg
    return cfg.with_overrides(min_confidence=0.2, boundary_expansion=15, max_width_ratio=0.25)


def _optimal(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    if _is_margin(name):
        return cfg.with_overrides(min_confidence=0.35, boundary_expansion=8)
    if _is_text(name):
        return cfg.with_overrides(min_confidence=0.45, boundary_expansion=12)
    return cfg.with_overrides(min_confidence=0.4, boundary_expansion=10)


def _adaptive(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    if name in (HEADER, FOOTER):
        return cfg.with_overrides(min_confidence=0.3, boundary_expansion=6)
    if _is_margin(name):
        return cfg.with_overrides(min_confidence=0.25, boundary_expansion=3,
                                  prefer_template_position=True)
    if _is_text(name):
        return cfg.with_overrides(min_confidence=0.5, boundary_expansion=15,
                                  allow_height_adjustment=True)
    return cfg


def _tight(name: str, cfg: RegionTypeConfig, confidence: float) -> RegionTypeConfig:
    return cfg.with_overrides(boundary_expansion=max(0, cfg.boundary_expansion - 8),
                              min_confidence=min(0.7, confidence + 0.2))


REGION_VARIANTS: Dict[str, Callable[[str, RegionTypeConfig, float], RegionTypeConfig]] = {
    'default': lambda name, cfg, confidence: cfg,
    'precision': _precision,
    'loose': _loose,
    'strict': _strict,
    'expanded': _expanded,
    'conservative': _conservative,
    'loose_margins': _loose_margins,
    'optimal': _optimal,
    'adaptive': _adaptive,
    'tight': _tight,
}


def generate_region_variant(variant: str, base: RegionTypes,
                            default_confidence: float = 0.5) -> RegionTypes:
    """
    Apply a named variant to every type of a per-type map.

    Confidence arithmetic starts from each type's min_confidence, or from
    `default_confidence` (the global threshold) for types without one.

    Raises:
        ValueError: for an unknown variant name
    """
    try:
        transform = REGION_VARIANTS[variant]
    except KeyError:
        raise ValueError(f"Unknown region variant: {variant}") from None
    return {
        name: transform(name, cfg, cfg.min_confidence if cfg.min_confidence is not None
                        else default_confidence)
        for name, cfg in base.items()
    }


def generate_margin_focused_variant(expansion: float, base: RegionTypes) -> RegionTypes:
    """Set margin expansion; tighter expansion demands more confidence."""
    if expansion == 0:
        min_confidence = 0.6
    elif expansion > 10:
        min_confidence = 0.3
    else:
        min_confidence = 0.4

    variant = dict(base)
    for name in (LEFT_MARGIN, RIGHT_MARGIN):
        if name in variant:
            variant[name] = variant[name].with_overrides(boundary_expansion=expansion,
                                                         min_confidence=min_confidence)
    return variant


# ── Configuration generation ──────────────────────────────────────────


@dataclass(frozen=True)
class SweepConfiguration:
    name: str
    category: str
    variant: str
    config: DetectionConfig

    def to_dict(self) -> dict:
        settings = self.config.to_dict()
        return {
            'name': self.name,
            'category': self.category,
            'variant': self.variant,
            'settings': settings['global'],
            'regionTypeConfig': settings['regionTypes'],
        }


# (name, threshold, adherence, confidence, prevent overlap, variant)
QUICK_CONFIGS = [
    ('Balanced_Default', 128, 0.7, 0.4, True, 'default'),
    ('HighPrecision_Template', 120, 0.8, 0.5, True, 'precision'),
    ('TextFocused_Loose', 140, 0.5, 0.3, True, 'loose'),
    ('StrictTemplate_TightRegions', 110, 0.9, 0.6, True, 'strict'),
    ('LooseDetection_BigMargins', 150, 0.4, 0.4, False, 'expanded'),
    ('Conservative_SmallExpansion', 128, 0.6, 0.5, True, 'conservative'),
    ('HighRecall_LooseMargins', 135, 0.7, 0.35, True, 'loose_margins'),
    ('FineTuned_OptimalExpansion', 115, 0.75, 0.45, True, 'optimal'),
    ('NoOverlap_TightBounds', 128, 0.5, 0.4, False, 'tight'),
    ('OptimalMix_AdaptiveRegions', 125, 0.65, 0.4, True, 'adaptive'),
]

# (threshold, adherence, confidence)
NORMAL_GLOBALS = [
    (100, 0.4, 0.3),
    (115, 0.6, 0.4),
    (128, 0.7, 0.4),
    (140, 0.6, 0.5),
    (160, 0.8, 0.5),
]
NORMAL_VARIANTS = ['default', 'precision', 'loose', 'strict', 'expanded', 'conservative']

THOROUGH_THRESHOLDS = [90, 100, 115, 128, 140, 160, 180]
THOROUGH_ADHERENCE = [0.3, 0.5, 0.7, 0.9]
THOROUGH_CONFIDENCE = [0.3, 0.4, 0.5, 0.6]
THOROUGH_VARIANTS = NORMAL_VARIANTS + ['adaptive', 'tight']
REGION_SIZES = [150, 200, 250, 300]
MARGIN_EXPANSIONS = [0, 3, 5, 8, 12, 20]

# (name, threshold, min region size, adherence, confidence, prevent overlap, variant)
EDGE_CASES = [
    ('Edge_VeryDarkOnly', 60, 200, 0.7, 0.4, True, 'default'),
    ('Edge_VeryLightInk', 200, 200, 0.7, 0.4, True, 'default'),
    ('Edge_PureTextDriven', 128, 200, 0.0, 0.3, True, 'loose'),
    ('Edge_TemplateLocked', 128, 200, 1.0, 0.3, True, 'strict'),
    ('Edge_TinyBlobs', 128, 50, 0.6, 0.4, True, 'default'),
    ('Edge_LargeBlobsOnly', 128, 500, 0.6, 0.4, True, 'default'),
    ('Edge_HighConfidenceOnly', 128, 200, 0.7, 0.8, True, 'precision'),
    ('Edge_OverlapAllowed', 128, 200, 0.7, 0.2, False, 'expanded'),
]


def _make_config(base: DetectionConfig, region_types: RegionTypes, *, threshold: int,
                 adherence: float, confidence: float, prevent_overlap: bool = True,
                 min_region_size: int = 200) -> DetectionConfig:
    return base.with_overrides(
        threshold=threshold,
        min_region_size=min_region_size,
        confidence_threshold=confidence,
        prevent_overlap=prevent_overlap,
        overlap_tolerance=5 if prevent_overlap else 0,
        template_adherence=adherence,
        region_types=region_types,
    )


def generate_configurations(mode: str = 'normal',
                            base: Optional[DetectionConfig] = None) -> List[SweepConfiguration]:
    """
    Generate the configurations tested by one sweep.

    Generation is deterministic: the same mode and base always give the
    same list in the same order.

    Args:
        mode: 'quick' (10 curated), 'normal' (60 grid) or 'thorough'
        base: Configuration whose per-type map the variants start from

    Returns:
        List of SweepConfiguration

    Raises:
        ValueError: for an unknown mode
    """
    if mode not in MODES:
        raise ValueError(f"Unknown sweep mode: {mode} (expected one of {', '.join(MODES)})")

    base = base or DetectionConfig()
    variants = {name: generate_region_variant(name, base.region_types, base.confidence_threshold)
                for name in REGION_VARIANTS}
    configs = []

    if mode == 'quick':
        for name, threshold, adherence, confidence, overlap, variant in QUICK_CONFIGS:
            configs.append(SweepConfiguration(
                name=name, category='quick', variant=variant,
                config=_make_config(base, variants[variant], threshold=threshold,
                                    adherence=adherence, confidence=confidence,
                                    prevent_overlap=overlap),
            ))

    elif mode == 'normal':
        for threshold, adherence, confidence in NORMAL_GLOBALS:
            for variant in NORMAL_VARIANTS:
                for overlap in (True, False):
                    configs.append(SweepConfiguration(
                        name=f"T{threshold}_A{adherence}_C{confidence}_{variant}_O{'Y' if overlap else 'N'}",
                        category='normal', variant=variant,
                        config=_make_config(base, variants[variant], threshold=threshold,
                                            adherence=adherence, confidence=confidence,
                                            prevent_overlap=overlap),
                    ))

    else:
        for threshold in THOROUGH_THRESHOLDS:
            for adherence in THOROUGH_ADHERENCE:
                for confidence in THOROUGH_CONFIDENCE:
                    for variant in THOROUGH_VARIANTS:
                        configs.append(SweepConfiguration(
                            name=f"Thorough_T{threshold}_A{adherence}_C{confidence}_{variant}",
                            category='thorough', variant=variant,
                            config=_make_config(base, variants[variant], threshold=threshold,
                                                adherence=adherence, confidence=confidence),
                        ))

        for size in REGION_SIZES:
            for variant in THOROUGH_VARIANTS:
                configs.append(SweepConfiguration(
                    name=f"RegionSize_{size}_{variant}",
                    category='region_focus', variant=variant,
                    config=_make_config(base, variants[variant], threshold=128,
                                        adherence=0.6, confidence=0.4,
                                        min_region_size=size),
                ))

        for expansion in MARGIN_EXPANSIONS:
            configs.append(SweepConfiguration(
                name=f"MarginExpansion_{expansion}",
                category='margin_tuning', variant=f"margin_{expansion}",
                config=_make_config(base,
                                    generate_margin_focused_variant(expansion, base.region_types),
                                    threshold=128, adherence=0.7, confidence=0.4),
            ))

        for name, threshold, size, adherence, confidence, overlap, variant in EDGE_CASES:
            configs.append(SweepConfiguration(
                name=name, category='edge_case', variant=variant,
                config=_make_config(base, variants[variant], threshold=threshold,
                                    adherence=adherence, confidence=confidence,
                                    prevent_overlap=overlap, min_region_size=size),
            ))

    logger.info("Generated %d configurations for %s sweep", len(configs), mode)
    return configs


# ── Sweep ─────────────────────────────────────────────────────────────


@dataclass
class SweepResult:
    configuration: SweepConfiguration
    detected_regions: list
    score: SimilarityScore
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'config': self.configuration.to_dict(),
            'detectedRegions': [r.to_dict() for r in self.detected_regions],
            'score': self.score.to_dict(),
            'metadata': self.metadata,
        }


@dataclass
class SweepReport:
    mode: str
    results: List[SweepResult]
    total_configs: int
    successful: int
    failed: int
    elapsed: float
    ideal_count: int
    failures: List[tuple] = field(default_factory=list)
    cancelled: bool = False

    @property
    def best(self) -> Optional[SweepResult]:
        return self.results[0] if self.results else None

    def top(self, n: int = DEFAULT_TOP_N) -> List[SweepResult]:
        return self.results[:n]

    def to_dict(self) -> dict:
        return {
            'mode': self.mode,
            'totalConfigs': self.total_configs,
            'successful': self.successful,
            'failed': self.failed,
            'elapsed': self.elapsed,
            'idealCount': self.ideal_count,
            'cancelled': self.cancelled,
            'failures': [{'name': name, 'error': error} for name, error in self.failures],
            'results': [r.to_dict() for r in self.results],
        }


def _as_templates(ideal_regions: Sequence, scale: float) -> List[TemplateRegion]:
    templates = []
    for region in ideal_regions:
        if not isinstance(region, TemplateRegion):
            region = TemplateRegion.from_dict(region)
        if scale != 1.0:
            scaled = region.scaled(1.0 / scale)
            region = TemplateRegion(scaled.x, scaled.y, scaled.width, scaled.height,
                                    type=region.type)
        templates.append(region)
    return templates


def run_sweep(image: np.ndarray,
              ideal_regions: Sequence,
              mode: str = 'normal',
              base: Optional[DetectionConfig] = None,
              scale: float = 1.0,
              should_cancel: Optional[Callable[[], bool]] = None,
              progress: Optional[Callable[[int, int, SweepConfiguration], None]] = None) -> SweepReport:
    """
    Run the detector once per generated configuration and rank the runs.

    The ideal regions, rescaled into image coordinates, are both the
    template for every run and the reference it is scored against.

    Args:
        image: Page raster
        ideal_regions: TemplateRegion objects or their JSON dicts
        mode: 'quick', 'normal' or 'thorough'
        base: Base configuration for the region variants
        scale: Display scale the ideal regions were drawn at
        should_cancel: Checked between configurations; True stops the sweep
        progress: Called before each configuration with (index, total, config)

    Returns:
        SweepReport with results sorted by overall score, best first
    """
    if not math.isfinite(scale) or scale <= 0:
        raise ValueError(f"scale must be a positive number, got {scale}")

    configs = generate_configurations(mode, base)
    templates = _as_templates(ideal_regions, scale)
    gray = to_grayscale(image)

    results = []
    failures = []
    cancelled = False
    start = time.time()

    logger.info("Starting %s sweep: %d configurations, %d ideal regions",
                mode, len(configs), len(templates))

    for i, sweep_config in enumerate(configs):
        if should_cancel is not None and should_cancel():
            cancelled = True
            logger.info("Sweep cancelled after %d of %d configurations", i, len(configs))
            break

        if progress is not None:
            progress(i, len(configs), sweep_config)

        try:
            result = auto_detect_regions(gray, templates, sweep_config.config)
            if not result.success:
                raise RuntimeError(result.error or "detection failed")
            score = calculate_similarity_score(templates, result.regions)
        except Exception as exc:
            logger.warning("Configuration %s failed: %s", sweep_config.name, exc)
            failures.append((sweep_config.name, str(exc)))
            continue

        results.append(SweepResult(
            configuration=sweep_config,
            detected_regions=result.regions,
            score=score,
            metadata=result.metadata,
        ))
        logger.debug("%s score: %.3f", sweep_config.name, score.overall)

    # Stable: equal scores keep generation order
    results.sort(key=lambda r: r.score.overall, reverse=True)
    elapsed = time.time() - start

    logger.info("Sweep complete in %.1fs: %d successful, %d failed",
                elapsed, len(results), len(failures))

    return SweepReport(
        mode=mode,
        results=results,
        total_configs=len(configs),
        successful=len(results),
        failed=len(failures),
        elapsed=elapsed,
        ideal_count=len(templates),
        failures=failures,
        cancelled=cancelled,
    )
