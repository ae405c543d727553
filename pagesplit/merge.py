"""
Confidence filtering, duplicate removal and greedy overlap resolution.
"""

import logging
from functools import cmp_to_key
from typing import List, Tuple

from pagesplit.config import DetectionConfig
from pagesplit.region import (AUTO_DETECTED, TEMPLATE_EXPANDED, TEMPLATE_ONLY,
                              TEMPLATE_REFINED, CandidateRegion)

logger = logging.getLogger(__name__)

DUPLICATE_RATIO = 0.7
# Confidences closer than this are ranked by source preference
TIE_MARGIN = 0.1
SOURCE_PREFERENCE = [TEMPLATE_REFINED, TEMPLATE_EXPANDED, AUTO_DETECTED, TEMPLATE_ONLY]


def filter_by_confidence(candidates: List[CandidateRegion],
                         config: DetectionConfig) -> List[CandidateRegion]:
    """Drop candidates below their type's minimum confidence."""
    return [c for c in candidates if c.confidence >= config.min_confidence_for(c.type)]


def is_duplicate(a: CandidateRegion, b: CandidateRegion,
                 ratio: float = DUPLICATE_RATIO) -> bool:
    smaller = min(a.area, b.area)
    if smaller <= 0:
        return False
    return a.intersection_area(b) > ratio * smaller


def remove_duplicates(candidates: List[CandidateRegion],
                      ratio: float = DUPLICATE_RATIO) -> List[CandidateRegion]:
    """
    Remove near-duplicates; the earlier candidate always wins.

    Args:
        candidates: Candidates in insertion order
        ratio: Overlap fraction of the smaller region that marks a duplicate

    Returns:
        Candidates that do not duplicate an earlier kept one
    """
    kept = []
    for candidate in candidates:
        if any(is_duplicate(k, candidate, ratio) for k in kept):
            continue
        kept.append(candidate)

    if len(kept) < len(candidates):
        logger.debug("Removed %d duplicate regions", len(candidates) - len(kept))
    return kept


def prevent_overlaps(candidates: List[CandidateRegion],
                     tolerance: float) -> Tuple[List[CandidateRegion], int]:
    """
    Greedily accept candidates by confidence, rejecting overlaps.

    A candidate is accepted only if its overlap area with every already
    accepted candidate is at most `tolerance` square pixels.

    Returns:
        Tuple of (accepted candidates, number rejected)
    """
    ranked = sorted(candidates, key=lambda c: c.confidence, reverse=True)
    accepted = []

    for candidate in ranked:
        if all(candidate.intersection_area(a) <= tolerance for a in accepted):
            accepted.append(candidate)

    return accepted, len(ranked) - len(accepted)


def _source_rank(source: str) -> int:
    try:
        return SOURCE_PREFERENCE.index(source)
    except ValueError:
        return len(SOURCE_PREFERENCE)


def _compare(a: CandidateRegion, b: CandidateRegion) -> int:
    if abs(a.confidence - b.confidence) < TIE_MARGIN:
        rank_a, rank_b = _source_rank(a.source), _source_rank(b.source)
        if rank_a != rank_b:
            return rank_a - rank_b
    if a.confidence > b.confidence:
        return -1
    if a.confidence < b.confidence:
        return 1
    return 0


def sort_candidates(candidates: List[CandidateRegion]) -> List[CandidateRegion]:
    """Confidence descending; near-ties go to the preferred source."""
    return sorted(candidates, key=cmp_to_key(_compare))


def finalize(candidates: List[CandidateRegion],
             config: DetectionConfig) -> Tuple[List[CandidateRegion], int]:
    """
    Filter, deduplicate, resolve overlaps, sort and cap candidates.

    Args:
        candidates: Scored candidates in insertion order
        config: Detection configuration

    Returns:
        Tuple of (final regions, overlaps prevented)
    """
    regions = filter_by_confidence(candidates, config)
    regions = remove_duplicates(regions)

    overlaps_prevented = 0
    if config.prevent_overlap:
        regions, overlaps_prevented = prevent_overlaps(regions, config.overlap_tolerance)

    regions = sort_candidates(regions)[:config.max_regions]

    logger.debug("Finalized %d of %d candidates (%d overlaps prevented)",
                 len(regions), len(candidates), overlaps_prevented)
    return regions, overlaps_prevented
