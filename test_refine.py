"""Test template-guided refinement."""

import pytest

from pagesplit.config import DetectionConfig, RegionTypeConfig
from pagesplit.refine import (adjust_boundaries, find_relevant_blobs, find_unmatched_blobs,
                              refine_template, refine_templates, region_confidence,
                              violates_ratios)
from pagesplit.region import (AUTO_DETECTED_ADDITIONAL, HEADER, LEFT_MARGIN, LEFT_TEXT,
                              TEMPLATE_ONLY, TEMPLATE_REFINED, Rectangle, TemplateRegion,
                              TextBlob)

W, H = 800, 1000


def blob(x, y, w, h, fill=1.0):
    return TextBlob(x=x, y=y, width=w, height=h, pixel_count=int(w * h * fill))


def test_relevant_blobs_use_edge_gap():
    template = Rectangle(100, 100, 200, 200)
    inside = blob(150, 150, 20, 10)
    near = blob(305, 150, 20, 10)
    far = blob(400, 150, 20, 10)

    relevant = find_relevant_blobs(template, [inside, near, far], 10)
    assert relevant == [inside, near]


def test_adjust_boundaries_union_mode():
    template = TemplateRegion(100, 100, 200, 200, type=LEFT_TEXT)
    blobs = [blob(90, 120, 50, 10), blob(200, 290, 50, 20)]

    box = adjust_boundaries(template, blobs, 10, keep_template_position=False)
    assert box == Rectangle.from_bounds(80, 90, 310, 320)


def test_adjust_boundaries_keeps_template_position():
    template = TemplateRegion(100, 100, 200, 200, type=LEFT_MARGIN)
    blobs = [blob(120, 120, 50, 10), blob(280, 150, 40, 10)]

    box = adjust_boundaries(template, blobs, 5, keep_template_position=True)
    # Only the right edge grows, to the blob edge plus expansion
    assert box == Rectangle.from_bounds(100, 100, 325, 300)


def test_violates_ratios():
    margin = RegionTypeConfig(max_width_ratio=0.15)
    text = RegionTypeConfig(min_width_ratio=0.25)

    assert violates_ratios(Rectangle(0, 0, 130, 500), margin, W, H)
    assert not violates_ratios(Rectangle(0, 0, 120, 500), margin, W, H)
    assert violates_ratios(Rectangle(0, 0, 100, 500), text, W, H)
    assert not violates_ratios(Rectangle(0, 0, 100, 500), None, W, H)


def test_region_confidence_bounds():
    text = RegionTypeConfig(min_confidence=0.4)
    dense = [blob(0, 0, 400, 400)]

    high = region_confidence(Rectangle(0, 0, 400, 400), dense, text, TEMPLATE_REFINED)
    assert high == pytest.approx(0.95)

    sparse = [blob(0, 0, 10, 10, fill=0.1)]
    low = region_confidence(Rectangle(0, 0, 400, 400), sparse, text, TEMPLATE_REFINED)
    assert low == pytest.approx(0.4)


def test_region_confidence_density_requirement():
    band = RegionTypeConfig(min_confidence=0.3, require_text_density=0.05)
    faint = [blob(0, 0, 100, 20, fill=0.01)]

    assert region_confidence(Rectangle(0, 0, 100, 20), faint, band, TEMPLATE_REFINED) == 0.3


def test_template_only_when_no_text():
    """A header template on a blank page is kept as drawn when adherence is high."""
    config = DetectionConfig(template_adherence=0.9)
    template = TemplateRegion(100, 20, 600, 40, type=HEADER)

    candidate = refine_template(template, [], W, H, config)

    assert candidate is not None
    assert candidate.source == TEMPLATE_ONLY
    assert candidate.confidence == pytest.approx(0.3)
    assert (candidate.x, candidate.y, candidate.width, candidate.height) == (100, 20, 600, 40)


def test_template_dropped_when_no_text_and_low_adherence():
    config = DetectionConfig(template_adherence=0.5)
    template = TemplateRegion(100, 20, 600, 40, type=HEADER)
    assert refine_template(template, [], W, H, config) is None


def test_refined_text_column():
    config = DetectionConfig()
    template = TemplateRegion(90, 100, 290, 800, type=LEFT_TEXT)
    blobs = [blob(95, 110 + 14 * i, 270, 8) for i in range(50)]

    candidate = refine_template(template, blobs, W, H, config)

    assert candidate.source == TEMPLATE_REFINED
    assert candidate.type == LEFT_TEXT
    assert candidate.template is template
    assert (candidate.x, candidate.y) == (80, 90)
    assert candidate.x2 == 390
    assert 0.4 <= candidate.confidence <= 0.95


def test_height_locked_when_adjustment_disallowed():
    types = {LEFT_TEXT: RegionTypeConfig(min_confidence=0.4, boundary_expansion=10,
                                         allow_height_adjustment=False)}
    config = DetectionConfig(region_types=types)
    template = TemplateRegion(90, 100, 290, 300, type=LEFT_TEXT)
    # First blob touches the template's top edge
    blobs = [blob(95, 92, 270, 8), blob(95, 390, 270, 8)]

    candidate = refine_template(template, blobs, W, H, config)
    assert candidate.y == 100
    assert candidate.height == 300


def test_ratio_violation_rejects_candidate():
    config = DetectionConfig()
    template = TemplateRegion(10, 100, 60, 700, type=LEFT_MARGIN)
    # Text spilling far to the right makes the margin too wide
    blobs = [blob(20, 200, 40, 8), blob(60, 300, 100, 8)]

    assert refine_template(template, blobs, W, H, config) is None


def test_minimum_size_is_enforced():
    types = {HEADER: RegionTypeConfig(min_width=100, min_height=40)}
    config = DetectionConfig(region_types=types)
    template = TemplateRegion(300, 20, 10, 5, type=HEADER)

    candidate = refine_template(template, [blob(300, 20, 30, 8)], W, H, config)
    assert candidate.width >= 100
    assert candidate.height >= 40


def test_additional_regions_for_missed_text():
    template = TemplateRegion(90, 100, 290, 300, type=LEFT_TEXT)
    blobs = [blob(95, 110, 270, 8), blob(500, 700, 200, 30)]

    loose = refine_templates([template], blobs, W, H, DetectionConfig(template_adherence=0.5))
    strict = refine_templates([template], blobs, W, H, DetectionConfig(template_adherence=0.9))

    extra = [c for c in loose if c.source == AUTO_DETECTED_ADDITIONAL]
    assert len(extra) == 1
    assert extra[0].confidence >= 0.3
    assert not any(c.source == AUTO_DETECTED_ADDITIONAL for c in strict)

    assert find_unmatched_blobs([template], blobs) == [blobs[1]]


if __name__ == "__main__":
    test_template_only_when_no_text()
    test_refined_text_column()
    print("\n✓ All tests completed successfully!")
