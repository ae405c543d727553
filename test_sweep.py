"""Test configuration generation, similarity scoring and the sweep loop."""

import pytest

from pagesplit import sweep
from pagesplit.config import DetectionConfig, RegionTypeConfig, default_region_types
from pagesplit.detector import DetectionResult
from pagesplit.region import (HEADER, LEFT_MARGIN, LEFT_TEXT, RIGHT_MARGIN, CandidateRegion,
                              TemplateRegion)
from pagesplit.sweep import (REGION_VARIANTS, calculate_iou, calculate_similarity_score,
                             generate_configurations, generate_margin_focused_variant,
                             generate_region_variant, run_sweep)
from pagesplit.synthetic import generate_synthetic_page


def test_perfect_match_scores_one():
    ideal = [TemplateRegion(0, 0, 100, 100, type=HEADER)]
    detected = [CandidateRegion(x=0, y=0, width=100, height=100, type=HEADER, confidence=0.8)]

    score = calculate_similarity_score(ideal, detected)

    assert score.avg_iou == pytest.approx(1.0)
    assert score.type_accuracy == 1.0
    assert score.region_recall == 1.0
    assert score.extra_regions == 0
    assert score.avg_position_error == 0.0
    assert score.overall == pytest.approx(1.0)


def test_score_penalizes_extras_and_floors_at_zero():
    ideal = [TemplateRegion(0, 0, 100, 100, type=HEADER)]
    detected = [CandidateRegion(x=500 + i * 20, y=500, width=10, height=10, type=HEADER)
                for i in range(5)]

    score = calculate_similarity_score(ideal, detected)
    assert score.extra_regions == 4
    assert score.avg_iou == 0.0
    assert score.overall == 0.0


def test_score_wrong_type_and_weak_match():
    ideal = [TemplateRegion(0, 0, 100, 100, type=HEADER)]
    detected = [CandidateRegion(x=80, y=0, width=100, height=100, type=LEFT_TEXT)]

    score = calculate_similarity_score(ideal, detected)
    iou = calculate_iou(ideal[0], detected[0])
    assert iou < 0.3
    assert score.type_accuracy == 0.0
    assert score.region_recall == 0.0
    assert score.avg_position_error == pytest.approx(80.0)
    assert score.overall == pytest.approx(0.4 * iou)


def test_empty_inputs():
    assert calculate_similarity_score([], []).overall == 0.0
    assert calculate_similarity_score([TemplateRegion(0, 0, 10, 10)], []).overall == 0.0


@pytest.mark.parametrize("mode, count", [
    ("quick", 10),
    ("normal", 60),
    ("thorough", 7 * 4 * 4 * 8 + 4 * 8 + 6 + 8),
])
def test_configuration_counts(mode, count):
    configs = generate_configurations(mode)
    assert len(configs) == count
    assert len({c.name for c in configs}) == count


def test_configuration_generation_is_deterministic():
    first = generate_configurations("thorough")
    second = generate_configurations("thorough")
    assert [c.name for c in first] == [c.name for c in second]
    assert [c.config for c in first] == [c.config for c in second]


def test_quick_configurations():
    configs = {c.name: c for c in generate_configurations("quick")}

    strict = configs['StrictTemplate_TightRegions'].config
    assert strict.threshold == 110
    assert strict.template_adherence == 0.9
    assert strict.overlap_tolerance == 5

    loose = configs['LooseDetection_BigMargins'].config
    assert loose.prevent_overlap is False
    assert loose.overlap_tolerance == 0

    margins = configs['HighRecall_LooseMargins'].config
    assert margins.region_types[LEFT_MARGIN].max_width_ratio == 0.25
    assert margins.region_types[LEFT_TEXT] == default_region_types()[LEFT_TEXT]


def test_edge_cases_present_in_thorough():
    categories = {c.category for c in generate_configurations("thorough")}
    assert categories == {'thorough', 'region_focus', 'margin_tuning', 'edge_case'}


def test_unknown_mode_and_variant():
    with pytest.raises(ValueError):
        generate_configurations("exhaustive")
    with pytest.raises(ValueError):
        generate_region_variant("wild", default_region_types())


def test_strict_variant():
    base = default_region_types()
    strict = generate_region_variant("strict", base)

    margin = strict[LEFT_MARGIN]
    assert margin.min_confidence == pytest.approx(0.7)
    assert margin.boundary_expansion == 1
    assert margin.prefer_template_position is True
    # Unset flags stay unset
    assert margin.allow_height_adjustment is None

    text = strict[LEFT_TEXT]
    assert text.min_confidence == pytest.approx(0.8)
    assert text.boundary_expansion == 5
    assert text.allow_height_adjustment is False
    assert text.prefer_template_position is None


def test_variants_start_unset_types_from_global_threshold():
    base = {HEADER: RegionTypeConfig(boundary_expansion=8)}

    assert generate_region_variant("strict", base, 0.3)[HEADER].min_confidence == pytest.approx(0.7)
    assert generate_region_variant("loose", base, 0.6)[HEADER].min_confidence == pytest.approx(0.4)

    configs = {c.name: c.config for c in generate_configurations(
        "quick", DetectionConfig(confidence_threshold=0.2, region_types=base))}
    strict = configs['StrictTemplate_TightRegions']
    assert strict.region_types[HEADER].min_confidence == pytest.approx(0.6)


def test_variants_do_not_mutate_base():
    base = default_region_types()
    snapshot = dict(base)
    for name in REGION_VARIANTS:
        generate_region_variant(name, base)
    assert base == snapshot


def test_margin_focused_variant():
    base = default_region_types()

    tight = generate_margin_focused_variant(0, base)
    wide = generate_margin_focused_variant(20, base)
    mid = generate_margin_focused_variant(5, base)

    assert tight[RIGHT_MARGIN].min_confidence == 0.6
    assert wide[LEFT_MARGIN].min_confidence == 0.3
    assert wide[LEFT_MARGIN].boundary_expansion == 20
    assert mid[LEFT_MARGIN].min_confidence == 0.4
    assert mid[HEADER] == base[HEADER]


def test_quick_sweep_on_synthetic_page():
    img, ideal = generate_synthetic_page(800, 1000, seed=7)

    report = run_sweep(img, ideal, mode="quick")

    print(f"Best: {report.best.configuration.name} {report.best.score.overall:.3f}")
    assert report.total_configs == 10
    assert report.successful + report.failed == 10
    assert report.best.score.overall > 0.8

    scores = [r.score.overall for r in report.results]
    assert scores == sorted(scores, reverse=True)
    assert len(report.top(3)) == 3

    d = report.results[0].to_dict()
    assert set(d) == {'config', 'detectedRegions', 'score', 'metadata'}


def test_sweep_scale_maps_ideal_into_image():
    img, ideal = generate_synthetic_page(800, 1000, seed=7)
    # Regions as drawn on a half-size preview
    half = [{'x': r.x / 2, 'y': r.y / 2, 'width': r.width / 2,
             'height': r.height / 2, 'type': r.type} for r in ideal]

    scaled = run_sweep(img, half, mode="quick", scale=0.5)
    direct = run_sweep(img, ideal, mode="quick")

    assert scaled.best.score.overall == pytest.approx(direct.best.score.overall)


def test_sweep_is_deterministic():
    img, ideal = generate_synthetic_page(600, 800, seed=3)

    first = run_sweep(img, ideal, mode="quick")
    second = run_sweep(img, ideal, mode="quick")

    assert [r.configuration.name for r in first.results] == \
        [r.configuration.name for r in second.results]
    assert [r.score for r in first.results] == [r.score for r in second.results]


def test_sweep_cancellation_and_progress():
    img, ideal = generate_synthetic_page(400, 500, seed=1)
    seen = []

    def progress(i, total, config):
        seen.append(config.name)

    report = run_sweep(img, ideal, mode="quick",
                       should_cancel=lambda: len(seen) >= 3, progress=progress)

    assert report.cancelled
    assert len(seen) == 3
    assert report.successful + report.failed == 3


@pytest.mark.parametrize("how", ["raise", "unsuccessful"])
def test_sweep_records_failed_configuration(monkeypatch, how):
    img, ideal = generate_synthetic_page(400, 500, seed=1)
    real_detect = sweep.auto_detect_regions
    seen = []

    def flaky_detect(image, templates, config):
        if len(seen) == 3:
            if how == "raise":
                raise RuntimeError("boom")
            return DetectionResult(success=False, error="boom")
        return real_detect(image, templates, config)

    monkeypatch.setattr(sweep, "auto_detect_regions", flaky_detect)
    report = run_sweep(img, ideal, mode="quick",
                       progress=lambda i, total, config: seen.append(config.name))

    broken = seen[2]
    assert report.failed == 1
    assert report.successful == report.total_configs - 1
    assert report.failures[0][0] == broken
    assert "boom" in report.failures[0][1]
    assert broken not in [r.configuration.name for r in report.results]
    assert report.to_dict()['failures'] == [{'name': broken, 'error': "boom"}]


def test_sweep_rejects_bad_mode_before_running():
    img, ideal = generate_synthetic_page(400, 500, seed=1)
    with pytest.raises(ValueError):
        run_sweep(img, ideal, mode="everything")
    with pytest.raises(ValueError):
        run_sweep(img, ideal, mode="quick", scale=0)


def test_base_config_feeds_variants():
    base = DetectionConfig(sample_stride=1)
    configs = generate_configurations("quick", base)
    assert all(c.config.sample_stride == 1 for c in configs)


if __name__ == "__main__":
    test_perfect_match_scores_one()
    test_quick_sweep_on_synthetic_page()
    print("\n✓ All tests completed successfully!")
