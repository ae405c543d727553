"""Test blob grouping and region typing without a template."""

import pytest

from pagesplit.grouping import (BlobGroup, build_regions_from_blobs, group_blobs,
                                group_confidence, guess_region_type, size_score)
from pagesplit.region import (AUTO_DETECTED, FOOTER, HEADER, LEFT_MARGIN, LEFT_TEXT,
                              RIGHT_MARGIN, RIGHT_TEXT, Rectangle, TextBlob)

W, H = 800, 1000


def blob(x, y, w, h, fill=1.0):
    return TextBlob(x=x, y=y, width=w, height=h, pixel_count=int(w * h * fill))


def test_group_blobs_partitions_all_blobs():
    blobs = [
        blob(100, 100, 50, 10),
        blob(160, 100, 40, 10),   # same row as the first
        blob(600, 500, 30, 10),
        blob(610, 520, 30, 10),   # near the third
        blob(300, 900, 20, 20),
    ]
    groups = group_blobs(blobs, max_distance=80)

    print(f"Groups: {[len(g.blobs) for g in groups]}")

    members = [b for g in groups for b in g.blobs]
    assert len(members) == len(blobs)
    assert all(any(m is b for m in members) for b in blobs)
    assert len(groups) == 3


def test_alignment_joins_far_blobs():
    # Same left edge, far apart vertically
    blobs = [blob(100, 100, 60, 10), blob(105, 700, 50, 10)]
    assert len(group_blobs(blobs, max_distance=10)) == 1


def test_largest_blob_seeds_first():
    small = blob(0, 0, 10, 10)
    large = blob(400, 400, 60, 60)
    groups = group_blobs([small, large], max_distance=10)
    assert groups[0].blobs[0] is large


@pytest.mark.parametrize("rect, expected", [
    (Rectangle(100, 20, 600, 40), HEADER),
    (Rectangle(100, 940, 600, 40), FOOTER),
    (Rectangle(10, 100, 60, 700), LEFT_MARGIN),
    (Rectangle(730, 100, 60, 700), RIGHT_MARGIN),
    (Rectangle(100, 300, 250, 200), LEFT_TEXT),
    (Rectangle(450, 300, 250, 200), RIGHT_TEXT),
])
def test_guess_region_type(rect, expected):
    assert guess_region_type(rect, W, H) == expected


def test_size_score():
    assert size_score(0) == 0.0
    assert size_score(100 * 100) == pytest.approx(0.5)
    assert size_score(1000 * 1000) == 1.0


def test_group_confidence_bounds():
    tiny = BlobGroup(blobs=[blob(0, 0, 1, 1, fill=0.0)])
    huge = BlobGroup(blobs=[blob(i * 300, 0, 250, 250) for i in range(6)])

    assert group_confidence(tiny) == pytest.approx(0.1)
    assert group_confidence(huge) == pytest.approx(0.9)


def test_single_blob_region():
    """A lone 40x25 text block on a wide page."""
    regions = build_regions_from_blobs([blob(50, 50, 40, 25)], 400, 300)

    assert len(regions) == 1
    r = regions[0]
    assert (r.x, r.y, r.width, r.height) == (45, 45, 50, 35)
    assert r.type == LEFT_TEXT
    assert r.source == AUTO_DETECTED
    # density 1 -> 1.0, size sqrt(1000)/200, count 1/5
    expected = (1.0 + (1000 ** 0.5) / 200 + 0.2) / 3
    assert r.confidence == pytest.approx(expected)


def test_regions_are_clamped_to_page():
    regions = build_regions_from_blobs([blob(0, 0, 30, 20)], 100, 100)
    r = regions[0]
    assert r.x == 0 and r.y == 0
    assert r.is_within(100, 100)


if __name__ == "__main__":
    test_group_blobs_partitions_all_blobs()
    test_single_blob_region()
    print("\n✓ All tests completed successfully!")
