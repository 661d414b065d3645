import numpy as np
import pytest

from tablecat.perception.frame_gate import (
    boxes_touch_or_overlap, build_frame_snapshot, build_roi_proposal, compute_cluster_score,
    compute_hash_distance, compute_visual_delta, hamming_distance, merge_boxes, pad_box,
)
from tablecat.perception.types import FrameSnapshot, Rect


def solid(size, value):
    return np.full((size, size, 3), value, dtype=np.uint8)


def snapshot_with_bits(bits):
    return FrameSnapshot(width=1, height=1, grayscale=np.zeros((1, 1), np.uint8),
                         grid_energy=(0.0,) * 64, signature_bits=bits)


def test_luma_rounds_half_up():
    pixels = np.zeros((8, 8, 3), dtype=np.uint8)
    pixels[0, 0] = (255, 0, 0)
    pixels[0, 1] = (0, 255, 0)
    snap = build_frame_snapshot(pixels, 8, 8)
    assert snap.grayscale[0, 0] == 76
    assert snap.grayscale[0, 1] == 150
    assert len(snap.signature_bits) == 64


def test_snapshot_rejects_mismatched_shape():
    with pytest.raises(ValueError):
        build_frame_snapshot(solid(8, 0), 16, 8)


def test_frame_against_itself_is_quiet():
    snap = build_frame_snapshot(solid(32, 90), 32, 32)
    assert compute_visual_delta(snap, snap) == 0
    assert compute_hash_distance(snap, snap) == 0
    assert compute_cluster_score(snap, snap) == 0
    assert build_roi_proposal(snap, snap, 32, 32).boxes == ()


def test_missing_baseline_yields_zero_metrics():
    snap = build_frame_snapshot(solid(16, 200), 16, 16)
    assert compute_visual_delta(None, snap) == 0
    assert compute_hash_distance(None, snap) == 0
    assert compute_cluster_score(None, snap) == 0


def test_hash_distance_counts_differing_bits():
    a = "0" * 64
    b = "111" + "0" * 61
    assert compute_hash_distance(snapshot_with_bits(a), snapshot_with_bits(b)) == 3


def test_hamming_counts_length_mismatch():
    assert hamming_distance("1010", "10") == 2
    assert hamming_distance("", "") == 0


def test_localized_change_proposes_single_padded_box():
    before = solid(64, 40)
    after = before.copy()
    after[:16, :16] = 255
    prev, cur = build_frame_snapshot(before, 64, 64), build_frame_snapshot(after, 64, 64)

    assert compute_visual_delta(prev, cur) == pytest.approx(256 * 215 / 4096 / 255)
    assert compute_hash_distance(prev, cur) == 60
    assert compute_cluster_score(prev, cur) == pytest.approx(0.75)

    roi = build_roi_proposal(prev, cur, 64, 64)
    assert roi.boxes == (Rect(0, 0, 17, 17),)
    assert roi.coverage_ratio == pytest.approx(289 / 4096)
    assert roi.heatmap_score > 0


def test_broad_coverage_clears_boxes_but_keeps_heatmap():
    before = solid(4, 0)
    after = before.copy()
    for i in range(3):
        after[i, i] = 255
    roi = build_roi_proposal(build_frame_snapshot(before, 4, 4), build_frame_snapshot(after, 4, 4), 4, 4)
    assert roi.boxes == ()
    assert roi.coverage_ratio > 0.35
    assert roi.heatmap_score > 0


def test_pad_box_clamps_to_frame():
    assert pad_box(Rect(0, 0, 10, 10), 12, 12) == Rect(0, 0, 11, 11)
    assert pad_box(Rect(50, 50, 50, 50), 100, 100) == Rect(44, 44, 56, 56)


def test_merge_joins_boxes_within_one_pixel():
    a, b, far = Rect(0, 0, 10, 10), Rect(11, 0, 5, 5), Rect(40, 40, 5, 5)
    assert boxes_touch_or_overlap(a, b)
    assert not boxes_touch_or_overlap(a, far)
    assert merge_boxes([a, far, b]) == [Rect(0, 0, 16, 10), far]
