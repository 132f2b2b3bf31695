"""
Unit tests for detection masks, blob extraction and minimum-distance merging
"""

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from symbol_detect.blobs import blobs_to_detections, detection_mask, extract_blobs, merge_blobs
from common.geometry import pairwise_min_distance, ref_to_center
from common.types import Blob


class TestDetectionMask:
    """Test cases for detection_mask"""

    def test_threshold_is_inclusive(self):
        surface = np.array([[0.79, 0.8], [0.81, -1.0]], dtype=np.float32)
        mask = detection_mask(surface, 0.8)
        assert mask.tolist() == [[0, 255], [255, 0]]
        assert mask.dtype == np.uint8

    def test_foreground_never_grows_with_coefficient(self):
        rng = np.random.default_rng(1)
        surface = rng.uniform(-1, 1, size=(30, 30)).astype(np.float32)
        counts = [np.count_nonzero(detection_mask(surface, c)) for c in np.linspace(-1, 1, 21)]
        assert all(a >= b for a, b in zip(counts, counts[1:]))

    @pytest.mark.parametrize("c", [-1.01, 1.5])
    def test_invalid_coefficient(self, c):
        with pytest.raises(ValueError):
            detection_mask(np.zeros((2, 2), dtype=np.float32), c)


class TestExtractBlobs:
    """Test cases for extract_blobs"""

    def test_empty_mask_has_no_blobs(self):
        surface = np.full((20, 20), -1.0, dtype=np.float32)
        mask = np.zeros((20, 20), dtype=np.uint8)
        assert extract_blobs(mask, surface) == []

    def test_single_cell(self):
        surface = np.zeros((10, 10), dtype=np.float32)
        surface[3, 7] = 0.9
        mask = detection_mask(surface, 0.8)
        blobs = extract_blobs(mask, surface)
        assert len(blobs) == 1
        assert blobs[0].point == (7.0, 3.0)
        assert blobs[0].strength == pytest.approx(0.9)
        assert blobs[0].area == 1

    def test_diagonal_cells_are_connected(self):
        """8-connectivity joins diagonal neighbours"""
        mask = np.zeros((6, 6), dtype=np.uint8)
        mask[1, 1] = mask[2, 2] = mask[3, 3] = 255
        blobs = extract_blobs(mask, np.zeros((6, 6), dtype=np.float32))
        assert len(blobs) == 1
        assert blobs[0].point == pytest.approx((2.0, 2.0))
        assert blobs[0].area == 3

    def test_centroid_and_peak(self):
        surface = np.zeros((20, 20), dtype=np.float32)
        surface[4:7, 4:7] = 0.85
        surface[5, 6] = 0.97
        surface[15, 12] = 0.9
        mask = detection_mask(surface, 0.8)
        blobs = extract_blobs(mask, surface)
        assert len(blobs) == 2
        big = max(blobs, key=lambda b: b.area)
        assert big.point == pytest.approx((5.0, 5.0))
        assert big.strength == pytest.approx(0.97)
        assert big.bbox == (4, 4, 3, 3)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="shape"):
            extract_blobs(np.zeros((3, 3), dtype=np.uint8), np.zeros((4, 3), dtype=np.float32))


class TestMergeBlobs:
    """Test cases for strength-greedy minimum-distance merging"""

    def test_strongest_wins_within_distance(self):
        a = Blob(x=0, y=0, strength=0.90)
        b = Blob(x=10, y=0, strength=0.95)
        c = Blob(x=100, y=0, strength=0.85)
        merged = merge_blobs([a, b, c], 50)
        assert merged == [b, c]

    def test_equal_strength_prefers_raster_order(self):
        right = Blob(x=30, y=0, strength=1.0)
        left = Blob(x=0, y=0, strength=1.0)
        lower = Blob(x=0, y=20, strength=1.0)
        assert merge_blobs([right, lower, left], 50) == [left]

    def test_exact_distance_is_kept(self):
        a = Blob(x=0, y=0, strength=0.9)
        b = Blob(x=30, y=40, strength=0.8)
        assert merge_blobs([a, b], 50) == [a, b]

    def test_result_in_descending_strength(self):
        blobs = [Blob(x=i * 100, y=0, strength=s) for i, s in enumerate([0.81, 0.99, 0.9])]
        merged = merge_blobs(blobs, 50)
        assert [b.strength for b in merged] == pytest.approx([0.99, 0.9, 0.81])

    def test_idempotent_and_spaced(self):
        """Merging twice changes nothing; survivors are at least d apart"""
        rng = np.random.default_rng(2)
        blobs = [
            Blob(x=x, y=y, strength=s)
            for x, y, s in zip(rng.uniform(0, 300, 80), rng.uniform(0, 300, 80), rng.uniform(0.8, 1.0, 80))
        ]
        once = merge_blobs(blobs, 40)
        twice = merge_blobs(once, 40)
        assert twice == once
        assert pairwise_min_distance([b.point for b in once]) >= 40
        assert 1 <= len(once) < len(blobs)

    def test_empty(self):
        assert merge_blobs([], 50) == []

    @pytest.mark.parametrize("d", [0, -3, float("inf"), float("nan")])
    def test_invalid_distance(self, d):
        with pytest.raises(ValueError):
            merge_blobs([Blob(x=0, y=0, strength=1.0)], d)


class TestCoordinateMapping:
    """Test cases for reference point -> symbol center"""

    def test_ref_to_center(self):
        assert ref_to_center(20, 20, 10, 10) == (25.0, 25.0)
        assert ref_to_center(3.5, 1, 7, 4) == (7.0, 3.0)

    def test_blobs_to_detections_keeps_order(self):
        blobs = [Blob(x=19, y=19, strength=1.0, area=2), Blob(x=149, y=149, strength=0.9)]
        dets = blobs_to_detections(blobs, 12, 12)
        assert [d.point for d in dets] == [(25.0, 25.0), (155.0, 155.0)]
        assert dets[0].area == 2
        assert dets[1].strength == pytest.approx(0.9)

    def test_pairwise_min_distance(self):
        assert pairwise_min_distance([(0, 0)]) == float("inf")
        assert pairwise_min_distance([(0, 0), (3, 4), (100, 100)]) == pytest.approx(5.0)
