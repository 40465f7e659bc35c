import cv2
import numpy as np
import pytest

from triage.blobs import Blob, PeakBlobAnalyzer, max_blob_size


def mask_with_disks(*disks, size=200):
    mask = np.zeros((size, size), dtype=np.uint8)
    for center, radius in disks:
        cv2.circle(mask, center, radius, 255, thickness=-1)
    return mask


def test_detects_moving_disk_diameter():
    analyzer = PeakBlobAnalyzer(min_area=25, max_area=5000)

    blobs, size = analyzer.analyze(mask_with_disks(((100, 100), 15)))

    assert len(blobs) == 1
    assert size == pytest.approx(30, abs=4)
    assert blobs[0].centroid == pytest.approx((100, 100), abs=1.5)


def test_largest_blob_wins():
    analyzer = PeakBlobAnalyzer(min_area=25, max_area=5000)

    blobs, size = analyzer.analyze(mask_with_disks(((50, 50), 8), ((140, 140), 20)))

    assert len(blobs) == 2
    assert size == max(b.size for b in blobs)
    assert size == pytest.approx(40, abs=4)


def test_blobs_below_min_area_are_dropped():
    analyzer = PeakBlobAnalyzer(min_area=50, max_area=5000)

    blobs, size = analyzer.analyze(mask_with_disks(((100, 100), 2)))

    assert blobs == []
    assert size == 0.0


def test_blobs_above_max_area_are_dropped():
    analyzer = PeakBlobAnalyzer(min_area=25, max_area=500)

    _, size = analyzer.analyze(mask_with_disks(((100, 100), 30)))

    assert size == 0.0


def test_empty_mask_has_no_blobs():
    analyzer = PeakBlobAnalyzer(min_area=25, max_area=5000)
    assert analyzer.analyze(np.zeros((200, 200), dtype=np.uint8)) == ([], 0.0)


def test_max_blob_size_of_list():
    blobs = [Blob(size=4.0, centroid=(0, 0)), Blob(size=11.5, centroid=(3, 3))]
    assert max_blob_size(blobs) == 11.5
    assert max_blob_size([]) == 0.0
    assert blobs[1].area == pytest.approx(np.pi * 5.75**2)
