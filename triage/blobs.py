import math
from dataclasses import dataclass

import cv2
import numpy as np


@dataclass(frozen=True)
class Blob:
    size: float  # Diameter in pixels
    centroid: tuple[float, float]

    @property
    def area(self) -> float:
        return math.pi * (self.size / 2) ** 2


def make_blob_detector(min_area: float, max_area: float) -> cv2.SimpleBlobDetector:
    """SimpleBlobDetector that only filters on area and dark colour."""
    params = cv2.SimpleBlobDetector_Params()

    params.filterByArea = True
    params.minArea = float(min_area)
    params.maxArea = float(max_area)

    # Dark regions of the inverted mask are the ones that moved
    params.filterByColor = True
    params.blobColor = 0

    params.filterByCircularity = False
    params.filterByConvexity = False
    params.filterByInertia = False

    return cv2.SimpleBlobDetector_create(params)


class PeakBlobAnalyzer:
    """Measures the largest moving blob in a peak foreground mask."""

    def __init__(self, min_area: float, max_area: float) -> None:
        self.min_area = min_area
        self.max_area = max_area
        self._detector = make_blob_detector(min_area, max_area)

    def detect(self, fg_mask: np.ndarray) -> list[Blob]:
        inverted = cv2.bitwise_not(fg_mask)
        keypoints = self._detector.detect(inverted)
        return [Blob(size=float(kp.size), centroid=(float(kp.pt[0]), float(kp.pt[1]))) for kp in keypoints]

    def analyze(self, fg_mask: np.ndarray) -> tuple[list[Blob], float]:
        blobs = self.detect(fg_mask)
        return blobs, max_blob_size(blobs)


def max_blob_size(blobs: list[Blob]) -> float:
    """Largest blob diameter, 0.0 when nothing passed the area filter."""
    return max((blob.size for blob in blobs), default=0.0)
