import cv2
import numpy as np

from triage.config import RoiGeometry
from triage.errors import GeometryOutOfBounds


def circle_mask(width: int, height: int, center: tuple[int, int], radius: int) -> np.ndarray:
    """Binary uint8 mask, 255 on and inside the circle, 0 strictly outside."""
    cx, cy = center
    yy, xx = np.ogrid[:height, :width]
    inside = (xx - cx) ** 2 + (yy - cy) ** 2 <= radius * radius
    return inside.astype(np.uint8) * 255


class RoiMasker:
    """Crops frames to the ROI rectangle and blacks out everything outside the circle."""

    def __init__(self, geometry: RoiGeometry) -> None:
        geometry.validate()
        self.geometry = geometry
        _, _, w, h = geometry.crop
        self.mask = circle_mask(w, h, geometry.local_center, geometry.radius)

    def check_bounds(self, width: int, height: int) -> None:
        if not self.geometry.fits_frame(width, height):
            raise GeometryOutOfBounds(
                f"ROI crop {self.geometry.crop} exceeds frame size {width}x{height}"
            )

    def apply(self, frame: np.ndarray) -> np.ndarray:
        height, width = frame.shape[:2]
        self.check_bounds(width, height)

        x, y, w, h = self.geometry.crop
        cropped = frame[y:y + h, x:x + w]
        return cv2.bitwise_and(cropped, cropped, mask=self.mask)
