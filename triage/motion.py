from dataclasses import dataclass, field
from typing import Optional

import cv2
import numpy as np

from triage.blobs import Blob


def foreground_mass(fg_mask: np.ndarray) -> float:
    """Sum of mask values; each foreground pixel contributes 255."""
    return float(cv2.sumElems(fg_mask)[0])


@dataclass
class PeakRecord:
    """Snapshot of the frame with the largest foreground mass seen so far."""

    frame: np.ndarray
    fg_mask: np.ndarray
    timestamp: float
    mass: float
    index: int = 0
    blobs: list[Blob] = field(default_factory=list)
    max_blob_size: float = 0.0


class MotionAggregator:
    """Running motion statistics and causal peak tracking for one video."""

    def __init__(self) -> None:
        self.motion_frame_count = 0
        self.motion_mass_sum = 0.0
        self.peak: Optional[PeakRecord] = None

    @property
    def peak_mass(self) -> float:
        return self.peak.mass if self.peak is not None else 0.0

    @property
    def mean_motion(self) -> float:
        """Mean mass over motion frames, 0.0 when there were none."""
        if self.motion_frame_count == 0:
            return 0.0
        return self.motion_mass_sum / self.motion_frame_count

    def update(
        self, mass: float, frame: np.ndarray, fg_mask: np.ndarray, timestamp: float, index: int = 0
    ) -> bool:
        """Fold one frame's mass into the aggregates.

        Returns True when the frame becomes the new peak. Ties keep the
        earlier frame.
        """
        if mass <= 0:
            return False

        self.motion_frame_count += 1
        self.motion_mass_sum += mass

        if mass > self.peak_mass:
            self.peak = PeakRecord(
                frame=frame.copy(),
                fg_mask=fg_mask.copy(),
                timestamp=timestamp,
                mass=mass,
                index=index,
            )
            return True

        return False
