from dataclasses import dataclass


@dataclass(frozen=True)
class VideoVerdict:
    filename: str
    duration: float
    mean_motion: float
    max_blob_size: float
    peak_timestamp: float
    decision: bool
    motion_frames: int = 0
    frames_processed: int = 0
    cancelled: bool = False
    processing_seconds: float = 0.0  # Wall time spent decoding and scanning


def classify(
    mean_motion: float, max_blob_size: float, motion_threshold: float, blob_threshold: float
) -> bool:
    """Keep a video only if it has both enough motion and a large enough blob."""
    return mean_motion > motion_threshold and max_blob_size > blob_threshold
