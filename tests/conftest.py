import cv2
import numpy as np
import pytest

from triage.config import Config, RoiGeometry
from triage.video_io import Frame

FRAME_SIZE = 200
BACKGROUND = 40
FPS = 10.0


def blank_frame(value: int = BACKGROUND, size: int = FRAME_SIZE) -> np.ndarray:
    return np.full((size, size, 3), value, dtype=np.uint8)


def disk_frame(center=(100, 100), diameter: int = 30, value: int = 255) -> np.ndarray:
    frame = blank_frame()
    cv2.circle(frame, center, diameter // 2, (value, value, value), thickness=-1)
    return frame


def make_frames(pixels: list[np.ndarray], fps: float = FPS) -> list[Frame]:
    return [Frame(pixels=p, index=i, timestamp=i / fps) for i, p in enumerate(pixels)]


@pytest.fixture
def roi() -> RoiGeometry:
    return RoiGeometry(crop=(0, 0, FRAME_SIZE, FRAME_SIZE), center=(100, 100), radius=90)


@pytest.fixture
def config(tmp_path, roi) -> Config:
    return Config(
        input_dir=str(tmp_path / "inputs"),
        log_path=str(tmp_path / "results.csv"),
        keep_dir=str(tmp_path / "keep"),
        discard_dir=str(tmp_path / "discard"),
        roi=roi,
        history=500,
        var_threshold=16,
        backend="cpu",
        min_area=25,
        max_area=5000,
        motion_threshold=1000.0,
        blob_threshold=20.0,
        show_progress=False,
    )
