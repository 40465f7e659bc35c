import json
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Iterator

import cv2
import numpy as np
import static_ffmpeg

from triage.constants import FALLBACK_FPS, VIDEO_EXTENSIONS
from triage.errors import OpenFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoAsset:
    path: str
    duration: float
    fps: float
    width: int
    height: int
    frame_count: int

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height else 0.0


@dataclass(frozen=True)
class Frame:
    pixels: np.ndarray
    index: int
    timestamp: float  # Seconds from the start of the video


def list_video_files(input_dir: str) -> list[str]:
    """Find all video files in the input directory, sorted by name."""
    if not os.path.isdir(input_dir):
        logger.warning("Input directory %s does not exist", input_dir)
        return []

    return sorted(
        os.path.join(input_dir, f)
        for f in os.listdir(input_dir)
        if os.path.isfile(os.path.join(input_dir, f))
        and os.path.splitext(f)[1].lower() in VIDEO_EXTENSIONS
    )


def _parse_rate(rate: str) -> float:
    num, den = rate.split("/")
    return float(num) / float(den) if float(den) else 0.0


def probe_duration_fps(video_path: str) -> tuple[float, float]:
    """Read duration and fps with ffprobe.

    Used when the container metadata OpenCV sees is missing or broken. Any
    failure to get or run ffprobe, or to parse its output, is logged and
    reported as unknown values.

    Args:
        video_path: Path to the video file.

    Returns:
        A tuple of (duration in seconds, fps). Either may be 0.0 if unknown.
    """
    # Download ffprobe binary if needed
    try:
        static_ffmpeg.add_paths()
    except Exception as e:
        logger.warning("Could not set up ffprobe for %s: %s", video_path, e)
        return 0.0, 0.0

    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        video_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        info = json.loads(result.stdout)
    except (subprocess.CalledProcessError, OSError, json.JSONDecodeError) as e:
        logger.warning("ffprobe failed for %s: %s", video_path, e)
        return 0.0, 0.0

    try:
        duration = float(info.get("format", {}).get("duration", 0.0) or 0.0)
        fps = 0.0
        for stream in info.get("streams", []):
            if stream.get("codec_type") != "video":
                continue
            rate = stream.get("avg_frame_rate") or stream.get("r_frame_rate")
            if rate and rate != "0/0":
                fps = _parse_rate(rate)
            break
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning("Unreadable ffprobe output for %s: %s", video_path, e)
        return 0.0, 0.0

    return duration, fps


def probe_video(video_path: str, fallback_fps: float = FALLBACK_FPS) -> VideoAsset:
    """Read video metadata with OpenCV, falling back to ffprobe.

    Args:
        video_path: Path to the video file.
        fallback_fps: FPS to assume if no source reports one.

    Returns:
        The video's metadata.

    Raises:
        OpenFailed: If OpenCV cannot open the file.
    """
    try:
        cap = cv2.VideoCapture(video_path)
    except cv2.error as e:
        raise OpenFailed(f"Could not open video: {video_path}: {e}") from e
    if not cap.isOpened():
        raise OpenFailed(f"Could not open video: {video_path}")

    try:
        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    except cv2.error as e:
        raise OpenFailed(f"Could not read metadata of {video_path}: {e}") from e
    finally:
        cap.release()

    duration = frame_count / fps if fps > 0 and frame_count > 0 else 0.0

    if fps <= 0 or duration <= 0:
        probed_duration, probed_fps = probe_duration_fps(video_path)
        if fps <= 0:
            fps = probed_fps if probed_fps > 0 else fallback_fps
        if duration <= 0:
            duration = probed_duration

    return VideoAsset(
        path=video_path,
        duration=duration,
        fps=fps,
        width=width,
        height=height,
        frame_count=frame_count,
    )


def iter_frames(video_path: str, fps: float) -> Iterator[Frame]:
    """Yield frames in playback order.

    Raises:
        OpenFailed: If the video cannot be opened or a frame fails to decode.
    """
    try:
        cap = cv2.VideoCapture(video_path)
    except cv2.error as e:
        raise OpenFailed(f"Could not open video: {video_path}: {e}") from e
    if not cap.isOpened():
        raise OpenFailed(f"Could not open video: {video_path}")

    try:
        frame_idx = 0
        while True:
            try:
                ret, pixels = cap.read()
            except cv2.error as e:
                raise OpenFailed(f"Could not decode frame {frame_idx} of {video_path}: {e}") from e
            if not ret:
                break

            yield Frame(pixels=pixels, index=frame_idx, timestamp=frame_idx / fps)
            frame_idx += 1
    finally:
        cap.release()
