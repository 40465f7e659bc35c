import csv
import logging
import os
import shutil
import threading
from typing import Optional

import cv2

from triage.classifier import VideoVerdict
from triage.config import Config
from triage.constants import LOG_HEADER
from triage.errors import LogWriteFailed, RouteFailed
from triage.motion import PeakRecord

logger = logging.getLogger(__name__)


def snapshot_paths(video_path: str, dest_dir: str) -> tuple[str, str]:
    """Paths of the peak frame and peak mask images for a video."""
    name = os.path.basename(video_path)
    return (
        os.path.join(dest_dir, f"frame_{name}.png"),
        os.path.join(dest_dir, f"mask_{name}.png"),
    )


def _remove_files(paths: list[str]) -> None:
    for path in paths:
        try:
            os.remove(path)
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)


def route_video(video_path: str, decision: bool, peak: Optional[PeakRecord], config: Config) -> str:
    """Write the peak snapshots and move the video to the keep or discard directory.

    Nothing already in the destination is ever overwritten. If any step
    fails, snapshots written so far are removed and the source file stays
    where it was.

    Args:
        video_path: Path to the source video.
        decision: True to keep the video.
        peak: Peak record of the video, or None if it had no motion.
        config: Run configuration with the destination directories.

    Returns:
        The destination directory.

    Raises:
        RouteFailed: If the destination is taken, a snapshot could not be
            written or the move failed.
    """
    dest_dir = config.keep_dir if decision else config.discard_dir

    try:
        os.makedirs(dest_dir, exist_ok=True)
    except OSError as e:
        raise RouteFailed(f"Could not create {dest_dir}: {e}") from e

    target = os.path.join(dest_dir, os.path.basename(video_path))
    snapshots = []
    if peak is not None:
        frame_path, mask_path = snapshot_paths(video_path, dest_dir)
        snapshots = [(frame_path, peak.frame), (mask_path, peak.fg_mask)]
    else:
        logger.debug("No peak for %s, skipping snapshots", video_path)

    for path in [target] + [path for path, _ in snapshots]:
        if os.path.exists(path):
            raise RouteFailed(f"Destination already exists: {path}")

    written = []
    try:
        for path, image in snapshots:
            try:
                ok = cv2.imwrite(path, image)
            except cv2.error as e:
                raise RouteFailed(f"Could not write {path}: {e}") from e
            if not ok:
                raise RouteFailed(f"Could not write {path}")
            written.append(path)

        try:
            shutil.move(video_path, target)
        except OSError as e:
            raise RouteFailed(f"Could not move {video_path} to {dest_dir}: {e}") from e
    except RouteFailed:
        _remove_files(written)
        raise

    return dest_dir


def format_record(verdict: VideoVerdict) -> list[str]:
    return [
        verdict.filename,
        f"{verdict.duration:.3f}",
        f"{verdict.mean_motion:.3f}",
        f"{verdict.max_blob_size:.3f}",
        f"{verdict.peak_timestamp:.3f}",
        "1" if verdict.decision else "0",
    ]


class ResultsLog:
    """Append-only CSV log shared by all video sessions of a run."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()

    def append(self, verdict: VideoVerdict) -> None:
        """Append one verdict, writing the header first if the file is new.

        Raises:
            LogWriteFailed: If the file could not be written.
        """
        with self._lock:
            try:
                parent = os.path.dirname(self.path)
                if parent:
                    os.makedirs(parent, exist_ok=True)

                needs_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
                with open(self.path, "a", newline="", encoding="utf-8") as f:
                    writer = csv.writer(f, quoting=csv.QUOTE_ALL)
                    if needs_header:
                        writer.writerow(LOG_HEADER)
                    writer.writerow(format_record(verdict))
            except OSError as e:
                raise LogWriteFailed(f"Could not append to {self.path}: {e}") from e

    def read(self) -> list[list[str]]:
        """All rows including the header; empty if the log does not exist yet."""
        if not os.path.exists(self.path):
            return []
        with self._lock, open(self.path, newline="", encoding="utf-8") as f:
            return list(csv.reader(f))
