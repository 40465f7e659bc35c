import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

import cv2
from tqdm import tqdm

from triage.background import BackgroundModel, create_background_model, cuda_available, report_backend
from triage.blobs import PeakBlobAnalyzer
from triage.classifier import VideoVerdict, classify
from triage.config import Config
from triage.errors import (
    ConfigError,
    DimensionMismatch,
    ErrorKind,
    LogWriteFailed,
    OpenFailed,
    RouteFailed,
    TriageError,
)
from triage.motion import MotionAggregator, PeakRecord, foreground_mass
from triage.roi import RoiMasker
from triage.routing import ResultsLog, route_video
from triage.video_io import Frame, VideoAsset, iter_frames, probe_video

logger = logging.getLogger(__name__)


class SessionState(Enum):
    OPENING = "opening"
    INITIALIZING = "initializing"
    SCANNING = "scanning"
    FINALIZING = "finalizing"
    ROUTED = "routed"


@dataclass
class ScanResult:
    frames_processed: int = 0
    motion_frame_count: int = 0
    motion_mass_sum: float = 0.0
    mean_motion: float = 0.0
    peak: Optional[PeakRecord] = None
    cancelled: bool = False

    @property
    def max_blob_size(self) -> float:
        return self.peak.max_blob_size if self.peak is not None else 0.0

    @property
    def peak_timestamp(self) -> float:
        return self.peak.timestamp if self.peak is not None else 0.0


@dataclass
class VideoOutcome:
    path: str
    verdict: Optional[VideoVerdict] = None
    destination: Optional[str] = None
    errors: list[ErrorKind] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    skipped: bool = False
    state: SessionState = SessionState.OPENING

    @property
    def ok(self) -> bool:
        return not self.errors and not self.skipped

    def fail(self, error: TriageError) -> None:
        self.errors.append(error.kind)
        self.messages.append(str(error))


def scan_frames(
    frames: Iterable[Frame],
    config: Config,
    model: Optional[BackgroundModel] = None,
    cancel: Optional[threading.Event] = None,
    on_frame: Optional[Callable[[Frame], None]] = None,
) -> ScanResult:
    """Run the motion pipeline over frames in playback order.

    The first frame only seeds the background model. Every later frame is
    masked to the ROI, run through the model, and its foreground mass folded
    into the aggregates; a new peak triggers blob analysis of its mask.

    Args:
        frames: Frames in playback order.
        config: Run configuration.
        model: Background model to use; a fresh one is created if omitted.
        cancel: Checked between frames; when set the scan stops early.
        on_frame: Called after each fully processed frame.

    Returns:
        Metrics over the frames that were fully processed.

    Raises:
        DimensionMismatch: If a frame's shape differs from the first frame's.
        GeometryOutOfBounds: If the ROI does not fit in the frames.
    """
    masker = RoiMasker(config.roi)
    analyzer = PeakBlobAnalyzer(config.min_area, config.max_area)
    aggregator = MotionAggregator()
    owns_model = model is None
    if model is None:
        model = create_background_model(config)

    state = SessionState.INITIALIZING
    frame_shape = None
    result = ScanResult()

    try:
        for frame in frames:
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                break

            if frame_shape is None:
                frame_shape = frame.pixels.shape
            elif frame.pixels.shape != frame_shape:
                raise DimensionMismatch(
                    f"Frame {frame.index} has shape {frame.pixels.shape}, expected {frame_shape}"
                )

            masked = masker.apply(frame.pixels)
            fg_mask = model.apply(masked)
            result.frames_processed += 1

            if state is SessionState.INITIALIZING:
                # First mask cannot reflect any change
                state = SessionState.SCANNING
            else:
                mass = foreground_mass(fg_mask)
                if aggregator.update(mass, frame.pixels, fg_mask, frame.timestamp, frame.index):
                    peak = aggregator.peak
                    peak.blobs, peak.max_blob_size = analyzer.analyze(fg_mask)

            if on_frame is not None:
                on_frame(frame)
    finally:
        if owns_model:
            model.release()

    result.motion_frame_count = aggregator.motion_frame_count
    result.motion_mass_sum = aggregator.motion_mass_sum
    result.mean_motion = aggregator.mean_motion
    result.peak = aggregator.peak
    return result


def finalize(
    filename: str, duration: float, scan: ScanResult, config: Config, processing_seconds: float = 0.0
) -> VideoVerdict:
    """Classify a finished scan."""
    decision = classify(scan.mean_motion, scan.max_blob_size, config.motion_threshold, config.blob_threshold)
    return VideoVerdict(
        filename=filename,
        duration=duration,
        mean_motion=scan.mean_motion,
        max_blob_size=scan.max_blob_size,
        peak_timestamp=scan.peak_timestamp,
        decision=decision,
        motion_frames=scan.motion_frame_count,
        frames_processed=scan.frames_processed,
        cancelled=scan.cancelled,
        processing_seconds=processing_seconds,
    )


def analyze_video(
    video_path: str, config: Config, cancel: Optional[threading.Event] = None
) -> tuple[VideoAsset, ScanResult, VideoVerdict]:
    """Open, scan and classify one video.

    Args:
        video_path: Path to the video file to process.
        config: Run configuration.
        cancel: Cooperative cancellation signal.

    Returns:
        A tuple of (video metadata, scan metrics, verdict).

    Raises:
        OpenFailed: If the video cannot be opened or has no readable frames.
        DimensionMismatch: If the frame size changes mid-video.
        GeometryOutOfBounds: If the ROI does not fit this video's frames.
    """
    asset = probe_video(video_path, config.fallback_fps)
    logger.debug(
        "%s: %.1fs, %dx%d (aspect %.3f), %.2f fps",
        asset.name,
        asset.duration,
        asset.width,
        asset.height,
        asset.aspect_ratio,
        asset.fps,
    )

    timer = cv2.TickMeter()
    timer.start()
    with tqdm(
        total=asset.frame_count or None,
        bar_format="  {desc}|{bar:50}| {percentage:3.0f}%",
        leave=False,
        ascii=" #",
        disable=not config.show_progress or config.workers > 1,
    ) as pbar:
        scan = scan_frames(
            iter_frames(video_path, asset.fps),
            config,
            cancel=cancel,
            on_frame=lambda _: pbar.update(1),
        )
    timer.stop()

    if scan.frames_processed == 0 and not scan.cancelled:
        raise OpenFailed(f"No readable frames in {video_path}")

    if scan.motion_frame_count == 0:
        logger.info("%s: no motion frames", asset.name)

    verdict = finalize(asset.name, asset.duration, scan, config, timer.getTimeSec())
    return asset, scan, verdict


def process_video(
    video_path: str,
    config: Config,
    results_log: ResultsLog,
    cancel: Optional[threading.Event] = None,
    index: int = 1,
    total: int = 1,
) -> VideoOutcome:
    """Process a single video: scan, classify, route and log it.

    Per-video failures are recorded on the outcome and never raised.

    Args:
        video_path: Path to the video file to process.
        config: Run configuration.
        results_log: Shared results log.
        cancel: Cooperative cancellation signal.
        index: Current video index (1-based).
        total: Total number of videos.

    Returns:
        The outcome of this video.
    """
    video_name = os.path.basename(video_path)
    prefix = f"[{index}/{total}] {video_name}"
    outcome = VideoOutcome(path=video_path)

    if cancel is not None and cancel.is_set():
        logger.info("%s -- skipped, run cancelled", prefix)
        outcome.skipped = True
        return outcome

    try:
        _, scan, verdict = analyze_video(video_path, config, cancel)
    except TriageError as e:
        logger.error("%s -- %s", prefix, e)
        outcome.fail(e)
        return outcome

    if verdict.cancelled and verdict.frames_processed == 0:
        logger.info("%s -- cancelled before the first frame, left in place", prefix)
        outcome.skipped = True
        return outcome

    outcome.verdict = verdict
    outcome.state = SessionState.FINALIZING

    try:
        outcome.destination = route_video(video_path, verdict.decision, scan.peak, config)
        outcome.state = SessionState.ROUTED
    except RouteFailed as e:
        logger.warning("%s -- could not route, leaving file in place: %s", prefix, e)
        outcome.fail(e)

    try:
        results_log.append(verdict)
    except LogWriteFailed as e:
        logger.error("%s -- %s", prefix, e)
        outcome.fail(e)

    label = "keep" if verdict.decision else "discard"
    if verdict.cancelled:
        label += " (cancelled)"
    print(
        f"{prefix} -- {label}, {verdict.motion_frames} motion frames, "
        f"mean motion {verdict.mean_motion:.0f}, max blob {verdict.max_blob_size:.1f}px "
        f"at {verdict.peak_timestamp:.1f}s, processed in {verdict.processing_seconds:.2f}s"
    )

    return outcome


def preflight(video_files: list[str], config: Config) -> Optional[VideoAsset]:
    """Report the backend and check the ROI against the first readable video.

    Runs once per batch, before any video is processed.

    Returns:
        The probed video, or None if no video could be opened.

    Raises:
        ConfigError: If the CUDA backend was requested without a device.
        GeometryOutOfBounds: If the ROI does not fit the batch's frame size.
    """
    if report_backend(config) == "cuda" and not cuda_available():
        raise ConfigError("CUDA backend requested but no CUDA-enabled OpenCV device was found")

    masker = RoiMasker(config.roi)
    for video_path in video_files:
        try:
            asset = probe_video(video_path, config.fallback_fps)
        except OpenFailed:
            continue
        if asset.width > 0 and asset.height > 0:
            masker.check_bounds(asset.width, asset.height)
            return asset
    return None


def process_videos(
    video_files: list[str], config: Config, cancel: Optional[threading.Event] = None
) -> list[VideoOutcome]:
    """Process videos and print summary.

    Args:
        video_files: List of video file paths to process.
        config: Run configuration.
        cancel: Cooperative cancellation signal.

    Returns:
        One outcome per video, in input order.

    Raises:
        ConfigError: If the configuration is invalid.
        GeometryOutOfBounds: If the ROI does not fit the videos.
    """
    if not video_files:
        return []

    config.validate()
    video_files = sorted(video_files)
    preflight(video_files, config)

    results_log = ResultsLog(config.log_path)
    total = len(video_files)

    if config.workers > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as pool:
            futures = [
                pool.submit(process_video, path, config, results_log, cancel, i, total)
                for i, path in enumerate(video_files, 1)
            ]
            outcomes = [future.result() for future in futures]
    else:
        outcomes = []
        for i, video_path in enumerate(video_files, 1):
            outcomes.append(process_video(video_path, config, results_log, cancel, i, total))
            # A cancel only ends the current video
            if cancel is not None and cancel.is_set():
                cancel.clear()

    kept = sum(1 for o in outcomes if o.verdict is not None and o.verdict.decision)
    failed = sum(1 for o in outcomes if o.errors)
    print(f"\nKept {kept} of {total} videos in `{config.keep_dir}` ({failed} with errors)")

    return outcomes
