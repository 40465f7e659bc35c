#!/usr/bin/env python3
"""
Fisheye Motion Triage

Sorts a folder of fixed circular-fisheye surveillance videos into "motion" and
"no motion" directories using background subtraction inside the lens circle,
and appends one summary row per video to a CSV log.
"""

import argparse
import logging
import signal
import sys
import threading

from triage.config import Config, RoiGeometry, load_config
from triage.errors import ConfigError, GeometryOutOfBounds
from triage.motion_detection import process_videos
from triage.video_io import list_video_files

logger = logging.getLogger("triage")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--config", help="JSON file with configuration values")
    parser.add_argument("--input-dir", help="Directory with the videos to triage")
    parser.add_argument("--log-path", help="CSV results log to append to")
    parser.add_argument("--keep-dir", help="Destination for videos with motion")
    parser.add_argument("--discard-dir", help="Destination for videos without motion")

    roi = parser.add_argument_group("region of interest")
    roi.add_argument("--crop", type=int, nargs=4, metavar=("X", "Y", "W", "H"))
    roi.add_argument("--center", type=int, nargs=2, metavar=("CX", "CY"))
    roi.add_argument("--radius", type=int)

    model = parser.add_argument_group("background model")
    model.add_argument("--history", type=int)
    model.add_argument("--var-threshold", type=float)
    model.add_argument("--backend", choices=("cpu", "cuda", "auto"))

    blobs = parser.add_argument_group("blob detector")
    blobs.add_argument("--min-area", type=float)
    blobs.add_argument("--max-area", type=float)

    thresholds = parser.add_argument_group("classification")
    thresholds.add_argument("--motion-threshold", type=float)
    thresholds.add_argument("--blob-threshold", type=float)

    parser.add_argument("--workers", type=int, help="Videos to process in parallel")
    parser.add_argument("--no-progress", action="store_true", help="Hide per-video progress bars")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def resolve_config(args: argparse.Namespace) -> Config:
    """Defaults, then the config file, then command line flags."""
    config = load_config(args.config) if args.config else Config()

    roi = config.roi
    if args.crop or args.center or args.radius is not None:
        roi = RoiGeometry(
            crop=tuple(args.crop) if args.crop else roi.crop,
            center=tuple(args.center) if args.center else roi.center,
            radius=args.radius if args.radius is not None else roi.radius,
        )

    return config.with_overrides(
        input_dir=args.input_dir,
        log_path=args.log_path,
        keep_dir=args.keep_dir,
        discard_dir=args.discard_dir,
        roi=roi,
        history=args.history,
        var_threshold=args.var_threshold,
        backend=args.backend,
        min_area=args.min_area,
        max_area=args.max_area,
        motion_threshold=args.motion_threshold,
        blob_threshold=args.blob_threshold,
        workers=args.workers,
        show_progress=False if args.no_progress else None,
    )


def install_cancel_handler(cancel: threading.Event) -> None:
    """First Ctrl+C finishes the current video early, a second one aborts the run."""

    def handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        print("\nCancelling current video (Ctrl+C again to abort)...")
        cancel.set()

    signal.signal(signal.SIGINT, handler)


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = resolve_config(args).validate()
    except (ConfigError, GeometryOutOfBounds) as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    video_files = list_video_files(config.input_dir)
    if not video_files:
        print(f"No video files found in {config.input_dir}/")
        return 0

    print(f"Found {len(video_files)} videos to process in `{config.input_dir}`...\n")

    cancel = threading.Event()
    install_cancel_handler(cancel)

    try:
        process_videos(video_files, config, cancel)
    except (ConfigError, GeometryOutOfBounds) as e:
        logger.error("Invalid configuration: %s", e)
        return 2
    except KeyboardInterrupt:
        print("\nAborted.")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
