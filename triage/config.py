import json
from dataclasses import dataclass, field, fields, replace
from typing import Any, Tuple

from triage import constants
from triage.errors import ConfigError, GeometryOutOfBounds

BACKENDS = ("cpu", "cuda", "auto")


@dataclass(frozen=True)
class RoiGeometry:
    # Crop rectangle in (x, y, w, h) pixel coords
    crop: Tuple[int, int, int, int]
    # Circle center in frame pixel coords
    center: Tuple[int, int]
    radius: int

    @property
    def local_center(self) -> Tuple[int, int]:
        """Circle center relative to the crop rectangle."""
        x, y, _, _ = self.crop
        cx, cy = self.center
        return cx - x, cy - y

    def validate(self) -> None:
        """Raise GeometryOutOfBounds unless the circle fits inside the crop."""
        x, y, w, h = self.crop
        if w <= 0 or h <= 0 or self.radius <= 0:
            raise GeometryOutOfBounds(f"ROI sizes must be positive: crop={self.crop}, radius={self.radius}")
        if x < 0 or y < 0:
            raise GeometryOutOfBounds(f"ROI crop origin must be non-negative: crop={self.crop}")

        lcx, lcy = self.local_center
        r = self.radius
        if lcx - r < 0 or lcy - r < 0 or lcx + r > w - 1 or lcy + r > h - 1:
            raise GeometryOutOfBounds(
                f"ROI circle (center={self.center}, radius={r}) does not fit in crop {self.crop}"
            )

    def fits_frame(self, width: int, height: int) -> bool:
        x, y, w, h = self.crop
        return x + w <= width and y + h <= height


def _default_roi() -> RoiGeometry:
    return RoiGeometry(crop=constants.ROI_CROP, center=constants.ROI_CENTER, radius=constants.ROI_RADIUS)


@dataclass(frozen=True)
class Config:
    input_dir: str = constants.INPUT_DIR
    log_path: str = constants.LOG_PATH
    keep_dir: str = constants.KEEP_DIR
    discard_dir: str = constants.DISCARD_DIR

    roi: RoiGeometry = field(default_factory=_default_roi)

    # Background model settings
    history: int = constants.BG_HISTORY
    var_threshold: float = constants.BG_VAR_THRESHOLD
    backend: str = constants.BG_BACKEND

    # Blob detector settings
    min_area: float = constants.BLOB_MIN_AREA
    max_area: float = constants.BLOB_MAX_AREA

    # Classification thresholds
    motion_threshold: float = constants.MOTION_THRESHOLD
    blob_threshold: float = constants.BLOB_THRESHOLD

    fallback_fps: float = constants.FALLBACK_FPS
    workers: int = constants.WORKERS
    show_progress: bool = True

    def validate(self) -> "Config":
        """Check every option; returns self so it can be chained."""
        self.roi.validate()

        if self.history <= 0:
            raise ConfigError(f"history must be positive, got {self.history}")
        if self.var_threshold <= 0:
            raise ConfigError(f"var_threshold must be positive, got {self.var_threshold}")
        if self.backend not in BACKENDS:
            raise ConfigError(f"backend must be one of {BACKENDS}, got {self.backend!r}")
        if self.min_area < 0 or self.max_area <= self.min_area:
            raise ConfigError(f"blob area range is empty: [{self.min_area}, {self.max_area}]")
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        if self.fallback_fps <= 0:
            raise ConfigError(f"fallback_fps must be positive, got {self.fallback_fps}")
        return self

    def with_overrides(self, **overrides: Any) -> "Config":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def config_from_dict(data: dict) -> Config:
    """Build a Config from a plain dict, e.g. parsed JSON.

    The ROI may be given either as a nested ``roi`` object or flat as
    ``roi_crop`` / ``roi_center`` / ``roi_radius``.
    """
    data = dict(data)
    known = {f.name for f in fields(Config)}

    roi_data = data.pop("roi", None) or {}
    for flat, key in (("roi_crop", "crop"), ("roi_center", "center"), ("roi_radius", "radius")):
        if flat in data:
            roi_data[key] = data.pop(flat)

    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    default_roi = _default_roi()
    try:
        roi = RoiGeometry(
            crop=tuple(int(v) for v in roi_data.get("crop", default_roi.crop)),
            center=tuple(int(v) for v in roi_data.get("center", default_roi.center)),
            radius=int(roi_data.get("radius", default_roi.radius)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid ROI geometry: {e}") from e

    if len(roi.crop) != 4 or len(roi.center) != 2:
        raise ConfigError(f"ROI crop needs 4 values and center 2, got {roi.crop} / {roi.center}")

    return Config(roi=roi, **data)


def load_config(path: str) -> Config:
    """Load a JSON config file whose keys match Config fields."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    return config_from_dict(data)
