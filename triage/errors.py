"""Error taxonomy for the triage pipeline.

Configuration errors abort the batch before any video is touched. Everything
else is fatal to one video at most and ends up as an ``ErrorKind`` on that
video's outcome.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    OPEN_FAILED = "open_failed"
    DIMENSION_MISMATCH = "dimension_mismatch"
    GEOMETRY_OUT_OF_BOUNDS = "geometry_out_of_bounds"
    ROUTE_FAILED = "route_failed"
    LOG_WRITE_FAILED = "log_write_failed"


class TriageError(Exception):
    """Base class for all pipeline errors."""

    kind: Optional[ErrorKind] = None


class ConfigError(TriageError):
    """Invalid configuration value."""


class OpenFailed(TriageError):
    """The video could not be opened or read."""

    kind = ErrorKind.OPEN_FAILED


class DimensionMismatch(TriageError):
    """A frame does not match the dimensions of earlier frames in the session."""

    kind = ErrorKind.DIMENSION_MISMATCH


class GeometryOutOfBounds(TriageError):
    """The ROI does not fit inside its crop rectangle or the frame."""

    kind = ErrorKind.GEOMETRY_OUT_OF_BOUNDS


class RouteFailed(TriageError):
    """Writing snapshots or moving the source video failed."""

    kind = ErrorKind.ROUTE_FAILED


class LogWriteFailed(TriageError):
    """Appending a record to the results log failed."""

    kind = ErrorKind.LOG_WRITE_FAILED
