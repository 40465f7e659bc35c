"""Adaptive background models.

Both implementations wrap OpenCV's MOG2 mixture-of-Gaussians subtractor: each
pixel keeps a small mixture of Gaussians (weights, means, variances) that is
updated with an exponentially decaying learning rate of roughly
``1 / history``. A pixel is foreground when no dominant background component
explains it within ``var_threshold`` (squared Mahalanobis distance).

Shadow detection is off by default and masks are thresholded to 0 / 255, so
they stay strictly binary either way. A model belongs to exactly one video
session and is never reused.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import cv2
import numpy as np

from triage.config import Config
from triage.constants import BG_DETECT_SHADOWS
from triage.errors import ConfigError, DimensionMismatch

logger = logging.getLogger(__name__)

# Automatic learning rate, derived from history
AUTO_LEARNING_RATE = -1


def cuda_device_count() -> int:
    """Number of CUDA devices OpenCV can use; 0 when built without CUDA."""
    if not hasattr(cv2, "cuda"):
        return 0
    try:
        return cv2.cuda.getCudaEnabledDeviceCount()
    except cv2.error:
        return 0


def cuda_device_compatible(device: int = 0) -> bool:
    """Whether this OpenCV build has kernels that run on the given device."""
    try:
        return cv2.cuda.DeviceInfo(device).isCompatible()
    except (AttributeError, cv2.error):
        return False


def cuda_available() -> bool:
    """Check if OpenCV was built with CUDA and can see a device."""
    return cuda_device_count() > 0


def resolve_backend(backend: str) -> str:
    """Turn ``auto`` into the concrete backend for this machine."""
    if backend == "auto":
        return "cuda" if cuda_available() else "cpu"
    return backend


def report_backend(config: Config) -> str:
    """Log the CUDA devices OpenCV sees and the backend the run will use.

    Returns:
        The resolved backend, ``cpu`` or ``cuda``.
    """
    count = cuda_device_count()
    if count > 0:
        logger.info(
            "CUDA-enabled devices: %d (device 0 %s)",
            count,
            "compatible" if cuda_device_compatible() else "not compatible with this OpenCV build",
        )
    else:
        logger.info("CUDA-enabled devices: 0")

    backend = resolve_backend(config.backend)
    logger.info("Background subtraction backend: %s (requested %s)", backend, config.backend)
    return backend


class BackgroundModel(ABC):
    """Causal per-pixel background model for one video session.

    The first call to ``apply`` only seeds the model. Its mask is returned
    for completeness but carries no information about change and callers
    must leave it out of any motion statistics.
    """

    def __init__(self, history: int, var_threshold: float) -> None:
        self.history = history
        self.var_threshold = var_threshold
        self.frames_seen = 0
        self._shape: Optional[tuple[int, ...]] = None

    @property
    def initialized(self) -> bool:
        return self.frames_seen > 0

    def apply(self, frame: np.ndarray) -> np.ndarray:
        """Update the model with ``frame`` and return its binary foreground mask."""
        if self._shape is None:
            self._shape = frame.shape
        elif frame.shape != self._shape:
            raise DimensionMismatch(
                f"Frame shape {frame.shape} does not match session shape {self._shape}"
            )

        fg_mask = self._apply(frame)
        self.frames_seen += 1

        # Strictly binary output
        _, fg_mask = cv2.threshold(fg_mask, 0, 255, cv2.THRESH_BINARY)
        return fg_mask

    @abstractmethod
    def _apply(self, frame: np.ndarray) -> np.ndarray: ...

    def release(self) -> None:
        """Drop the model state; the instance must not be used afterwards."""


class Mog2BackgroundModel(BackgroundModel):
    """Software MOG2 running on the CPU."""

    def __init__(self, history: int, var_threshold: float) -> None:
        super().__init__(history, var_threshold)
        self._subtractor = cv2.createBackgroundSubtractorMOG2(
            history=history, varThreshold=var_threshold, detectShadows=BG_DETECT_SHADOWS
        )

    def _apply(self, frame: np.ndarray) -> np.ndarray:
        return self._subtractor.apply(frame, learningRate=AUTO_LEARNING_RATE)

    def release(self) -> None:
        self._subtractor = None


class CudaBackgroundModel(BackgroundModel):
    """MOG2 offloaded to a CUDA device.

    Upload, apply and download run back to back for each frame, so the call
    blocks until the device is done and frame order is preserved.
    """

    def __init__(self, history: int, var_threshold: float) -> None:
        super().__init__(history, var_threshold)
        self._subtractor = cv2.cuda.createBackgroundSubtractorMOG2(
            history=history, varThreshold=var_threshold, detectShadows=BG_DETECT_SHADOWS
        )
        self._stream = cv2.cuda.Stream()
        self._gpu_frame = cv2.cuda_GpuMat()

    def _apply(self, frame: np.ndarray) -> np.ndarray:
        self._gpu_frame.upload(frame, stream=self._stream)
        gpu_mask = self._subtractor.apply(self._gpu_frame, AUTO_LEARNING_RATE, self._stream)
        fg_mask = gpu_mask.download(stream=self._stream)
        self._stream.waitForCompletion()
        return fg_mask

    def release(self) -> None:
        self._subtractor = None
        self._gpu_frame = None


def create_background_model(config: Config) -> BackgroundModel:
    """Create a fresh background model for one video."""
    backend = resolve_backend(config.backend)

    if backend == "cuda":
        if not cuda_available():
            raise ConfigError("CUDA backend requested but no CUDA-enabled OpenCV device was found")
        logger.debug(
            "Using CUDA MOG2 (history=%d, varThreshold=%s)", config.history, config.var_threshold
        )
        return CudaBackgroundModel(config.history, config.var_threshold)

    logger.debug("Using CPU MOG2 (history=%d, varThreshold=%s)", config.history, config.var_threshold)
    return Mog2BackgroundModel(config.history, config.var_threshold)
