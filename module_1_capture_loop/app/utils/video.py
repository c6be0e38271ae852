"""Camera utilities for the capture loop."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)


class DeviceUnavailable(RuntimeError):
    """Raised when no camera can be opened or it stops delivering frames."""


@dataclass
class Frame:
    index: int
    data: np.ndarray
    captured_at: datetime


def open_camera(index: int = 0, width: int = 640, height: int = 480) -> cv2.VideoCapture:
    """Open a camera device and request a fixed capture resolution."""

    capture = cv2.VideoCapture(index)
    if not capture.isOpened():
        capture.release()
        raise DeviceUnavailable(f"Unable to open camera device {index}")
    capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    LOGGER.info("Camera %d opened at requested %dx%d", index, width, height)
    return capture


def read_frame(capture: cv2.VideoCapture, index: int = 0) -> Frame:
    """Sample the current frame at the camera's native resolution."""

    success, data = capture.read()
    if not success or data is None:
        raise DeviceUnavailable("Camera returned no frame")
    return Frame(index=index, data=data, captured_at=datetime.now(timezone.utc))


def encode_jpeg(frame: np.ndarray, quality: int = 90) -> bytes:
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()
