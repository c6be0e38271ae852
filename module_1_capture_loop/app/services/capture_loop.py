"""Periodic frame capture and result bookkeeping for the viewer."""
from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import CancelledError, Executor, Future, ThreadPoolExecutor
from functools import partial
from typing import Callable, List, Optional

import cv2
import numpy as np

from ..config.settings import AppSettings
from ..models import (
    STATUS_CAMERA_ERROR,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_READY,
    STATUS_STARTING,
    STATUS_STOPPED,
    DetectionResult,
    Label,
)
from ..utils.video import DeviceUnavailable, encode_jpeg, open_camera, read_frame
from .overlay import render_overlay
from .relay_client import RelayClient

LOGGER = logging.getLogger(__name__)

CameraFactory = Callable[[int, int, int], cv2.VideoCapture]


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds on a background thread.

    The first call happens one interval after ``start``. ``start`` and
    ``stop`` are idempotent and report whether they changed anything.
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str = "capture-timer") -> None:
        self.interval = interval
        self.callback = callback
        self.name = name
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def running(self) -> bool:
        return self._thread is not None

    def start(self) -> bool:
        if self._thread is not None:
            return False
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, args=(self._stop_event,), name=self.name, daemon=True)
        self._thread.start()
        return True

    def stop(self) -> bool:
        thread, stop_event = self._thread, self._stop_event
        if thread is None or stop_event is None:
            return False
        self._thread = None
        self._stop_event = None
        stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=self.interval + 1.0)
        return True

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception:
                LOGGER.exception("Periodic task %s failed", self.name)


class CaptureLoop:
    """Own the camera, the capture timer, and the current detection result."""

    def __init__(
        self,
        settings: AppSettings,
        client: RelayClient,
        camera_factory: Optional[CameraFactory] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self._camera_factory = camera_factory or open_camera
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.max_inflight_requests,
            thread_name_prefix="relay-request",
        )
        self._camera: Optional[cv2.VideoCapture] = None
        self._camera_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._timer: Optional[PeriodicTask] = None
        self._sequence = itertools.count(1)
        self._latest_settled = 0
        self._frames_captured = 0
        self._status = STATUS_READY
        self._result: Optional[DetectionResult] = None
        self._canvas: Optional[np.ndarray] = None
        self._closed = False

    def __enter__(self) -> "CaptureLoop":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def status(self) -> str:
        return self._status

    @property
    def result(self) -> Optional[DetectionResult]:
        return self._result

    @property
    def detections(self) -> List[Label]:
        result = self._result
        return list(result.labels) if result else []

    @property
    def canvas(self) -> Optional[np.ndarray]:
        return self._canvas

    @property
    def is_capturing(self) -> bool:
        return self._timer is not None

    @property
    def has_camera(self) -> bool:
        return self._camera is not None

    @property
    def frames_captured(self) -> int:
        return self._frames_captured

    def acquire_camera(self) -> bool:
        """Open the camera; failures only change the status."""

        with self._camera_lock:
            if self._camera is not None:
                return True
            try:
                self._camera = self._camera_factory(
                    self.settings.camera_index,
                    self.settings.frame_width,
                    self.settings.frame_height,
                )
            except DeviceUnavailable as exc:
                LOGGER.error("Error accessing webcam: %s", exc)
                with self._state_lock:
                    self._status = STATUS_CAMERA_ERROR
                return False
        return True

    def release_camera(self) -> None:
        with self._camera_lock:
            camera, self._camera = self._camera, None
        if camera is not None:
            LOGGER.info("Releasing camera %d", self.settings.camera_index)
            camera.release()

    def preview(self) -> Optional[np.ndarray]:
        """Read a live frame for display without issuing a request."""

        with self._camera_lock:
            if self._camera is None:
                return None
            try:
                return read_frame(self._camera).data
            except DeviceUnavailable:
                return None

    def capture_once(self) -> Optional[Future]:
        """Sample the current frame and send it to the relay.

        Returns a future that settles once the response has been applied to
        the loop state, or ``None`` when no request was issued.
        """

        if self._closed:
            return None
        with self._camera_lock:
            if self._camera is None:
                LOGGER.debug("Capture skipped, no camera acquired")
                return None
            try:
                frame = read_frame(self._camera, index=self._frames_captured + 1)
            except DeviceUnavailable as exc:
                LOGGER.warning("Error reading frame: %s", exc)
                with self._state_lock:
                    self._status = STATUS_FAILED
                return None

        try:
            payload = encode_jpeg(frame.data, self.settings.jpeg_quality)
        except ValueError as exc:
            LOGGER.warning("Error encoding frame: %s", exc)
            with self._state_lock:
                self._status = STATUS_FAILED
            return None

        with self._state_lock:
            self._frames_captured += 1
            sequence = next(self._sequence)
            if self._canvas is None:
                self._canvas = frame.data
            self._status = STATUS_PROCESSING

        try:
            request = self._executor.submit(self.client.detect, payload, sequence)
        except RuntimeError:
            LOGGER.debug("Request pool already shut down, dropping frame #%d", sequence)
            return None
        settled: Future = Future()
        request.add_done_callback(partial(self._settle, sequence, frame.data, settled))
        return settled

    def _settle(self, sequence: int, frame: np.ndarray, settled: Future, request: Future) -> None:
        try:
            result: Optional[DetectionResult] = request.result()
        except CancelledError:
            settled.cancel()
            return
        except Exception as exc:
            LOGGER.warning("Error detecting objects in frame #%d: %s", sequence, exc)
            try:
                self._apply(sequence, frame, None)
            finally:
                settled.set_exception(exc)
            return
        try:
            self._apply(sequence, frame, result)
        finally:
            settled.set_result(result)

    def _apply(self, sequence: int, frame: np.ndarray, result: Optional[DetectionResult]) -> None:
        with self._state_lock:
            if self._closed:
                LOGGER.debug("Discarding frame #%d result after shutdown", sequence)
                return
            if sequence < self._latest_settled:
                LOGGER.debug("Discarding stale frame #%d, #%d already applied", sequence, self._latest_settled)
                return
            self._latest_settled = sequence
            if result is None:
                self._status = STATUS_FAILED
                return
            self._result = result
            self._canvas = render_overlay(frame, result.labels, self.settings)
            self._status = STATUS_COMPLETE
        LOGGER.info(
            "Frame #%d | %s",
            sequence,
            ", ".join(label.caption for label in result.labels) or "no labels",
        )

    def start_loop(self) -> bool:
        """Capture immediately, then every ``capture_interval_seconds``."""

        with self._state_lock:
            if self._closed or self._timer is not None:
                return False
            timer = PeriodicTask(self.settings.capture_interval_seconds, self.capture_once)
            self._timer = timer
            self._status = STATUS_STARTING
        self.capture_once()
        with self._state_lock:
            # stop_loop may have run while the first capture was being sent
            if self._timer is timer:
                timer.start()
        return True

    def stop_loop(self) -> bool:
        """Cancel future ticks; requests already in flight still settle."""

        with self._state_lock:
            timer, self._timer = self._timer, None
            if timer is None:
                return False
            self._status = STATUS_STOPPED
        timer.stop()
        return True

    def close(self) -> None:
        try:
            self.stop_loop()
            with self._state_lock:
                self._closed = True
        finally:
            self.release_camera()
            if self._owns_executor:
                self._executor.shutdown(wait=False, cancel_futures=True)
