from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from module_1_capture_loop.app.config.settings import AppSettings
from module_1_capture_loop.app.models import DetectionResult, Label
from module_1_capture_loop.app.services.relay_client import DetectionRequestError


class FakeCamera:
    def __init__(self, width: int = 640, height: int = 480, fail_reads: bool = False) -> None:
        self.frame = np.zeros((height, width, 3), dtype=np.uint8)
        self.fail_reads = fail_reads
        self.released = False
        self.reads = 0

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        self.reads += 1
        if self.fail_reads:
            return False, None
        return True, self.frame.copy()

    def release(self) -> None:
        self.released = True


class FakeRelayClient:
    """Answers each request with the next queued outcome."""

    def __init__(self, outcomes: Sequence[object] = ()) -> None:
        self.outcomes: List[object] = list(outcomes)
        self.calls: List[int] = []
        self.closed = False

    def detect(self, image_bytes: bytes, sequence: int = 0) -> DetectionResult:
        assert image_bytes[:2] == b"\xff\xd8"
        self.calls.append(sequence)
        outcome = self.outcomes.pop(0) if self.outcomes else []
        if isinstance(outcome, Exception):
            raise outcome
        labels = [Label(name, confidence) for name, confidence in outcome]
        return DetectionResult(labels=labels, image_name=f"images/{sequence}-webcam-capture.jpg", sequence=sequence)

    def close(self) -> None:
        self.closed = True


class ImmediateExecutor(Executor):
    def submit(self, fn: Callable, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class DeferredExecutor(Executor):
    """Holds submitted calls until the test decides the completion order."""

    def __init__(self) -> None:
        self.pending: List[Tuple[Future, Callable, tuple]] = []

    def submit(self, fn: Callable, /, *args, **kwargs) -> Future:
        future: Future = Future()
        self.pending.append((future, fn, args))
        return future

    def complete(self, index: int) -> None:
        future, fn, args = self.pending[index]
        try:
            future.set_result(fn(*args))
        except Exception as exc:
            future.set_exception(exc)


@pytest.fixture()
def settings() -> AppSettings:
    return AppSettings(capture_interval_seconds=60.0, display=False)


@pytest.fixture()
def camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture()
def camera_factory(camera: FakeCamera) -> Callable[[int, int, int], FakeCamera]:
    return lambda _index, _width, _height: camera


@pytest.fixture()
def relay_failure() -> DetectionRequestError:
    return DetectionRequestError("Relay responded with status 500: Failed to process image")
