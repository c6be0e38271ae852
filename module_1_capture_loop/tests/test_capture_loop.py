from __future__ import annotations

import time

from module_1_capture_loop.app.config.settings import AppSettings
from module_1_capture_loop.app.models import (
    STATUS_CAMERA_ERROR,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_READY,
    STATUS_STOPPED,
    Label,
)
from module_1_capture_loop.app.services import capture_loop
from module_1_capture_loop.app.services.capture_loop import CaptureLoop, PeriodicTask
from module_1_capture_loop.app.utils.video import DeviceUnavailable

from conftest import DeferredExecutor, FakeCamera, FakeRelayClient, ImmediateExecutor


def _loop(settings, client, camera_factory, executor=None) -> CaptureLoop:
    loop = CaptureLoop(settings, client, camera_factory=camera_factory, executor=executor or ImmediateExecutor())
    assert loop.acquire_camera()
    return loop


def test_acquire_camera_failure_only_updates_status(settings) -> None:
    def unavailable(_index, _width, _height):
        raise DeviceUnavailable("Unable to open camera device 0")

    loop = CaptureLoop(settings, FakeRelayClient(), camera_factory=unavailable, executor=ImmediateExecutor())

    assert loop.acquire_camera() is False
    assert loop.status == STATUS_CAMERA_ERROR
    assert loop.capture_once() is None


def test_capture_once_without_camera_sends_nothing(settings) -> None:
    client = FakeRelayClient()
    loop = CaptureLoop(settings, client, executor=ImmediateExecutor())

    assert loop.capture_once() is None
    assert client.calls == []
    assert loop.status == STATUS_READY


def test_capture_once_renders_detection(settings, camera_factory) -> None:
    client = FakeRelayClient([[("Dog", 93.2)]])
    loop = _loop(settings, client, camera_factory)

    settled = loop.capture_once()

    assert settled is not None and settled.done()
    assert client.calls == [1]
    assert loop.status == STATUS_COMPLETE
    assert loop.detections == [Label("Dog", 93.2)]
    assert [label.caption for label in loop.detections] == ["Dog (93%)"]
    assert loop.result.image_name == "images/1-webcam-capture.jpg"
    assert tuple(loop.canvas[5, 320]) == (0, 0, 255)


def test_failed_request_keeps_last_overlay(settings, camera_factory, relay_failure) -> None:
    client = FakeRelayClient([[("Dog", 93.2)], relay_failure])
    loop = _loop(settings, client, camera_factory)
    loop.capture_once()
    good_canvas = loop.canvas

    settled = loop.capture_once()

    assert settled.exception() is relay_failure
    assert loop.status == STATUS_FAILED
    assert loop.canvas is good_canvas
    assert loop.detections == [Label("Dog", 93.2)]


def test_stale_response_does_not_overwrite_newer_result(settings, camera_factory) -> None:
    executor = DeferredExecutor()
    client = FakeRelayClient([[("Cat", 88.0)], [("Dog", 93.2)]])
    loop = _loop(settings, client, camera_factory, executor)

    first = loop.capture_once()
    second = loop.capture_once()
    assert loop.status == STATUS_PROCESSING

    # the relay answers the second request first; outcomes are handed out in completion order
    executor.complete(1)
    assert loop.detections == [Label("Cat", 88.0)]
    executor.complete(0)

    assert first.done() and second.done()
    assert loop.detections == [Label("Cat", 88.0)]
    assert loop.result.sequence == 2
    assert loop.status == STATUS_COMPLETE


def test_stale_failure_does_not_change_status(settings, camera_factory, relay_failure) -> None:
    executor = DeferredExecutor()
    client = FakeRelayClient([[("Dog", 93.2)], relay_failure])
    loop = _loop(settings, client, camera_factory, executor)
    loop.capture_once()
    loop.capture_once()

    executor.complete(1)
    executor.complete(0)

    assert loop.status == STATUS_COMPLETE
    assert loop.detections == [Label("Dog", 93.2)]


def test_start_then_stop_issues_exactly_one_capture(settings, camera_factory) -> None:
    client = FakeRelayClient()
    loop = _loop(settings, client, camera_factory)

    assert loop.start_loop() is True
    assert loop.is_capturing
    assert loop.start_loop() is False
    assert loop.stop_loop() is True

    assert client.calls == [1]
    assert loop.frames_captured == 1
    assert not loop.is_capturing
    assert loop.status == STATUS_STOPPED


def test_stop_loop_when_idle_is_noop(settings, camera_factory) -> None:
    loop = _loop(settings, FakeRelayClient(), camera_factory)

    assert loop.stop_loop() is False
    assert loop.status == STATUS_READY


def test_loop_captures_on_every_tick(camera_factory) -> None:
    client = FakeRelayClient()
    loop = _loop(AppSettings(capture_interval_seconds=0.02, display=False), client, camera_factory)

    loop.start_loop()
    deadline = time.monotonic() + 5.0
    while len(client.calls) < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    loop.stop_loop()
    captured = len(client.calls)
    time.sleep(0.1)

    assert captured >= 3
    assert len(client.calls) == captured
    assert client.calls == sorted(client.calls)


def test_close_releases_camera_and_discards_late_results(settings, camera, camera_factory) -> None:
    executor = DeferredExecutor()
    client = FakeRelayClient([[("Dog", 93.2)]])
    with _loop(settings, client, camera_factory, executor) as loop:
        loop.start_loop()

    assert camera.released
    assert not loop.has_camera
    assert not loop.is_capturing

    executor.complete(0)
    assert loop.result is None
    assert loop.capture_once() is None


def test_unreadable_camera_marks_failure(settings) -> None:
    broken = FakeCamera(fail_reads=True)
    client = FakeRelayClient()
    loop = _loop(settings, client, lambda *_args: broken)

    assert loop.capture_once() is None
    assert loop.status == STATUS_FAILED
    assert client.calls == []


def test_periodic_task_start_stop_idempotent() -> None:
    ticks = []
    task = PeriodicTask(60.0, lambda: ticks.append(1))

    assert task.stop() is False
    assert task.start() is True
    assert task.start() is False
    assert task.stop() is True
    assert task.stop() is False
    assert ticks == []


class StatusWriteRecorder(CaptureLoop):
    """Record whether the state lock was held for every status change."""

    def __setattr__(self, name: str, value: object) -> None:
        if name == "_status" and "_state_lock" in self.__dict__:
            self.__dict__.setdefault("status_writes", []).append((value, self._state_lock.locked()))
        super().__setattr__(name, value)


def test_failure_statuses_are_written_under_state_lock(settings, monkeypatch) -> None:
    def unavailable(_index, _width, _height):
        raise DeviceUnavailable("Unable to open camera device 0")

    no_camera = StatusWriteRecorder(settings, FakeRelayClient(), camera_factory=unavailable, executor=ImmediateExecutor())
    assert no_camera.acquire_camera() is False

    unreadable = StatusWriteRecorder(
        settings,
        FakeRelayClient(),
        camera_factory=lambda *_args: FakeCamera(fail_reads=True),
        executor=ImmediateExecutor(),
    )
    assert unreadable.acquire_camera()
    assert unreadable.capture_once() is None

    def broken_encoder(_frame, _quality):
        raise ValueError("Failed to encode frame as JPEG")

    monkeypatch.setattr(capture_loop, "encode_jpeg", broken_encoder)
    client = FakeRelayClient()
    unencodable = StatusWriteRecorder(
        settings, client, camera_factory=lambda *_args: FakeCamera(), executor=ImmediateExecutor()
    )
    assert unencodable.acquire_camera()
    assert unencodable.capture_once() is None

    # the first write is the initial status set in __init__
    assert no_camera.status_writes[1:] == [(STATUS_CAMERA_ERROR, True)]
    assert unreadable.status_writes[1:] == [(STATUS_FAILED, True)]
    assert unencodable.status_writes[1:] == [(STATUS_FAILED, True)]
    assert unencodable.status == STATUS_FAILED
    assert client.calls == []
