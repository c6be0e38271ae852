"""Entry point for the Module 1 webcam capture loop."""
from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

import cv2

from .config.settings import AppSettings, load_settings
from .services.capture_loop import CaptureLoop
from .services.overlay import compose_view
from .services.relay_client import RelayClient

LOGGER = logging.getLogger(__name__)

KEY_QUIT = {ord("q"), 27}
KEY_TOGGLE = ord("s")
KEY_SINGLE = {ord("c"), ord(" ")}


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Module 1 - Webcam Capture Loop")
    parser.add_argument("--relay-url", type=str, default=None, help="Classification relay /detect URL")
    parser.add_argument("--camera", type=int, default=None, help="Camera device index")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between captures in continuous mode")
    parser.add_argument("--no-display", action="store_true", help="Run headless and capture continuously")
    parser.add_argument("--single", action="store_true", help="Capture one frame, print its labels and exit")
    parser.add_argument("--log-format", choices=["text", "json"], default=None, help="Logging format")
    return parser


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(settings: AppSettings) -> None:
    log_level = logging.INFO
    if settings.log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logging.basicConfig(level=log_level, handlers=[handler])


def resolve_settings(args: argparse.Namespace) -> AppSettings:
    overrides = {}
    if args.relay_url:
        overrides["relay_url"] = args.relay_url
    if args.camera is not None:
        overrides["camera_index"] = args.camera
    if args.interval is not None:
        overrides["capture_interval_seconds"] = args.interval
    if args.no_display or args.single:
        overrides["display"] = False
    if args.log_format:
        overrides["log_format"] = args.log_format
    return load_settings(**overrides)


def run_single(loop: CaptureLoop, settings: AppSettings) -> int:
    future = loop.capture_once()
    if future is None:
        LOGGER.error("No frame captured: %s", loop.status)
        return 1
    try:
        future.result(timeout=settings.request_timeout_seconds + 1.0)
    except FutureTimeoutError:
        LOGGER.error("Relay did not answer within %.1fs", settings.request_timeout_seconds)
        return 1
    except Exception as exc:
        LOGGER.debug("Single capture failed: %s", exc)
    LOGGER.info("%s", loop.status)
    for label in loop.detections:
        print(label.caption)
    return 0 if loop.result is not None else 1


def run_headless(loop: CaptureLoop, stop_event: threading.Event) -> int:
    loop.start_loop()
    LOGGER.info("Continuous detection running, press Ctrl+C to stop")
    stop_event.wait()
    loop.stop_loop()
    return 0


def run_viewer(loop: CaptureLoop, settings: AppSettings, stop_event: threading.Event) -> int:
    cv2.namedWindow(settings.window_name)
    try:
        while not stop_event.is_set():
            canvas = loop.canvas
            if canvas is None:
                canvas = loop.preview()
            view = compose_view(canvas, loop.detections, loop.status, settings)
            cv2.imshow(settings.window_name, view)
            key = cv2.waitKey(30) & 0xFF
            if key in KEY_QUIT:
                LOGGER.info("Quit signal received from keyboard")
                break
            if key == KEY_TOGGLE:
                if loop.is_capturing:
                    loop.stop_loop()
                else:
                    loop.start_loop()
            elif key in KEY_SINGLE:
                loop.capture_once()
    finally:
        cv2.destroyWindow(settings.window_name)
    return 0


def run_capture(args: argparse.Namespace, stop_event: Optional[threading.Event] = None) -> int:
    settings = resolve_settings(args)
    setup_logging(settings)
    stop_event = stop_event or threading.Event()

    LOGGER.info("Starting capture loop against %s", settings.relay_url)
    client = RelayClient(settings)
    try:
        with CaptureLoop(settings, client) as loop:
            if not loop.acquire_camera():
                LOGGER.error("%s", loop.status)
                return 1
            if args.single:
                return run_single(loop, settings)
            if not settings.display:
                return run_headless(loop, stop_event)
            return run_viewer(loop, settings, stop_event)
    finally:
        client.close()
        LOGGER.info("Capture loop stopped")


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()
    stop_event = threading.Event()

    def handle_interrupt(signum: int, frame: Optional[object]) -> None:  # pragma: no cover - signal handling
        LOGGER.warning("Received interrupt signal (%d), shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_interrupt)
    sys.exit(run_capture(args, stop_event))


if __name__ == "__main__":  # pragma: no cover
    main()
