"""HTTP client for the classification relay."""
from __future__ import annotations

import logging
from typing import Optional

import requests

from ..config.settings import AppSettings
from ..models import DetectionResult, Label

LOGGER = logging.getLogger(__name__)


class DetectionRequestError(RuntimeError):
    """Raised when a frame could not be classified by the relay."""


class RelayClient:
    """Send encoded frames to the relay's ``/detect`` endpoint."""

    def __init__(self, settings: AppSettings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self._session = session or requests.Session()

    def detect(self, image_bytes: bytes, sequence: int = 0) -> DetectionResult:
        """Upload one frame and return the labels the relay reported.

        No retry is attempted: the next capture is the recovery path.
        """

        files = {"image": (self.settings.upload_filename, image_bytes, "image/jpeg")}
        try:
            response = self._session.post(
                self.settings.relay_url,
                files=files,
                timeout=self.settings.request_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise DetectionRequestError(f"Relay request failed: {exc}") from exc

        if response.status_code >= 400:
            raise DetectionRequestError(f"Relay responded with status {response.status_code}: {_error_message(response)}")

        try:
            payload = response.json()
            labels = [Label.from_payload(item) for item in payload.get("detectedObjects") or []]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise DetectionRequestError(f"Malformed relay response: {exc}") from exc

        LOGGER.debug("Relay returned %d labels for frame #%d", len(labels), sequence)
        return DetectionResult(labels=labels, image_name=payload.get("imageName"), sequence=sequence)

    def close(self) -> None:
        self._session.close()


def _error_message(response: requests.Response) -> str:
    try:
        return str(response.json().get("error", response.text))
    except (ValueError, AttributeError):
        return response.text
