"""Shared data models for Module 1."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

STATUS_READY = "Ready"
STATUS_STARTING = "Starting capture..."
STATUS_PROCESSING = "Processing..."
STATUS_COMPLETE = "Detection complete"
STATUS_FAILED = "Detection failed"
STATUS_STOPPED = "Capture stopped"
STATUS_CAMERA_ERROR = "Error accessing webcam"


@dataclass(frozen=True)
class Label:
    """A single classification returned by the relay."""

    name: str
    confidence: float

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Label":
        return cls(name=str(payload["Name"]), confidence=float(payload["Confidence"]))

    @property
    def rounded_confidence(self) -> int:
        # half-up, matching how browsers round the badge values
        return int(math.floor(self.confidence + 0.5))

    @property
    def caption(self) -> str:
        return f"{self.name} ({self.rounded_confidence}%)"


@dataclass
class DetectionResult:
    """Labels for one captured frame plus the key it was stored under."""

    labels: List[Label] = field(default_factory=list)
    image_name: Optional[str] = None
    sequence: int = 0
