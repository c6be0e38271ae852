import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from module_2_classification_relay.adapters.label_detector import RekognitionLabelDetector
from module_2_classification_relay.adapters.object_store import S3ObjectStore
from module_2_classification_relay.adapters.staging import UploadStaging
from module_2_classification_relay.core.errors import (
    MissingInput,
    ProcessingFailure,
    RelayError,
)
from module_2_classification_relay.core.models import DetectionResult


logger = logging.getLogger(__name__)


class RelayService:
    """Stage an upload, push it to the object store, and relay its labels.

    Each call is independent: the only state the service holds is its
    collaborators, so concurrent requests never share mutable data.
    """

    def __init__(
        self,
        staging: UploadStaging,
        object_store: S3ObjectStore,
        label_detector: RekognitionLabelDetector,
        key_prefix: str = "images",
    ) -> None:
        self.staging = staging
        self.object_store = object_store
        self.label_detector = label_detector
        self.key_prefix = key_prefix.strip("/")

    def object_key(self, staged_path: Path) -> str:
        return f"{self.key_prefix}/{time.time_ns() // 1_000_000}-{staged_path.name}"

    def classify(self, data: Optional[bytes], filename: Optional[str] = None) -> DetectionResult:
        if not data:
            raise MissingInput("No image uploaded")

        try:
            staged_path = self.staging.stage(data, filename)
        except OSError as exc:
            raise ProcessingFailure(f"Unable to stage upload: {exc}") from exc

        try:
            key = self.object_key(staged_path)
            self.object_store.upload(staged_path, key)
            labels = self.label_detector.detect(key)
        except RelayError:
            raise
        except Exception as exc:
            raise ProcessingFailure(str(exc)) from exc
        finally:
            self.staging.discard(staged_path)

        return DetectionResult(detected_objects=self._within_contract(labels), image_name=key)

    def _within_contract(self, labels: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        max_labels = self.label_detector.max_labels
        min_confidence = self.label_detector.min_confidence
        accepted: List[Dict[str, Any]] = []
        for label in labels:
            try:
                confidence = float(label.get("Confidence", 0.0))
            except (TypeError, ValueError):
                confidence = 0.0
            if min_confidence <= confidence <= 100.0:
                accepted.append(label)
        if len(accepted) > max_labels:
            accepted = accepted[:max_labels]
        if len(accepted) != len(labels):
            logger.warning(
                "Dropped %d labels outside MaxLabels=%d / MinConfidence=%.1f",
                len(labels) - len(accepted),
                max_labels,
                min_confidence,
            )
        return accepted
