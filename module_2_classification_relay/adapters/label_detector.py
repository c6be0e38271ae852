import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from module_2_classification_relay.core.errors import InferenceFailure


logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


class RekognitionLabelDetector:
    """Ask Rekognition for labels of an object already stored in S3."""

    def __init__(
        self,
        bucket: Optional[str],
        client_factory: ClientFactory,
        max_labels: int = 10,
        min_confidence: float = 70.0,
    ) -> None:
        self.bucket = bucket
        self.max_labels = max_labels
        self.min_confidence = min_confidence
        self._client_factory = client_factory
        self._client: Any = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> Any:
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = self._client_factory("rekognition")
        return self._client

    def detect(self, key: str) -> List[Dict[str, Any]]:
        if not self.bucket:
            raise InferenceFailure("S3 bucket name is not configured")
        params = {
            "Image": {"S3Object": {"Bucket": self.bucket, "Name": key}},
            "MaxLabels": self.max_labels,
            "MinConfidence": self.min_confidence,
        }
        try:
            response = self._get_client().detect_labels(**params)
        except (BotoCoreError, ClientError) as exc:
            raise InferenceFailure(f"Label detection for {key} failed: {exc}") from exc
        labels = response.get("Labels", [])
        logger.info("Rekognition returned %d labels for %s", len(labels), key)
        return labels
