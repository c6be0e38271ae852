import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from module_2_classification_relay.core.errors import StorageFailure


logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


class S3ObjectStore:
    """Upload staged images into a single S3 bucket."""

    def __init__(self, bucket: Optional[str], client_factory: ClientFactory) -> None:
        self.bucket = bucket
        self._client_factory = client_factory
        self._client: Any = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> Any:
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = self._client_factory("s3")
        return self._client

    def upload(self, path: Path, key: str) -> None:
        if not self.bucket:
            raise StorageFailure("S3 bucket name is not configured")
        try:
            body = path.read_bytes()
        except OSError as exc:
            raise StorageFailure(f"Unable to read staged file {path}: {exc}") from exc
        try:
            self._get_client().put_object(Bucket=self.bucket, Key=key, Body=body)
        except (BotoCoreError, ClientError) as exc:
            raise StorageFailure(f"Upload of {key} to {self.bucket} failed: {exc}") from exc
        logger.info("Uploaded %s to s3://%s/%s", path.name, self.bucket, key)
