import json
import logging
import sys
import threading
from typing import Any, Callable, Optional

import boto3

from module_2_classification_relay.adapters.label_detector import RekognitionLabelDetector
from module_2_classification_relay.adapters.object_store import S3ObjectStore
from module_2_classification_relay.adapters.staging import UploadStaging
from module_2_classification_relay.app.settings import AppSettings
from module_2_classification_relay.services.relay_service import RelayService


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(settings: AppSettings, level: int = logging.INFO) -> None:
    if settings.log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=[handler])


def aws_client_factory(settings: AppSettings) -> Callable[[str], Any]:
    """Create clients from one private boto3 session.

    Sessions are not thread-safe, so client creation is serialised; the
    clients themselves can be shared by the threadpool workers.
    """
    lock = threading.Lock()
    session: Optional[boto3.session.Session] = None

    def _factory(service_name: str) -> Any:
        nonlocal session
        with lock:
            if session is None:
                session = boto3.session.Session(
                    aws_access_key_id=settings.aws_access_key_id,
                    aws_secret_access_key=settings.aws_secret_access_key,
                    region_name=settings.aws_region,
                )
            return session.client(service_name)

    return _factory


def build_relay_service(settings: AppSettings) -> RelayService:
    client_factory = aws_client_factory(settings)
    return RelayService(
        UploadStaging(settings.upload_dir),
        S3ObjectStore(settings.s3_bucket_name, client_factory),
        RekognitionLabelDetector(
            settings.s3_bucket_name,
            client_factory,
            max_labels=settings.max_labels,
            min_confidence=settings.min_confidence,
        ),
        key_prefix=settings.object_key_prefix,
    )
