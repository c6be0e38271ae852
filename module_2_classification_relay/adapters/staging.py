import logging
import time
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_NAME = "upload.jpg"


def _timestamp_ms() -> int:
    return time.time_ns() // 1_000_000


class UploadStaging:
    """Write incoming uploads to a local directory before they are forwarded."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def stage(self, data: bytes, original_name: Optional[str] = None) -> Path:
        self.ensure_directory()
        basename = self._safe_basename(original_name)
        timestamp = _timestamp_ms()
        while True:
            target = self.directory / f"{timestamp}-{basename}"
            try:
                # exclusive create keeps concurrent uploads with the same name apart
                handle = open(target, "xb")
            except FileExistsError:
                timestamp += 1
                continue
            try:
                with handle:
                    handle.write(data)
            except OSError:
                target.unlink(missing_ok=True)
                raise
            logger.debug("Staged %d bytes at %s", len(data), target)
            return target

    def discard(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        logger.debug("Removed staged file %s", path)

    @staticmethod
    def _safe_basename(original_name: Optional[str]) -> str:
        if not original_name:
            return DEFAULT_UPLOAD_NAME
        # browsers on Windows may send backslash separated names
        name = Path(original_name.replace("\\", "/")).name.strip()
        if name in {"", ".", ".."}:
            return DEFAULT_UPLOAD_NAME
        return name
