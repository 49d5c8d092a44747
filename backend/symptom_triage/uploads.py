"""Local media store standing in for the upload collaborator"""

import logging
import time
from pathlib import Path
from typing import Optional

from symptom_triage.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)


def upload_key(owner_id: str, filename: str, now_ms: Optional[int] = None) -> str:
    """Path key for an uploaded image: images/<owner>/<epoch-ms>-<name>"""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    name = Path(filename or "").name or "upload"
    return f"images/{owner_id}/{stamp}-{name}"


class MediaStore:
    """Writes media under a root directory and returns a public reference"""

    def __init__(self, root: str | Path, base_url: str = "/media"):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def save(self, data: bytes, key: str) -> str:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise ValidationError(f"Invalid upload key {key!r}", user_message="Invalid file name")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            logger.exception("Failed to store upload %s", key)
            raise PersistenceError(f"Upload failed: {exc}") from exc

        logger.info("Stored upload %s (%d bytes)", key, len(data))
        return f"{self.base_url}/{key}"
