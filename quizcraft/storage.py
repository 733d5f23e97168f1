"""Blob storage for question images."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from quizcraft.core.config import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class BlobStorage(Protocol):
    def upload(self, data: bytes, content_type: str, prefix: str = "") -> str:
        """Store ``data`` and return its key."""

    def public_url(self, key: str) -> str:
        ...


class LocalBlobStorage:
    """Stores blobs under a directory that the app serves as static files."""

    def __init__(self, root: str | Path, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def upload(self, data: bytes, content_type: str, prefix: str = "") -> str:
        suffix = ALLOWED_IMAGE_TYPES.get(content_type, "")
        key = f"{prefix.strip('/')}/{uuid4().hex}{suffix}" if prefix else f"{uuid4().hex}{suffix}"
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"Stored {len(data)} bytes at {path}")
        return key

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"


_storage: BlobStorage | None = None


def get_storage() -> BlobStorage:
    global _storage
    if _storage is None:
        _storage = LocalBlobStorage(settings.MEDIA_ROOT, settings.MEDIA_URL)
    return _storage
