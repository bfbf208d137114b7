"""
DANGIT Backend — Blob Store
=============================

What:  Stores uploaded screenshots on disk under a per-owner prefix and
       hands out public URLs for them.
How:   Keys look like `<owner>/<epoch-ms>-<8 hex>-<name stem><ext>`. The owner
       and name stem are reduced to a safe character set, so user input can't
       create path separators. The extension always comes from the sniffed
       image type, never from the client's file name, and `media_type` maps
       it back to the Content-Type the file is served with. Writes use
       aiofiles to keep the event loop free.

Layout:
    storage/
    └── jane@example.com/
        ├── 1718035200123-9f1c2a7b-screenshot.png
        └── 1718035299001-04be11d3-receipt.jpg

Public URLs point at GET /api/files/{path}, which streams the file back
after `resolve_path` has confirmed it stays inside the storage root.
"""

import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles

from dangit.exceptions import FileStorageError, NotFoundError, ValidationError
from dangit.services.content import MEDIA_TYPES_BY_EXTENSION

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9@._-]")
DEFAULT_STEM = "screenshot"
DEFAULT_EXTENSION = ".png"


@dataclass(frozen=True)
class StoredBlob:
    path: str
    url: str
    size: int


def sanitize_segment(value: str, default: str) -> str:
    """Replace anything outside [A-Za-z0-9@._-] and refuse dot-only names."""
    cleaned = _UNSAFE_CHARS.sub("_", value.strip())[:120]
    if not cleaned.strip("."):
        return default
    return cleaned


class BlobStore:
    """Path-keyed file storage rooted at one directory."""

    def __init__(self, storage_root: str, public_base_url: str):
        self.storage_root = Path(storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        logger.info("BlobStore initialized with storage_root=%s", self.storage_root)

    def build_key(self, owner: str, file_name: Optional[str], extension: str = DEFAULT_EXTENSION) -> str:
        if extension not in MEDIA_TYPES_BY_EXTENSION:
            raise ValidationError(message=f"Unsupported file extension '{extension}'", field="extension")
        owner_segment = sanitize_segment(owner, "anonymous")
        # Client extension is dropped; only the stem survives
        stem = os.path.splitext(sanitize_segment(file_name or DEFAULT_STEM, DEFAULT_STEM))[0]
        stem = sanitize_segment(stem, DEFAULT_STEM)
        stamp = int(time.time() * 1000)
        return f"{owner_segment}/{stamp}-{uuid.uuid4().hex[:8]}-{stem}{extension}"

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/api/files/{path}"

    def resolve_path(self, path: str) -> Path:
        """
        Map a stored key back to a file on disk.

        Raises:
            ValidationError: the key escapes the storage root.
            NotFoundError: no such file.
        """
        candidate = (self.storage_root / path).resolve()
        if not candidate.is_relative_to(self.storage_root) or candidate == self.storage_root:
            raise ValidationError(message="Invalid file path", field="path")
        if not candidate.is_file():
            raise NotFoundError(resource="file")
        return candidate

    def media_type(self, path: str) -> str:
        """Content-Type for a stored key; keys with any other suffix are not served."""
        media_type = MEDIA_TYPES_BY_EXTENSION.get(os.path.splitext(path)[1].lower())
        if media_type is None:
            raise NotFoundError(resource="file")
        return media_type

    async def upload(
        self,
        owner: str,
        data: bytes,
        file_name: Optional[str] = None,
        extension: str = DEFAULT_EXTENSION,
    ) -> StoredBlob:
        """
        Write a new blob. Never overwrites: the timestamp and random suffix
        make every key unique, and the file is opened in exclusive mode.

        Raises:
            FileStorageError: directory creation or the write failed.
        """
        key = self.build_key(owner, file_name, extension)
        absolute_path = self.storage_root / key

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "xb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store blob %s: %s", key, e)
            raise FileStorageError(
                message="Failed to upload image. Please try again.",
                context={"path": key, "os_error": str(e)},
            )

        logger.info("Blob stored: %s (%d bytes)", key, len(data))
        return StoredBlob(path=key, url=self.public_url(key), size=len(data))

    async def delete(self, path: str) -> None:
        """Best-effort removal; failures are logged, never raised."""
        try:
            target = self.resolve_path(path)
            os.remove(target)
            logger.info("Deleted blob %s", path)
        except NotFoundError:
            logger.debug("Blob already gone: %s", path)
        except (OSError, ValidationError) as e:
            logger.warning("Failed to delete blob %s: %s", path, e)
