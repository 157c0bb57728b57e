"""
Object storage for reference photos and rendered storybooks.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from urllib.parse import quote

from storygem.common.errors import StorageError

logger = logging.getLogger(__name__)

PHOTO_BUCKET = "child-photos"
STORYBOOK_BUCKET = "storybooks"


def _normalize_key(path: str) -> PurePosixPath:
    key = PurePosixPath(path.strip().lstrip("/"))
    if not key.parts or any(part in {"..", "."} for part in key.parts):
        raise StorageError(f"Invalid object path '{path}'.")
    return key


class ObjectStorage(ABC):
    """Bucketed blob storage that hands out retrievable URLs."""

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        """Store ``data`` at ``bucket/path``."""

    @abstractmethod
    def public_url(self, bucket: str, path: str) -> str:
        """Return the URL clients use to fetch ``bucket/path``."""

    @abstractmethod
    async def read(self, bucket: str, path: str) -> bytes:
        """Return the stored bytes, raising :class:`StorageError` if absent."""

    async def upload_and_get_url(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = False,
    ) -> str:
        await self.upload(bucket, path, data, content_type=content_type, upsert=upsert)
        return self.public_url(bucket, path)


class LocalObjectStorage(ObjectStorage):
    """
    Filesystem-backed storage laid out as ``<root>/<bucket>/<path>``.

    Parameters
    ----------
    root:
        Directory holding one sub-directory per bucket.
    public_base_url:
        Prefix the HTTP layer serves ``root`` under (e.g. ``http://localhost:8000/files``).
    """

    def __init__(self, root: Path | str, public_base_url: str) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, bucket: str, path: str) -> Path:
        bucket_key = _normalize_key(bucket)
        if len(bucket_key.parts) != 1:
            raise StorageError(f"Invalid bucket name '{bucket}'.")
        return self._root / bucket_key / _normalize_key(path)

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        target = self._resolve(bucket, path)
        await asyncio.to_thread(self._write, target, data, upsert)
        logger.info("Stored %s (%d bytes, %s)", target, len(data), content_type)

    def public_url(self, bucket: str, path: str) -> str:
        key = _normalize_key(path)
        return f"{self._public_base_url}/{quote(bucket)}/{quote(str(key))}"

    async def read(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise StorageError(f"Object '{bucket}/{path}' does not exist.") from exc

    @staticmethod
    def _write(target: Path, data: bytes, upsert: bool) -> None:
        if target.exists() and not upsert:
            raise StorageError(f"Object '{target}' already exists.")
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
