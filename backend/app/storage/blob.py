"""Blob storage for uploaded document binaries."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol

import aiofiles

logger = logging.getLogger(__name__)


def document_blob_path(user_id: str, document_id: str) -> str:
    """Storage key for a user's uploaded PDF."""
    return f"users/{user_id}/documents/{document_id}.pdf"


class BlobNotFoundError(Exception):
    """No object stored at the requested path."""

    pass


class BlobStore(Protocol):
    """Protocol for binary object storage."""

    async def upload(self, data: bytes, path: str, content_type: str) -> str:
        """Store ``data`` at ``path`` and return the path."""
        ...

    async def download(self, path: str) -> bytes:
        """Read the object at ``path``.

        Raises:
            BlobNotFoundError: Nothing stored at ``path``
        """
        ...

    async def delete(self, path: str) -> None:
        """Delete the object at ``path`` (missing objects are ignored)."""
        ...


class LocalBlobStore:
    """Filesystem-backed blob store rooted at a directory."""

    def __init__(self, root_dir: str) -> None:
        self._root = Path(root_dir).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root not in target.parents:
            raise ValueError(f"Blob path escapes storage root: {path}")
        return target

    async def upload(self, data: bytes, path: str, content_type: str) -> str:
        """Write the object to disk."""
        target = self._resolve(path)
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        async with aiofiles.open(target, "wb") as out_file:
            await out_file.write(data)
        logger.info(f"Stored blob {path} ({len(data)} bytes, {content_type})")
        return path

    async def download(self, path: str) -> bytes:
        """Read the object from disk."""
        target = self._resolve(path)
        try:
            async with aiofiles.open(target, "rb") as in_file:
                return await in_file.read()
        except FileNotFoundError as e:
            raise BlobNotFoundError(path) from e

    async def delete(self, path: str) -> None:
        """Remove the object from disk."""
        target = self._resolve(path)
        try:
            await asyncio.to_thread(os.remove, target)
        except FileNotFoundError:
            logger.info(f"Blob {path} already absent")


class InMemoryBlobStore:
    """Dict-backed blob store for tests and local development."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def upload(self, data: bytes, path: str, content_type: str) -> str:
        self.objects[path] = (data, content_type)
        return path

    async def download(self, path: str) -> bytes:
        try:
            return self.objects[path][0]
        except KeyError as e:
            raise BlobNotFoundError(path) from e

    async def delete(self, path: str) -> None:
        self.objects.pop(path, None)
