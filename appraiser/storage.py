"""
TCG Appraiser — Object storage read access

Card images and authentic reference hashes are addressed by object key.
The pipeline only needs two read operations, captured by the ObjectStore
protocol. FileObjectStore serves keys from a local directory tree
(settings.IMAGE_STORE_ROOT); a bucket-backed store only has to provide the
same two coroutines.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Protocol

import structlog

from appraiser.config import settings
from appraiser.errors import ObjectStoreError, ValidationError

logger = structlog.get_logger(__name__)


class ObjectStore(Protocol):
    async def get_bytes(self, key: str) -> bytes:
        ...

    async def list_keys(self, prefix: str) -> list[str]:
        ...


class FileObjectStore:
    """
    ObjectStore over a local directory. Keys are POSIX relative paths.

    Usage:
        store = FileObjectStore("./var/uploads")
        data = await store.get_bytes("user-1/card-1/front.jpg")
    """

    def __init__(self, root: Optional[str | Path] = None):
        self._root = Path(root or settings.IMAGE_STORE_ROOT).resolve()

    def _path_for(self, key: str) -> Path:
        if not key or key.startswith("/"):
            raise ValidationError(f"Invalid object key: {key!r}", key=key)
        path = (self._root / key).resolve()
        if self._root not in path.parents and path != self._root:
            raise ValidationError(f"Object key escapes store root: {key!r}", key=key)
        return path

    async def get_bytes(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.warning("object_store_read_failed", key=key, error=str(e))
            raise ObjectStoreError(f"Could not read object {key!r}: {e}", key=key) from e
        logger.debug("object_store_read", key=key, size_bytes=len(data))
        return data

    async def list_keys(self, prefix: str) -> list[str]:
        def _scan() -> list[str]:
            if not self._root.exists():
                return []
            keys = (
                p.relative_to(self._root).as_posix()
                for p in self._root.rglob("*")
                if p.is_file()
            )
            return sorted(k for k in keys if k.startswith(prefix))

        try:
            return await asyncio.to_thread(_scan)
        except OSError as e:
            logger.warning("object_store_list_failed", prefix=prefix, error=str(e))
            raise ObjectStoreError(f"Could not list prefix {prefix!r}: {e}", prefix=prefix) from e
