"""Blob storage for raw uploaded files.

Uploads are kept verbatim under a string key (``datasets/<id>/<filename>``)
so that even files the ingestion pipeline cannot parse are preserved.
"""

from __future__ import annotations

import pathlib
import shutil
import tempfile
from typing import Protocol

from gis_viewer.core import errors


class BlobStoreProtocol(Protocol):
    def put(self, key: str, data: bytes, content_type: str | None = None) -> None: ...

    def get(self, key: str) -> bytes | None: ...

    def delete(self, key: str) -> None: ...


class InMemoryBlobStore(BlobStoreProtocol):
    """Blobs held in a dictionary; lost when the process exits."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[bytes, str | None]] = {}

    def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        self._store[key] = (data, content_type)

    def get(self, key: str) -> bytes | None:
        entry = self._store.get(key)
        return entry[0] if entry else None

    def delete(self, key: str) -> None:
        self._store.pop(key, None)


class LocalBlobStore(BlobStoreProtocol):
    """Blobs written below a root directory, one file per key."""

    def __init__(self, root: pathlib.Path) -> None:
        self.root = root

    def _path(self, key: str) -> pathlib.Path:
        """Resolve a key below the root, rejecting keys that escape it.

        Raises:
            ValidationError: If the key resolves outside the root directory.
        """
        root = self.root.resolve()
        target = (root / key).resolve()
        if root not in target.parents:
            raise errors.ValidationError("Invalid storage key")
        return target

    def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        """Write ``data`` atomically under ``key``.

        Raises:
            StorageError: If the directory or file cannot be written.
        """
        target = self._path(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                delete=False, dir=target.parent
            ) as tmp:
                tmp.write(data)
                tmp.flush()
            shutil.move(tmp.name, target)
        except OSError as exc:
            raise errors.StorageError("Blob storage unavailable") from exc

    def get(self, key: str) -> bytes | None:
        target = self._path(key)
        if not target.exists():
            return None
        try:
            return target.read_bytes()
        except OSError as exc:
            raise errors.StorageError("Blob storage unavailable") from exc

    def delete(self, key: str) -> None:
        target = self._path(key)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise errors.StorageError("Blob storage unavailable") from exc
