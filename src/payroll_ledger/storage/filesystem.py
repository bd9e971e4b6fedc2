"""Filesystem-backed document storage."""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path, PurePosixPath
from uuid import UUID

from payroll_ledger.exceptions import DocumentStorageError

logger = logging.getLogger(__name__)


def make_storage_key(payment_id: UUID, file_name: str) -> str:
    """Collision-free relative key; only the extension of the upload name is kept."""
    ext = PurePosixPath(file_name.replace("\\", "/")).suffix.lower()
    if not ext[1:].isalnum():
        ext = ""
    return f"{payment_id.hex}/{uuid.uuid4().hex}{ext}"


class FileSystemDocumentStorage:
    """Stores each document as one file under a root directory."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise DocumentStorageError("resolve", f"Storage key escapes storage root: {key!r}")
        return path

    async def put(self, key: str, content: bytes) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as exc:
            raise DocumentStorageError("put", f"Could not store {key}: {exc}") from exc
        logger.debug("Stored document %s (%d bytes)", key, len(content))

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise DocumentStorageError("get", f"Document content missing for {key}") from exc
        except OSError as exc:
            raise DocumentStorageError("get", f"Could not read {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise DocumentStorageError("delete", f"Could not delete {key}: {exc}") from exc

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".part")
        tmp.write_bytes(content)
        tmp.replace(path)
