"""Document storage protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class DocumentStorage(Protocol):
    """Opaque byte store for payment documents.

    get() must return exactly the bytes given to put().
    """

    async def put(self, key: str, content: bytes) -> None:
        ...

    async def get(self, key: str) -> bytes:
        ...

    async def delete(self, key: str) -> None:
        """Remove the object. Missing keys are not an error."""
        ...
