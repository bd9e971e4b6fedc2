"""Document byte storage."""

from payroll_ledger.storage.base import DocumentStorage
from payroll_ledger.storage.filesystem import FileSystemDocumentStorage, make_storage_key

__all__ = ["DocumentStorage", "FileSystemDocumentStorage", "make_storage_key"]
