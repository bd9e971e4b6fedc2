"""Document attachment for payments."""

from __future__ import annotations

import hashlib
import logging
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.config import DocumentPolicy, get_settings
from payroll_ledger.database import payment_lock
from payroll_ledger.exceptions import (
    DocumentStorageError,
    GatewayFailureError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from payroll_ledger.logging_config import LogContext
from payroll_ledger.models import ChangeType, Payment, PaymentDocument
from payroll_ledger.models.base import utcnow
from payroll_ledger.services.compensation import call_external
from payroll_ledger.services.history_service import HistoryRecorder
from payroll_ledger.services.payment_service import load_payment
from payroll_ledger.services.state_machine import Operation, PaymentStateMachine
from payroll_ledger.storage.base import DocumentStorage
from payroll_ledger.storage.filesystem import make_storage_key

logger = logging.getLogger(__name__)


class DocumentType(str, Enum):
    CHALLAN = "CHALLAN"
    RECEIPT = "RECEIPT"
    BANK_STATEMENT = "BANK_STATEMENT"
    OTHER = "OTHER"


def _find_document(payment: Payment, document_id: UUID) -> PaymentDocument:
    doc = next((d for d in payment.documents if d.document_id == document_id), None)
    if doc is None:
        raise NotFoundError("PaymentDocument", document_id)
    return doc


class DocumentService:
    """Attaches, serves and removes payment documents.

    Content goes to DocumentStorage; the payment_document row carries the
    metadata and a SHA-256 of the stored bytes.
    """

    def __init__(
        self,
        session: AsyncSession,
        storage: DocumentStorage,
        policy: DocumentPolicy | None = None,
        timeout: float | None = None,
    ):
        if policy is None or timeout is None:
            settings = get_settings()
            policy = policy or settings.document_policy
            if timeout is None:
                timeout = settings.gateway_timeout_seconds
        self.session = session
        self.storage = storage
        self.policy = policy
        self.timeout = timeout
        self.history = HistoryRecorder(session)

    async def _storage_call(self, operation: str, call) -> object:
        try:
            return await call_external(call, operation, self.timeout)
        except DocumentStorageError:
            raise
        except GatewayFailureError as exc:
            raise DocumentStorageError(operation, exc.message) from exc

    def _validate_upload(self, file_name: str, content: bytes, document_type: str) -> DocumentType:
        if not file_name or not file_name.strip():
            raise ValidationError("file_name", "File name is required")
        if not content:
            raise ValidationError("content", "File is empty")
        if len(content) > self.policy.max_document_bytes:
            raise ValidationError(
                "content",
                f"File exceeds the {self.policy.max_document_bytes} byte limit "
                f"({len(content)} bytes)",
            )
        try:
            return DocumentType((document_type or DocumentType.OTHER.value).upper())
        except ValueError as exc:
            raise ValidationError(
                "document_type", f"Unknown document type {document_type!r}"
            ) from exc

    async def add_document(
        self,
        payment_id: UUID,
        file_name: str,
        content: bytes,
        document_type: str = DocumentType.OTHER.value,
        description: str | None = None,
        file_type: str | None = None,
        actor: str | None = None,
    ) -> PaymentDocument:
        """Store a document and attach it to any non-cancelled payment."""
        with LogContext.bind(actor=actor, payment_id=payment_id):
            doc_type = self._validate_upload(file_name, content, document_type)
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.ADD_DOCUMENT)

                key = make_storage_key(payment_id, file_name)
                await self._storage_call("put", lambda: self.storage.put(key, content))

                try:
                    doc = PaymentDocument(
                        document_id=uuid4(),
                        payment_id=payment_id,
                        file_name=file_name.strip(),
                        file_type=file_type,
                        file_size=len(content),
                        document_type=doc_type.value,
                        description=description,
                        storage_key=key,
                        checksum_sha256=hashlib.sha256(content).hexdigest(),
                        uploaded_by=actor,
                        uploaded_at=utcnow(),
                    )
                    payment.documents.append(doc)
                    await self.history.record(
                        payment,
                        ChangeType.DOCUMENT_ADDED,
                        f"Document added: {doc.file_name} ({doc_type.value})",
                        changed_by=actor,
                        remarks=description,
                    )
                    await self.session.flush()
                except SQLAlchemyError:
                    logger.warning("Document row not saved; removing stored content %s", key)
                    await self._storage_call("delete", lambda: self.storage.delete(key))
                    raise

                logger.info("Attached document %s (%d bytes)", doc.file_name, doc.file_size)
                return doc

    async def get_document(self, payment_id: UUID, document_id: UUID) -> PaymentDocument:
        payment = await load_payment(self.session, payment_id)
        return _find_document(payment, document_id)

    async def get_document_content(
        self, payment_id: UUID, document_id: UUID
    ) -> tuple[PaymentDocument, bytes]:
        """The document's metadata and exactly the bytes that were uploaded."""
        doc = await self.get_document(payment_id, document_id)
        content = await self._storage_call("get", lambda: self.storage.get(doc.storage_key))
        if hashlib.sha256(content).hexdigest() != doc.checksum_sha256:
            raise DocumentStorageError(
                "get", f"Stored content for document {document_id} does not match its checksum"
            )
        return doc, content

    async def remove_document(
        self, payment_id: UUID, document_id: UUID, actor: str | None = None
    ) -> Payment:
        """Detach and delete a document if the removal policy allows it."""
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                if not self.policy.allows_removal(payment.status):
                    raise InvalidStateError(
                        payment_id,
                        payment.status,
                        "remove documents from",
                        "not permitted by the document removal policy",
                    )
                doc = _find_document(payment, document_id)

                payment.documents.remove(doc)
                await self.history.record(
                    payment,
                    ChangeType.DOCUMENT_REMOVED,
                    f"Document removed: {doc.file_name} ({doc.document_type})",
                    changed_by=actor,
                )
                await self.session.flush()
                # Rows first: a failed content delete rolls the unit of work back.
                await self._storage_call("delete", lambda: self.storage.delete(doc.storage_key))

                logger.info("Removed document %s", doc.file_name)
                return payment
