"""Pytest fixtures for payroll ledger tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_ledger.config import DocumentPolicy, PfRates
from payroll_ledger.gateway import SqlAssignmentGateway
from payroll_ledger.models import Base, Payment, WorkAssignment
from payroll_ledger.services import DocumentService, PaymentService
from payroll_ledger.storage import FileSystemDocumentStorage

# In-memory SQLite shared across the test's connections
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_TIMEOUT = 2.0


@pytest.fixture
async def engine():
    """Create test database engine with a fresh schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def employees() -> dict[str, UUID]:
    """Stable employee ids for the test's assignments."""
    return {"asha": uuid4(), "bilal": uuid4(), "chen": uuid4()}


@pytest.fixture
def make_assignment(
    session: AsyncSession, employees: dict[str, UUID]
) -> Callable[..., Awaitable[WorkAssignment]]:
    """Factory for completed, evaluated, unpaid work assignments."""

    async def _make(
        employee: str = "asha",
        amount: Decimal | str = "1000.00",
        voluntary_pf: Decimal | str = "0.00",
        assignment_date: date = date(2024, 6, 10),
        **overrides: Any,
    ) -> WorkAssignment:
        values: dict[str, Any] = {
            "assignment_id": uuid4(),
            "employee_id": employees[employee],
            "employee_name": employee.capitalize(),
            "employee_code": f"EMP-{employee.upper()}",
            "pf_account_id": f"PF-{employee.upper()}",
            "work_activity_id": uuid4(),
            "activity_name": "Tea plucking",
            "assignment_date": assignment_date,
            "status": "COMPLETED",
            "evaluation_count": 1,
            "last_evaluated_at": datetime(2024, 6, 11, tzinfo=timezone.utc),
            "completion_percentage": Decimal("100.00"),
            "rate": Decimal("250.0000"),
            "calculated_amount": Decimal(amount),
            "voluntary_pf_amount": Decimal(voluntary_pf),
            "payment_status": "UNPAID",
        }
        values.update(overrides)
        assignment = WorkAssignment(**values)
        session.add(assignment)
        await session.flush()
        return assignment

    return _make


@pytest.fixture
def pf_rates() -> PfRates:
    return PfRates(employee_rate=Decimal("0.12"), employer_rate=Decimal("0.12"))


@pytest.fixture
def storage(tmp_path) -> FileSystemDocumentStorage:
    """Document storage rooted in the test's temporary directory."""
    return FileSystemDocumentStorage(tmp_path / "documents")


@pytest.fixture
def gateway(session: AsyncSession) -> SqlAssignmentGateway:
    return SqlAssignmentGateway(session)


@pytest.fixture
def payment_service(
    session: AsyncSession,
    gateway: SqlAssignmentGateway,
    pf_rates: PfRates,
    storage: FileSystemDocumentStorage,
) -> PaymentService:
    """Payment service wired to the SQL gateway and temp storage."""
    return PaymentService(
        session,
        gateway=gateway,
        rates=pf_rates,
        gateway_timeout=TEST_TIMEOUT,
        storage=storage,
    )


@pytest.fixture
def document_service(
    session: AsyncSession, storage: FileSystemDocumentStorage
) -> DocumentService:
    """Document service with the default removal policy."""
    return DocumentService(session, storage, policy=DocumentPolicy(), timeout=TEST_TIMEOUT)


@pytest.fixture
def refresh(session: AsyncSession) -> Callable[[WorkAssignment], Awaitable[WorkAssignment]]:
    """Reload an assignment row; lock changes are written with bulk UPDATEs."""

    async def _refresh(assignment: WorkAssignment) -> WorkAssignment:
        await session.refresh(assignment)
        return assignment

    return _refresh


@pytest.fixture
def drive_to_paid(
    payment_service: PaymentService,
) -> Callable[..., Awaitable[Payment]]:
    """Create, submit, approve and record a payment for the given assignments."""

    async def _drive(
        assignment_ids: list[UUID],
        payment_date: date = date(2024, 6, 28),
        reference_number: str = "UTR-0001",
        month: int = 6,
        year: int = 2024,
    ) -> Payment:
        payment = await payment_service.create_draft(
            month, year, assignment_ids=assignment_ids, actor="clerk"
        )
        await payment_service.submit_for_approval(payment.payment_id, actor="clerk")
        await payment_service.approve(payment.payment_id, actor="manager")
        return await payment_service.record_payment(
            payment.payment_id, payment_date, reference_number, actor="accounts"
        )

    return _drive

