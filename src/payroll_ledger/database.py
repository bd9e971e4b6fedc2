"""Database connection and session management."""

from __future__ import annotations

import asyncio
import zlib
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_ledger.config import get_settings
from payroll_ledger.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    url = database_url or get_settings().database_url
    kwargs: dict = {"echo": False, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        kwargs.update(pool_size=10, max_overflow=20)
    return create_async_engine(url, **kwargs)


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = make_session_factory(_engine)
    return _engine, _session_factory


async def create_all(engine: AsyncEngine | None = None) -> None:
    """Create all tables. Schema migrations are handled outside this package."""
    if engine is None:
        engine, _ = init_db()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session that commits on success and rolls back on error."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Per-payment serialization. Local locks cover tasks in this process; the
# advisory lock covers other processes sharing a PostgreSQL database.
_local_locks: dict[UUID, asyncio.Lock] = {}
_lock_users: defaultdict[UUID, int] = defaultdict(int)


def _advisory_key(payment_id: UUID) -> int:
    # Signed 32-bit key derived from the UUID bytes.
    return zlib.crc32(payment_id.bytes) - 2**31


async def acquire_advisory_xact_lock(session: AsyncSession, payment_id: UUID) -> None:
    """Take a transaction-scoped advisory lock on a payment (PostgreSQL only)."""
    if session.bind.dialect.name != "postgresql":
        return
    await session.execute(
        text("SELECT pg_advisory_xact_lock(:key)"),
        {"key": _advisory_key(payment_id)},
    )


@asynccontextmanager
async def payment_lock(session: AsyncSession, payment_id: UUID) -> AsyncGenerator[None, None]:
    """Serialize operations against one payment."""
    lock = _local_locks.setdefault(payment_id, asyncio.Lock())
    _lock_users[payment_id] += 1
    try:
        async with lock:
            await acquire_advisory_xact_lock(session, payment_id)
            yield
    finally:
        _lock_users[payment_id] -= 1
        if _lock_users[payment_id] == 0:
            del _lock_users[payment_id]
            _local_locks.pop(payment_id, None)
