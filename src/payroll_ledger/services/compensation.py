"""Run multi-step external operations with compensation on failure."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar
from uuid import UUID

from payroll_ledger.exceptions import GatewayFailureError, PaymentLedgerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_external(
    call: Callable[[], Awaitable[T]],
    operation: str,
    timeout: float | None,
    assignment_id: UUID | None = None,
) -> T:
    """Await one collaborator call under a timeout.

    Typed ledger errors (NotEligible, NotFound, ...) pass through. Timeouts
    and any other collaborator failure become GatewayFailureError.
    """
    try:
        return await asyncio.wait_for(call(), timeout)
    except PaymentLedgerError:
        raise
    except asyncio.TimeoutError as exc:
        raise GatewayFailureError(
            operation,
            f"{operation} timed out after {timeout}s",
            assignment_id=assignment_id,
        ) from exc
    except Exception as exc:
        raise GatewayFailureError(
            operation,
            f"{operation} failed: {exc}",
            assignment_id=assignment_id,
        ) from exc


async def compensate_all(
    done: list[UUID],
    compensate: Callable[[UUID], Awaitable[None]],
    operation: str,
) -> tuple[list[UUID], list[UUID]]:
    """Undo completed steps in reverse order.

    Returns (rolled_back, uncompensated). Every compensation is attempted
    even if an earlier one fails.
    """
    rolled_back: list[UUID] = []
    uncompensated: list[UUID] = []
    for key in reversed(done):
        try:
            await compensate(key)
        except PaymentLedgerError as exc:
            logger.error(
                "Compensation for %s failed on %s: %s", operation, key, exc,
                extra={"assignment_id": str(key)},
            )
            uncompensated.append(key)
        else:
            rolled_back.append(key)
    if rolled_back:
        logger.warning("Rolled back %s for %d assignment(s)", operation, len(rolled_back))
    return rolled_back, uncompensated


async def run_all_or_compensate(
    keys: Iterable[UUID],
    action: Callable[[UUID], Awaitable[None]],
    compensate: Callable[[UUID], Awaitable[None]],
    operation: str,
) -> list[UUID]:
    """Apply ``action`` to every key, or undo the ones that succeeded.

    On the first failure every earlier success is compensated before the
    error propagates. A GatewayFailureError is annotated with what was
    rolled back; if any compensation itself fails a new GatewayFailureError
    naming the uncompensated keys is raised instead.
    """
    done: list[UUID] = []
    for key in keys:
        try:
            await action(key)
        except PaymentLedgerError as exc:
            rolled_back, uncompensated = await compensate_all(done, compensate, operation)
            if uncompensated:
                raise GatewayFailureError(
                    operation,
                    f"{operation} failed on {key} and could not be fully rolled back",
                    assignment_id=key,
                    rolled_back=rolled_back,
                    uncompensated=uncompensated,
                ) from exc
            if isinstance(exc, GatewayFailureError):
                exc.rolled_back = rolled_back
            raise
        done.append(key)
    return done
