"""Payroll ledger command line interface.

Provides operator tools for:
- Schema setup
- Payment listing, inspection and history
- Lifecycle actions (create, attach, submit, approve, pay, cancel, delete)
- Lock release retries for cancelled payments
- Document attachment
- Monthly PF reports

Usage:
    python -m payroll_ledger init-db
    python -m payroll_ledger list-payments --status PAID --year 2024
    python -m payroll_ledger create-draft --month 6 --year 2024 --actor ops
    python -m payroll_ledger record-payment --payment-id X --date 2024-06-30 --reference UTR123
    python -m payroll_ledger pf-report --month 6 --year 2024
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Awaitable, Callable
from uuid import UUID

from pydantic import BaseModel

from payroll_ledger.config import get_settings
from payroll_ledger.database import create_all, dispose_db, get_session
from payroll_ledger.exceptions import PaymentLedgerError
from payroll_ledger.logging_config import configure_logging
from payroll_ledger.reports import PfReportService
from payroll_ledger.schemas import (
    AssignmentSummaryRead,
    DocumentRead,
    HistoryEntryRead,
    PaymentFilter,
    PaymentRead,
    PaymentSummaryRead,
    PfReportRead,
)
from payroll_ledger.services import DocumentService, PaymentService
from payroll_ledger.storage import FileSystemDocumentStorage

logger = logging.getLogger(__name__)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def _dump(result: BaseModel | list[BaseModel]) -> str:
    if isinstance(result, list):
        return json.dumps([r.model_dump(mode="json") for r in result], indent=2)
    return result.model_dump_json(indent=2)


class LedgerCli:
    """Payroll ledger command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payroll_ledger",
            description="Payroll payment ledger tools",
        )
        parser.add_argument("--actor", help="User recorded in history entries")
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create database tables")

        listing = subparsers.add_parser("list-payments", help="List payments")
        listing.add_argument("--status", help="Filter by status")
        listing.add_argument("--month", type=int, help="Filter by payroll month")
        listing.add_argument("--year", type=int, help="Filter by payroll year")

        show = subparsers.add_parser("show", help="Show one payment with line items")
        show.add_argument("--payment-id", type=parse_uuid, required=True)

        history = subparsers.add_parser("history", help="Show payment history, newest first")
        history.add_argument("--payment-id", type=parse_uuid, required=True)

        eligible = subparsers.add_parser(
            "eligible", help="List assignments that can be attached to a payment"
        )
        eligible.add_argument("--payment-id", type=parse_uuid, required=True)
        eligible.add_argument("--start", type=parse_date, required=True)
        eligible.add_argument("--end", type=parse_date, required=True)

        create = subparsers.add_parser("create-draft", help="Create a DRAFT payment")
        create.add_argument("--month", type=int, required=True)
        create.add_argument("--year", type=int, required=True)
        create.add_argument("--title")
        create.add_argument("--remarks")
        create.add_argument("--assignment-id", type=parse_uuid, action="append", default=[])

        add = subparsers.add_parser("add-items", help="Attach assignments to a DRAFT")
        add.add_argument("--payment-id", type=parse_uuid, required=True)
        add.add_argument("--assignment-id", type=parse_uuid, action="append", required=True)

        remove = subparsers.add_parser("remove-item", help="Detach a line item from a DRAFT")
        remove.add_argument("--payment-id", type=parse_uuid, required=True)
        remove.add_argument("--line-item-id", type=parse_uuid, required=True)

        reevaluate = subparsers.add_parser("reevaluate", help="Recompute a DRAFT's line items")
        reevaluate.add_argument("--payment-id", type=parse_uuid, required=True)

        submit = subparsers.add_parser("submit", help="Submit a DRAFT for approval")
        submit.add_argument("--payment-id", type=parse_uuid, required=True)
        submit.add_argument("--remarks")

        approve = subparsers.add_parser("approve", help="Approve a submitted payment")
        approve.add_argument("--payment-id", type=parse_uuid, required=True)
        approve.add_argument("--remarks")

        pay = subparsers.add_parser("record-payment", help="Record the transfer for an approved payment")
        pay.add_argument("--payment-id", type=parse_uuid, required=True)
        pay.add_argument("--date", type=parse_date, required=True)
        pay.add_argument("--reference", required=True)
        pay.add_argument("--remarks")

        cancel = subparsers.add_parser("cancel", help="Cancel a submitted or approved payment")
        cancel.add_argument("--payment-id", type=parse_uuid, required=True)
        cancel.add_argument("--reason", required=True)

        release = subparsers.add_parser(
            "release-locks", help="Retry releasing assignments a cancelled payment still holds"
        )
        release.add_argument("--payment-id", type=parse_uuid, required=True)

        delete = subparsers.add_parser("delete-draft", help="Delete a DRAFT payment")
        delete.add_argument("--payment-id", type=parse_uuid, required=True)

        attach = subparsers.add_parser("attach-document", help="Attach a file to a payment")
        attach.add_argument("--payment-id", type=parse_uuid, required=True)
        attach.add_argument("--file", type=Path, required=True)
        attach.add_argument("--type", default="OTHER", dest="document_type")
        attach.add_argument("--description")

        report = subparsers.add_parser("pf-report", help="Monthly PF report from paid payments")
        report.add_argument("--month", type=int, required=True)
        report.add_argument("--year", type=int, required=True)

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run CLI with arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        settings = get_settings()
        configure_logging(settings.log_level, settings.log_format)

        handler = getattr(self, "_cmd_" + parsed.command.replace("-", "_"), None)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            output = asyncio.run(self._in_session(handler, parsed))
        except PaymentLedgerError as exc:
            print(json.dumps({"error": exc.to_dict()}, indent=2), file=sys.stderr)
            return 2
        if output:
            print(output)
        return 0

    async def _in_session(
        self,
        handler: Callable[[Any, argparse.Namespace], Awaitable[str]],
        args: argparse.Namespace,
    ) -> str:
        try:
            async with get_session() as session:
                return await handler(session, args)
        finally:
            await dispose_db()

    def _payments(self, session: Any) -> PaymentService:
        return PaymentService(session, storage=self._storage())

    def _storage(self) -> FileSystemDocumentStorage:
        return FileSystemDocumentStorage(get_settings().document_storage_dir)

    async def _cmd_init_db(self, session: Any, args: argparse.Namespace) -> str:
        await create_all()
        return "Database initialized."

    async def _cmd_list_payments(self, session: Any, args: argparse.Namespace) -> str:
        filters = PaymentFilter(status=args.status, month=args.month, year=args.year)
        payments = await self._payments(session).list_payments(
            status=filters.status.value if filters.status else None,
            month=filters.month,
            year=filters.year,
        )
        return _dump([PaymentSummaryRead.model_validate(p) for p in payments])

    async def _cmd_show(self, session: Any, args: argparse.Namespace) -> str:
        payment = await self._payments(session).get_payment(args.payment_id)
        return _dump(PaymentRead.model_validate(payment))

    async def _cmd_history(self, session: Any, args: argparse.Namespace) -> str:
        entries = await self._payments(session).get_history(args.payment_id)
        return _dump([HistoryEntryRead.model_validate(e) for e in entries])

    async def _cmd_eligible(self, session: Any, args: argparse.Namespace) -> str:
        candidates = await self._payments(session).list_eligible_assignments(
            args.payment_id, args.start, args.end
        )
        return _dump([AssignmentSummaryRead.model_validate(c) for c in candidates])

    async def _cmd_create_draft(self, session: Any, args: argparse.Namespace) -> str:
        payment = await self._payments(session).create_draft(
            args.month,
            args.year,
            title=args.title,
            remarks=args.remarks,
            assignment_ids=args.assignment_id,
            actor=args.actor,
        )
        return _dump(PaymentRead.model_validate(payment))

    async def _cmd_add_items(self, session: Any, args: argparse.Namespace) -> str:
        service = self._payments(session)
        await service.add_line_items(args.payment_id, args.assignment_id, actor=args.actor)
        return _dump(PaymentRead.model_validate(await service.get_payment(args.payment_id)))

    async def _cmd_remove_item(self, session: Any, args: argparse.Namespace) -> str:
        payment = await self._payments(session).remove_line_item(
            args.payment_id, args.line_item_id, actor=args.actor
        )
        return _dump(PaymentRead.model_validate(payment))

    async def _cmd_reevaluate(self, session: Any, args: argparse.Namespace) -> str:
        payment = await self._payments(session).reevaluate(args.payment_id, actor=args.actor)
        return _dump(PaymentRead.model_validate(payment))

    async def _cmd_submit(self, session: Any, args: argparse.Namespace) -> str:
        payment = await self._payments(session).submit_for_approval(
            args.payment_id, remarks=args.remarks, actor=args.actor
        )
        return _dump(PaymentRead.model_validate(payment))

    async def _cmd_approve(self, session: Any, args: argparse.Namespace) -> str:
        payment = await self._payments(session).approve(
            args.payment_id, remarks=args.remarks, actor=args.actor
        )
        return _dump(PaymentRead.model_validate(payment))

    async def _cmd_record_payment(self, session: Any, args: argparse.Namespace) -> str:
        payment = await self._payments(session).record_payment(
            args.payment_id, args.date, args.reference, remarks=args.remarks, actor=args.actor
        )
        return _dump(PaymentRead.model_validate(payment))

    async def _cmd_cancel(self, session: Any, args: argparse.Namespace) -> str:
        payment = await self._payments(session).cancel(
            args.payment_id, args.reason, actor=args.actor
        )
        return _dump(PaymentRead.model_validate(payment))

    async def _cmd_release_locks(self, session: Any, args: argparse.Namespace) -> str:
        released = await self._payments(session).release_locks(args.payment_id, actor=args.actor)
        return json.dumps([str(aid) for aid in released], indent=2)

    async def _cmd_delete_draft(self, session: Any, args: argparse.Namespace) -> str:
        await self._payments(session).delete_draft(args.payment_id, actor=args.actor)
        return f"Deleted payment {args.payment_id}"

    async def _cmd_attach_document(self, session: Any, args: argparse.Namespace) -> str:
        try:
            content = args.file.read_bytes()
        except OSError as exc:
            raise PaymentLedgerError(f"Cannot read {args.file}: {exc}") from exc
        doc = await DocumentService(session, self._storage()).add_document(
            args.payment_id,
            args.file.name,
            content,
            document_type=args.document_type,
            description=args.description,
            actor=args.actor,
        )
        return _dump(DocumentRead.model_validate(doc))

    async def _cmd_pf_report(self, session: Any, args: argparse.Namespace) -> str:
        report = await PfReportService(session).generate_report(args.month, args.year)
        return _dump(PfReportRead.model_validate(report))


def main() -> int:
    """CLI entry point."""
    cli = LedgerCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
