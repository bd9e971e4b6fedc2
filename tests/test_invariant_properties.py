"""Property-based tests for ledger invariants.

These tests use hypothesis to generate amounts, rates and sequences of
ledger edits, and check that the PF arithmetic and the payment total hold
regardless of the values or the order of operations.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings, strategies as st
from hypothesis.stateful import RuleBasedStateMachine, invariant, precondition, rule
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_ledger.calculators import compute_deduction, round_currency
from payroll_ledger.config import PfRates
from payroll_ledger.models import Base, WorkAssignment
from payroll_ledger.services import PaymentService

gross_amounts = st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=4)
money = st.decimals(min_value=Decimal("0"), max_value=Decimal("100000"), places=2)
rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("1"), places=4)
voluntary_amounts = st.decimals(min_value=Decimal("0"), max_value=Decimal("500"), places=2)

CENT = Decimal("0.01").as_tuple().exponent


class TestDeductionInvariants:
    """Test PF breakdown invariants over generated inputs."""

    @given(gross=gross_amounts, employee_rate=rates, employer_rate=rates)
    @settings(max_examples=200)
    def test_pf_is_rounded_rate_of_gross(self, gross, employee_rate, employer_rate):
        """Employee and employer PF are the rate times gross, rounded half up."""
        result = compute_deduction(gross, employee_rate, employer_rate)

        assert result.employee_pf == round_currency(gross * employee_rate)
        assert result.employer_pf == round_currency(gross * employer_rate)

    @given(gross=gross_amounts, voluntary=voluntary_amounts, rate=rates)
    @settings(max_examples=200)
    def test_net_is_gross_minus_withheld(self, gross, voluntary, rate):
        """Net equals gross minus employee and voluntary PF."""
        result = compute_deduction(gross, employee_rate=rate, voluntary_amount=voluntary)

        assert result.pf_amount == result.employee_pf + result.voluntary_pf
        assert result.net_amount == result.gross_amount - result.employee_pf - result.voluntary_pf

    @given(gross=gross_amounts, voluntary=voluntary_amounts)
    @settings(max_examples=100)
    def test_default_rate_is_twelve_percent(self, gross, voluntary):
        """The default employee PF is 12% of gross."""
        result = compute_deduction(gross, voluntary_amount=voluntary)

        assert result.employee_pf == round_currency(gross * Decimal("0.12"))

    @given(gross=gross_amounts, first=rates, second=rates)
    @settings(max_examples=100)
    def test_employer_rate_never_changes_net(self, gross, first, second):
        """The employer contribution is not withheld from net pay."""
        a = compute_deduction(gross, employer_rate=first)
        b = compute_deduction(gross, employer_rate=second)

        assert a.net_amount == b.net_amount

    @given(gross=gross_amounts, voluntary=voluntary_amounts, rate=rates)
    @settings(max_examples=100)
    def test_amounts_at_cent_precision(self, gross, voluntary, rate):
        """Every amount in the breakdown is held to 2 decimal places."""
        result = compute_deduction(gross, employee_rate=rate, voluntary_amount=voluntary)

        for amount in (
            result.gross_amount,
            result.employee_pf,
            result.employer_pf,
            result.voluntary_pf,
            result.pf_amount,
            result.net_amount,
        ):
            assert amount.as_tuple().exponent == CENT


class LedgerTotalsMachine(RuleBasedStateMachine):
    """Random add, remove and re-evaluate sequences on one DRAFT payment.

    Each run gets its own event loop and in-memory database; the rules drive
    the real PaymentService and the invariants read the payment back.
    """

    def __init__(self):
        super().__init__()
        self.loop = asyncio.new_event_loop()
        self.items: list[tuple] = []
        self.run(self._start())

    def run(self, coro):
        return self.loop.run_until_complete(coro)

    async def _start(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )
        self.session = factory()
        self.service = PaymentService(self.session, rates=PfRates(), gateway_timeout=2.0)
        payment = await self.service.create_draft(6, 2024)
        self.payment_id = payment.payment_id

    async def _add(self, gross: Decimal, voluntary: Decimal):
        assignment = WorkAssignment(
            assignment_id=uuid4(),
            employee_id=uuid4(),
            employee_name="Asha",
            activity_name="Tea plucking",
            assignment_date=date(2024, 6, 10),
            status="COMPLETED",
            evaluation_count=1,
            last_evaluated_at=datetime(2024, 6, 11, tzinfo=timezone.utc),
            calculated_amount=gross,
            voluntary_pf_amount=voluntary,
            payment_status="UNPAID",
        )
        self.session.add(assignment)
        await self.session.flush()
        item = await self.service.add_line_item(self.payment_id, assignment.assignment_id)
        self.items.append((item.line_item_id, assignment.assignment_id))

    async def _change_gross(self, assignment_id, gross: Decimal):
        assignment = await self.session.get(WorkAssignment, assignment_id)
        assignment.calculated_amount = gross
        await self.session.flush()
        await self.service.reevaluate(self.payment_id)

    async def _stop(self):
        await self.session.close()
        await self.engine.dispose()

    @rule(gross=money, voluntary=voluntary_amounts)
    def add_assignment(self, gross, voluntary):
        self.run(self._add(gross, voluntary))

    @precondition(lambda self: self.items)
    @rule(data=st.data())
    def remove_item(self, data):
        line_item_id, assignment_id = data.draw(st.sampled_from(self.items))
        self.run(self.service.remove_line_item(self.payment_id, line_item_id))
        self.items.remove((line_item_id, assignment_id))

    @precondition(lambda self: self.items)
    @rule(data=st.data(), gross=money)
    def change_gross_and_reevaluate(self, data, gross):
        _, assignment_id = data.draw(st.sampled_from(self.items))
        self.run(self._change_gross(assignment_id, gross))

    @invariant()
    def total_is_sum_of_net(self):
        payment = self.run(self.service.get_payment(self.payment_id))

        assert payment.total_amount == sum(
            (item.net_amount for item in payment.line_items), Decimal("0.00")
        )
        assert sorted(payment.assignment_ids) == sorted(aid for _, aid in self.items)

    @invariant()
    def line_items_balance(self):
        payment = self.run(self.service.get_payment(self.payment_id))

        for item in payment.line_items:
            assert item.net_amount == item.gross_amount - item.employee_pf - item.voluntary_pf
            assert item.employee_pf == round_currency(item.gross_amount * Decimal("0.12"))

    def teardown(self):
        self.run(self._stop())
        self.loop.close()


LedgerTotalsMachine.TestCase.settings = settings(
    max_examples=25, stateful_step_count=12, deadline=None
)
TestLedgerTotals = LedgerTotalsMachine.TestCase
