"""Balance ledger tests — check, commit, restore, opening balances."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.audit import AuditTrail
from leave_ledger.common.constants import DEFAULT_LEAVE_BALANCES, ErrorCode, LeaveCategory
from leave_ledger.common.exceptions import (
    ConflictError,
    InsufficientBalanceException,
    ValidationException,
)
from leave_ledger.leave.ledger import LeaveLedger
from tests.conftest import seed_balance, seed_employee


class TestReads:

    async def test_get_balances_per_category(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))
        await seed_balance(db, emp.id, LeaveCategory.sick, Decimal("1.5"))

        balances = await LeaveLedger.get_balances(db, emp.id)
        assert balances == {
            LeaveCategory.annual: Decimal("5"),
            LeaveCategory.sick: Decimal("1.5"),
        }

    async def test_get_balances_unknown_employee_is_empty(self, db: AsyncSession):
        emp = await seed_employee(db)
        assert await LeaveLedger.get_balances(db, emp.id) == {}

    async def test_missing_category_is_validation_error(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual)
        with pytest.raises(ValidationException):
            await LeaveLedger.get_available(db, emp.id, LeaveCategory.casual)

    async def test_check_sufficient(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("2"))

        assert await LeaveLedger.check_sufficient(
            db, emp.id, LeaveCategory.annual, Decimal("2"),
        ) is True
        assert await LeaveLedger.check_sufficient(
            db, emp.id, LeaveCategory.annual, Decimal("2.01"),
        ) is False

    async def test_check_does_not_reserve(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("3"))
        await LeaveLedger.check_sufficient(db, emp.id, LeaveCategory.annual, Decimal("3"))
        assert await LeaveLedger.get_available(
            db, emp.id, LeaveCategory.annual,
        ) == Decimal("3")


class TestCommitRestore:

    async def test_commit_deducts(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))

        remaining = await LeaveLedger.commit(db, emp.id, LeaveCategory.annual, Decimal("3"))
        assert remaining == Decimal("2")

    async def test_commit_exact_balance_reaches_zero(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.casual, Decimal("0.44"))

        remaining = await LeaveLedger.commit(
            db, emp.id, LeaveCategory.casual, Decimal("0.44"),
        )
        assert remaining == Decimal("0")

    async def test_commit_refuses_to_go_negative(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.sick, Decimal("1"))

        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveLedger.commit(db, emp.id, LeaveCategory.sick, Decimal("2"))

        err = exc_info.value
        assert err.code == ErrorCode.insufficient_balance
        assert err.requested == Decimal("2")
        assert err.available == Decimal("1")
        assert await LeaveLedger.get_available(
            db, emp.id, LeaveCategory.sick,
        ) == Decimal("1")

    async def test_interleaved_commits_only_one_wins(self, db: AsyncSession):
        """Both checks pass before either commit; the second commit must fail."""
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("3"))

        first_ok = await LeaveLedger.check_sufficient(
            db, emp.id, LeaveCategory.annual, Decimal("2"),
        )
        second_ok = await LeaveLedger.check_sufficient(
            db, emp.id, LeaveCategory.annual, Decimal("2"),
        )
        assert first_ok and second_ok

        await LeaveLedger.commit(db, emp.id, LeaveCategory.annual, Decimal("2"))
        with pytest.raises(InsufficientBalanceException):
            await LeaveLedger.commit(db, emp.id, LeaveCategory.annual, Decimal("2"))

        assert await LeaveLedger.get_available(
            db, emp.id, LeaveCategory.annual,
        ) == Decimal("1")

    async def test_concurrent_commits_from_two_transactions(self, session_factory):
        """Two sessions race for a balance that only covers one of them."""
        async with session_factory() as setup:
            emp = await seed_employee(setup)
            await seed_balance(setup, emp.id, LeaveCategory.annual, Decimal("3"))
            await setup.commit()

        async def take_two_days() -> bool:
            async with session_factory() as session:
                try:
                    await LeaveLedger.commit(
                        session, emp.id, LeaveCategory.annual, Decimal("2"),
                    )
                except InsufficientBalanceException:
                    await session.rollback()
                    return False
                await session.commit()
                return True

        outcomes = await asyncio.gather(take_two_days(), take_two_days())

        assert sorted(outcomes) == [False, True]
        async with session_factory() as session:
            assert await LeaveLedger.get_available(
                session, emp.id, LeaveCategory.annual,
            ) == Decimal("1")

    async def test_restore_adds_back(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))

        await LeaveLedger.commit(db, emp.id, LeaveCategory.annual, Decimal("3"))
        remaining = await LeaveLedger.restore(
            db, emp.id, LeaveCategory.annual, Decimal("3"),
        )
        assert remaining == Decimal("5")

    async def test_non_positive_quantity_rejected(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))

        with pytest.raises(ValidationException):
            await LeaveLedger.commit(db, emp.id, LeaveCategory.annual, Decimal("0"))
        with pytest.raises(ValidationException):
            await LeaveLedger.restore(db, emp.id, LeaveCategory.annual, Decimal("-1"))

    async def test_restore_without_row_rejected(self, db: AsyncSession):
        emp = await seed_employee(db)
        with pytest.raises(ValidationException):
            await LeaveLedger.restore(db, emp.id, LeaveCategory.annual, Decimal("1"))


class TestOpenBalances:

    async def test_defaults_for_every_category(self, db: AsyncSession):
        emp = await seed_employee(db)
        opened = await LeaveLedger.open_balances(db, emp.id)

        assert opened == DEFAULT_LEAVE_BALANCES
        balances = await LeaveLedger.get_balances(db, emp.id)
        assert set(balances) == set(LeaveCategory)
        assert balances[LeaveCategory.annual] == Decimal("20")

    async def test_overrides_merge_with_defaults(self, db: AsyncSession):
        emp = await seed_employee(db)
        await LeaveLedger.open_balances(
            db, emp.id, {LeaveCategory.annual: Decimal("12.5")},
        )
        balances = await LeaveLedger.get_balances(db, emp.id)
        assert balances[LeaveCategory.annual] == Decimal("12.5")
        assert balances[LeaveCategory.sick] == DEFAULT_LEAVE_BALANCES[LeaveCategory.sick]

    async def test_second_open_conflicts(self, db: AsyncSession):
        emp = await seed_employee(db)
        await LeaveLedger.open_balances(db, emp.id)
        with pytest.raises(ConflictError):
            await LeaveLedger.open_balances(db, emp.id)

    async def test_negative_opening_rejected(self, db: AsyncSession):
        emp = await seed_employee(db)
        with pytest.raises(ValidationException):
            await LeaveLedger.open_balances(
                db, emp.id, {LeaveCategory.sick: Decimal("-1")},
            )

    @pytest.mark.parametrize("amount", ["10000", "1.005", "NaN"])
    async def test_opening_must_fit_balance_column(self, db: AsyncSession, amount):
        emp = await seed_employee(db)
        with pytest.raises(ValidationException) as exc_info:
            await LeaveLedger.open_balances(
                db, emp.id, {LeaveCategory.annual: Decimal(amount)},
            )
        assert "annual" in exc_info.value.errors
        assert await LeaveLedger.get_balances(db, emp.id) == {}

    async def test_opening_at_column_maximum(self, db: AsyncSession):
        emp = await seed_employee(db)
        opened = await LeaveLedger.open_balances(
            db, emp.id, {LeaveCategory.unpaid: Decimal("9999.99")},
        )
        assert opened[LeaveCategory.unpaid] == Decimal("9999.99")

    async def test_opening_is_audited(self, db: AsyncSession):
        hr = await seed_employee(db, first_name="HR")
        emp = await seed_employee(db)
        await LeaveLedger.open_balances(db, emp.id, actor_id=hr.id)

        result = await db.execute(
            select(AuditTrail).where(AuditTrail.action == "open_balances")
        )
        entry = result.scalars().one()
        assert entry.entity_id == emp.id
        assert entry.actor_id == hr.id
        assert entry.new_values["annual"] == "20"
