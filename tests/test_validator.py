"""Submission pipeline tests — structure, tenure, conversion, balance."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import LeaveCategory, LeaveStatus
from leave_ledger.common.exceptions import (
    InsufficientBalanceException,
    NotFoundException,
    TenureNotMetException,
    ValidationException,
)
from leave_ledger.leave.models import LeaveRequest
from leave_ledger.leave.schemas import LeaveRequestCreate
from leave_ledger.leave.validator import check_structure, validate_and_stage
from tests.conftest import seed_balance, seed_employee

AT = datetime(2025, 5, 20, 9, 0, tzinfo=timezone.utc)


def _payload(**overrides) -> LeaveRequestCreate:
    data = dict(
        category="annual",
        start_date=date(2025, 6, 1),
        end_date=date(2025, 6, 3),
        reason="Family trip abroad",
    )
    data.update(overrides)
    return LeaveRequestCreate(**data)


class TestStructure:
    """Field rules that need no database."""

    def test_valid_payload_passes(self):
        check_structure(_payload())

    def test_category_is_case_insensitive(self):
        assert _payload(category=" Sick ").category == LeaveCategory.sick

    def test_unknown_category_fails_schema(self):
        with pytest.raises(ValidationError):
            _payload(category="sabbatical")

    def test_missing_dates(self):
        with pytest.raises(ValidationException) as exc_info:
            check_structure(_payload(start_date=None, end_date=None))
        assert set(exc_info.value.errors) == {"start_date", "end_date"}

    @pytest.mark.parametrize("reason", [None, "", "short", "  too short  "])
    def test_reason_too_short(self, reason):
        with pytest.raises(ValidationException) as exc_info:
            check_structure(_payload(reason=reason))
        assert "reason" in exc_info.value.errors

    def test_reason_of_exactly_ten_characters(self):
        check_structure(_payload(reason="0123456789"))

    def test_hourly_requires_times(self):
        with pytest.raises(ValidationException) as exc_info:
            check_structure(_payload(is_hourly=True, start_time=time(9, 0)))
        assert "end_time" in exc_info.value.errors

    def test_times_forbidden_on_full_day(self):
        with pytest.raises(ValidationException) as exc_info:
            check_structure(_payload(start_time=time(9, 0), end_time=time(12, 0)))
        assert "is_hourly" in exc_info.value.errors


class TestValidateAndStage:

    async def test_stages_pending_request(self, db: AsyncSession):
        emp = await seed_employee(db, hire_date=date(2024, 1, 1))
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))

        staged = await validate_and_stage(db, emp.id, _payload(), at_time=AT)

        assert staged.request.status == LeaveStatus.pending
        assert staged.request.requested_quantity == Decimal("3")
        assert staged.request.reason == "Family trip abroad"
        assert staged.available == Decimal("5")
        assert staged.employee.id == emp.id

    async def test_staging_persists_nothing(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))
        await validate_and_stage(db, emp.id, _payload(), at_time=AT)

        count = (await db.execute(select(func.count(LeaveRequest.id)))).scalar_one()
        assert count == 0

    async def test_hourly_request_stages_hours(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.casual, Decimal("1"))

        staged = await validate_and_stage(
            db, emp.id,
            _payload(
                category="casual",
                start_date=date(2025, 6, 2),
                end_date=date(2025, 6, 2),
                is_hourly=True,
                start_time=time(9, 0),
                end_time=time(12, 30),
            ),
            at_time=AT,
        )
        assert staged.request.total_hours == Decimal("3.50")
        assert staged.request.requested_quantity == Decimal("0.44")

    async def test_tenure_not_met(self, db: AsyncSession):
        emp = await seed_employee(db, hire_date=date(2025, 3, 1))
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))

        with pytest.raises(TenureNotMetException):
            await validate_and_stage(db, emp.id, _payload(), at_time=AT)

    async def test_tenure_boundary_day_passes(self, db: AsyncSession):
        emp = await seed_employee(db, hire_date=date(2025, 2, 20))
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))

        staged = await validate_and_stage(db, emp.id, _payload(), at_time=AT)
        assert staged.request.status == LeaveStatus.pending

    async def test_structure_checked_before_tenure(self, db: AsyncSession):
        emp = await seed_employee(db, hire_date=date(2025, 5, 1))
        with pytest.raises(ValidationException):
            await validate_and_stage(db, emp.id, _payload(reason="nope"), at_time=AT)

    async def test_reversed_dates(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.annual, Decimal("5"))
        with pytest.raises(ValidationException):
            await validate_and_stage(
                db, emp.id,
                _payload(start_date=date(2025, 6, 3), end_date=date(2025, 6, 1)),
                at_time=AT,
            )

    async def test_insufficient_balance(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, LeaveCategory.sick, Decimal("1"))

        with pytest.raises(InsufficientBalanceException) as exc_info:
            await validate_and_stage(
                db, emp.id,
                _payload(category="sick", end_date=date(2025, 6, 2)),
                at_time=AT,
            )
        assert exc_info.value.requested == Decimal("2")
        assert exc_info.value.available == Decimal("1")

    async def test_category_without_balance_row(self, db: AsyncSession):
        emp = await seed_employee(db)
        with pytest.raises(ValidationException):
            await validate_and_stage(db, emp.id, _payload(), at_time=AT)

    async def test_unknown_employee(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await validate_and_stage(db, uuid.uuid4(), _payload(), at_time=AT)
