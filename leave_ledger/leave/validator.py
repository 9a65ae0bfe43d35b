"""Submission pipeline: structure → tenure → conversion → balance check.

Runs before anything is persisted and short-circuits on the first
failure, raising the most specific error kind:

  1. ValidationException          — required fields, reason length,
                                    hourly fields present iff is_hourly
  2. TenureNotMetException        — hired less than 3 months ago
  3. ValidationException          — reversed/invalid span (conversion)
  4. InsufficientBalanceException — requested quantity exceeds balance
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import MIN_REASON_LENGTH, LeaveStatus
from leave_ledger.common.exceptions import ValidationException
from leave_ledger.employees.models import Employee
from leave_ledger.employees.service import EmployeeService
from leave_ledger.leave import tenure
from leave_ledger.leave.conversion import to_day_equivalent
from leave_ledger.leave.ledger import LeaveLedger
from leave_ledger.leave.models import LeaveRequest
from leave_ledger.leave.schemas import LeaveRequestCreate


@dataclass(frozen=True)
class StagedRequest:
    """A validated request ready to be persisted as PENDING."""

    request: LeaveRequest
    employee: Employee
    available: Decimal


def check_structure(data: LeaveRequestCreate) -> None:
    """Field-level rules that need no database access."""
    errors: dict[str, list[str]] = {}

    if data.start_date is None:
        errors.setdefault("start_date", []).append("start_date is required.")
    if data.end_date is None:
        errors.setdefault("end_date", []).append("end_date is required.")

    reason = (data.reason or "").strip()
    if len(reason) < MIN_REASON_LENGTH:
        errors.setdefault("reason", []).append(
            f"Reason must be at least {MIN_REASON_LENGTH} characters."
        )

    has_times = data.start_time is not None or data.end_time is not None
    if data.is_hourly:
        if data.start_time is None:
            errors.setdefault("start_time", []).append(
                "start_time is required for hourly leave."
            )
        if data.end_time is None:
            errors.setdefault("end_time", []).append(
                "end_time is required for hourly leave."
            )
    elif has_times:
        errors.setdefault("is_hourly", []).append(
            "start_time/end_time are only allowed for hourly leave."
        )

    if errors:
        raise ValidationException(errors)


async def validate_and_stage(
    db: AsyncSession,
    employee_id: uuid.UUID,
    data: LeaveRequestCreate,
    *,
    at_time: Optional[datetime] = None,
) -> StagedRequest:
    """Validate a raw submission and build (but not persist) a PENDING request."""
    check_structure(data)

    employee = await EmployeeService.get_employee(db, employee_id)
    tenure.ensure_eligible(employee, at_time or datetime.now(timezone.utc))

    conversion = to_day_equivalent(
        data.start_date,
        data.end_date,
        is_hourly=data.is_hourly,
        start_time=data.start_time,
        end_time=data.end_time,
    )

    available = await LeaveLedger.ensure_sufficient(
        db, employee_id, data.category, conversion.quantity,
    )

    request = LeaveRequest(
        employee_id=employee_id,
        category=data.category,
        start_date=data.start_date,
        end_date=data.end_date,
        is_hourly=data.is_hourly,
        start_time=data.start_time if data.is_hourly else None,
        end_time=data.end_time if data.is_hourly else None,
        total_hours=conversion.total_hours,
        reason=data.reason.strip(),
        requested_quantity=conversion.quantity,
        status=LeaveStatus.pending,
    )
    return StagedRequest(request=request, employee=employee, available=available)
