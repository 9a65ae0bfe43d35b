"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request / *Update  → request bodies (write)
  - *Out                         → response bodies (read)

Request bodies only enforce types and size limits; the business rules
(reason length, hourly fields, date order) live in the submission
validator so every caller gets the same error kinds.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leave_ledger.common.constants import LeaveCategory, LeaveStatus


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


# Fits the NUMERIC(6, 2) balance column
OpeningAmount = Annotated[Decimal, Field(ge=0, max_digits=6, decimal_places=2)]


# ═════════════════════════════════════════════════════════════════════
# Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Remaining day-equivalents per category for one employee."""

    employee_id: uuid.UUID
    balances: dict[LeaveCategory, Decimal]


class BalanceOpenRequest(BaseModel):
    """Opening balances for a new employee; omitted categories use defaults."""

    balances: dict[LeaveCategory, OpeningAmount] = Field(default_factory=dict)

    @field_validator("balances", mode="before")
    @classmethod
    def normalise_categories(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {_lower(k): amount for k, amount in v.items()}
        return v


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    category: LeaveCategory
    start_date: Optional[date] = Field(None, description="Leave start date (inclusive)")
    end_date: Optional[date] = Field(None, description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000, description="Reason for leave")
    is_hourly: bool = False
    start_time: Optional[time] = Field(None, description="HH:MM, hourly leave only")
    end_time: Optional[time] = Field(None, description="HH:MM, hourly leave only")

    @field_validator("category", mode="before")
    @classmethod
    def normalise_category(cls, v: Any) -> Any:
        return _lower(v)


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    category: LeaveCategory
    start_date: date
    end_date: date
    is_hourly: bool = False
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    total_hours: Optional[Decimal] = None
    reason: str
    status: LeaveStatus
    requested_quantity: Decimal
    committed_quantity: Optional[Decimal] = None
    approver_id: Optional[uuid.UUID] = None
    decision_at: Optional[datetime] = None
    decision_notes: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LeaveSubmitOut(BaseModel):
    """Acknowledgement returned by a successful submission."""

    request_id: uuid.UUID
    status: LeaveStatus
    requested_quantity: Decimal


class LeaveStatusOut(BaseModel):
    """Result of a lifecycle transition."""

    request_id: uuid.UUID
    status: LeaveStatus


class LeavePeriodOut(BaseModel):
    """Result of a period edit."""

    request_id: uuid.UUID
    start_date: date
    end_date: date
    requested_quantity: Decimal


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject / Cancel / Period edit
# ═════════════════════════════════════════════════════════════════════


class LeaveDecisionRequest(BaseModel):
    """Payload for approving or rejecting a leave request."""

    notes: Optional[str] = Field(None, max_length=500)


class LeaveCancelRequest(BaseModel):
    """Payload for cancelling a leave request."""

    reason: Optional[str] = Field(None, max_length=500)


class LeavePeriodUpdate(BaseModel):
    """New period for a pending request (times only for hourly leave)."""

    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request Filters
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestFilters(BaseModel):
    """Query filters for listing leave requests."""

    employee_id: Optional[uuid.UUID] = None
    status: Optional[LeaveStatus] = None
    category: Optional[LeaveCategory] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
