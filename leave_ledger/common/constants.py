"""Enums and constants for the leave ledger — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# Roles allowed to decide or cancel any employee's leave
HR_ROLES: frozenset[UserRole] = frozenset({UserRole.hr_admin, UserRole.system_admin})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveCategory(str, enum.Enum):
    annual = "annual"
    sick = "sick"
    casual = "casual"
    unpaid = "unpaid"
    maternity = "maternity"
    paternity = "paternity"
    other = "other"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not LeaveStatus.pending


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    alert = "alert"


# ── Error codes (stable, caller-facing) ─────────────────────────────

class ErrorCode(str, enum.Enum):
    validation_error = "VALIDATION_ERROR"
    tenure_not_met = "TENURE_NOT_MET"
    insufficient_balance = "INSUFFICIENT_BALANCE"
    invalid_state_transition = "INVALID_STATE_TRANSITION"
    not_authorized = "NOT_AUTHORIZED"
    not_found = "NOT_FOUND"
    conflict = "CONFLICT"


# ── Leave rules ─────────────────────────────────────────────────────

WORKING_HOURS_PER_DAY = 8
MIN_TENURE_MONTHS = 3
MIN_REASON_LENGTH = 10
MIN_HOURLY_LEAVE_HOURS = Decimal("1")
QUANTITY_PLACES = Decimal("0.01")
# Largest value a NUMERIC(6, 2) balance column holds
MAX_BALANCE = Decimal("9999.99")

# Opening balances for a freshly onboarded employee (days)
DEFAULT_LEAVE_BALANCES: dict[LeaveCategory, Decimal] = {
    LeaveCategory.annual: Decimal("20"),
    LeaveCategory.sick: Decimal("10"),
    LeaveCategory.casual: Decimal("5"),
    LeaveCategory.unpaid: Decimal("0"),
    LeaveCategory.maternity: Decimal("0"),
    LeaveCategory.paternity: Decimal("0"),
    LeaveCategory.other: Decimal("0"),
}

# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
