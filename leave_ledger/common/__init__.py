"""Common module — shared utilities for the leave ledger."""

from leave_ledger.common.audit import AuditTrail, create_audit_entry
from leave_ledger.common.constants import (
    DEFAULT_LEAVE_BALANCES,
    DEFAULT_PAGE_SIZE,
    HR_ROLES,
    MAX_PAGE_SIZE,
    ErrorCode,
    LeaveCategory,
    LeaveStatus,
    NotificationType,
    UserRole,
)
from leave_ledger.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidStateTransitionException,
    NotFoundException,
    TenureNotMetException,
    ValidationException,
    register_exception_handlers,
)
from leave_ledger.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ErrorCode",
    "LeaveCategory",
    "LeaveStatus",
    "NotificationType",
    "UserRole",
    "HR_ROLES",
    "DEFAULT_LEAVE_BALANCES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InsufficientBalanceException",
    "InvalidStateTransitionException",
    "NotFoundException",
    "TenureNotMetException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
