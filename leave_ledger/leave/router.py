"""Leave router — submit, approve/reject/cancel, period edits, balances.

All endpoints require authentication. Manager/HR-specific endpoints enforce
role checks; per-request rules (manager-of, owner) live in the service.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.dependencies import get_current_user, require_role
from leave_ledger.common.constants import LeaveCategory, LeaveStatus, UserRole
from leave_ledger.common.pagination import PaginationParams
from leave_ledger.common.rate_limit import limiter
from leave_ledger.database import get_db
from leave_ledger.employees.models import Employee
from leave_ledger.leave.schemas import (
    BalanceOpenRequest,
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeaveDecisionRequest,
    LeavePeriodOut,
    LeavePeriodUpdate,
    LeaveRequestCreate,
    LeaveRequestFilters,
    LeaveRequestOut,
    LeaveStatusOut,
    LeaveSubmitOut,
)
from leave_ledger.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])

_APPROVER_ROLES = (UserRole.manager, UserRole.hr_admin, UserRole.system_admin)
_HR_ROLES = (UserRole.hr_admin, UserRole.system_admin)


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveSubmitOut, status_code=201)
@limiter.limit("20/minute")
async def submit_leave(
    request: Request,
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Balance is checked here but only committed on approval."""
    leave_req = await LeaveService.submit(db, employee.id, body)
    return LeaveSubmitOut(
        request_id=leave_req.id,
        status=leave_req.status,
        requested_quantity=leave_req.requested_quantity,
    )


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=LeaveBalanceOut)
async def my_balance(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Remaining days per category for the authenticated employee."""
    return await LeaveService.get_balance(db, employee.id)


@router.get("/balance/{employee_id}", response_model=LeaveBalanceOut)
async def employee_balance(
    employee_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Balance of another employee (their manager or HR)."""
    return await LeaveService.get_balance(db, employee_id, viewer_id=employee.id)


# ── POST /balances/{employee_id}/open ───────────────────────────────

@router.post(
    "/balances/{employee_id}/open",
    response_model=LeaveBalanceOut,
    status_code=201,
)
async def open_balances(
    employee_id: uuid.UUID,
    body: BalanceOpenRequest,
    employee: Employee = Depends(require_role(*_HR_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Open balances for a newly onboarded employee. Omitted categories get defaults."""
    return await LeaveService.open_balances(
        db, employee_id, body.balances or None, actor_id=employee.id,
    )


# ── GET /requests/mine ──────────────────────────────────────────────

@router.get("/requests/mine")
async def my_requests(
    status: Optional[LeaveStatus] = Query(None),
    category: Optional[LeaveCategory] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated employee's leave requests, newest first."""
    filters = LeaveRequestFilters(
        status=status, category=category, from_date=from_date, to_date=to_date,
    )
    return await LeaveService.my_requests(db, employee.id, pagination, filters)


# ── GET /requests/pending ───────────────────────────────────────────

@router.get("/requests/pending")
async def pending_requests(
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(require_role(*_APPROVER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Pending requests the caller may decide (direct reports, or all for HR)."""
    return await LeaveService.pending_for_approver(db, employee.id, pagination)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests")
async def all_requests(
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    category: Optional[LeaveCategory] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(require_role(*_HR_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """All leave requests (HR view) with optional filters."""
    filters = LeaveRequestFilters(
        employee_id=employee_id,
        status=status,
        category=category,
        from_date=from_date,
        to_date=to_date,
    )
    return await LeaveService.all_requests(db, pagination, filters)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_request(db, request_id, employee.id)


# ── POST /requests/{id}/approve ─────────────────────────────────────

@router.post("/requests/{request_id}/approve", response_model=LeaveStatusOut)
async def approve_leave(
    request_id: uuid.UUID,
    body: Optional[LeaveDecisionRequest] = None,
    employee: Employee = Depends(require_role(*_APPROVER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending request. Commits the requested quantity to the ledger."""
    leave_req = await LeaveService.approve(
        db, request_id, employee.id, notes=body.notes if body else None,
    )
    return LeaveStatusOut(request_id=leave_req.id, status=leave_req.status)


# ── POST /requests/{id}/reject ──────────────────────────────────────

@router.post("/requests/{request_id}/reject", response_model=LeaveStatusOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: Optional[LeaveDecisionRequest] = None,
    employee: Employee = Depends(require_role(*_APPROVER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending request."""
    leave_req = await LeaveService.reject(
        db, request_id, employee.id, notes=body.notes if body else None,
    )
    return LeaveStatusOut(request_id=leave_req.id, status=leave_req.status)


# ── POST /requests/{id}/cancel ──────────────────────────────────────

@router.post("/requests/{request_id}/cancel", response_model=LeaveStatusOut)
async def cancel_leave(
    request_id: uuid.UUID,
    body: Optional[LeaveCancelRequest] = None,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a pending or approved request. Approved leave is restored to the balance."""
    leave_req = await LeaveService.cancel(
        db, request_id, employee.id, reason=body.reason if body else None,
    )
    return LeaveStatusOut(request_id=leave_req.id, status=leave_req.status)


# ── POST /requests/{id}/period ──────────────────────────────────────

@router.post("/requests/{request_id}/period", response_model=LeavePeriodOut)
async def edit_period(
    request_id: uuid.UUID,
    body: LeavePeriodUpdate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Move a pending request to a new period; the quantity is recomputed."""
    return await LeaveService.edit_period(db, request_id, employee.id, body)
