"""Leave service layer — request lifecycle state machine and read operations.

State machine:

    PENDING ──approve──▶ APPROVED ──cancel──▶ CANCELLED  (restore committed)
       │ ├──reject───▶ REJECTED
       │ └──cancel───▶ CANCELLED                         (no ledger effect)
       └──edit_period (stays PENDING, quantity recomputed)

Balance is only *checked* at submission and *committed* at approval, so
two pending requests may together exceed the balance; the first approval
wins and later ones fail with INSUFFICIENT_BALANCE.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.service import AuthorizationService
from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.constants import LeaveCategory, LeaveStatus
from leave_ledger.common.exceptions import (
    ForbiddenException,
    InvalidStateTransitionException,
    ValidationException,
)
from leave_ledger.common.pagination import (
    PaginatedResponse,
    PaginationParams,
    paginate,
)
from leave_ledger.employees.service import EmployeeService
from leave_ledger.leave.conversion import to_day_equivalent
from leave_ledger.leave.ledger import LeaveLedger
from leave_ledger.leave.models import LeaveRequest
from leave_ledger.leave.repository import LeaveRequestRepository
from leave_ledger.leave.schemas import (
    LeaveBalanceOut,
    LeavePeriodOut,
    LeavePeriodUpdate,
    LeaveRequestCreate,
    LeaveRequestFilters,
    LeaveRequestOut,
)
from leave_ledger.leave.validator import validate_and_stage
from leave_ledger.notifications.service import (
    NotificationService,
    notify_leave_approved,
    notify_leave_cancelled,
    notify_leave_rejected,
    notify_leave_submitted,
)

logger = logging.getLogger(__name__)

_ENTITY = "leave request"


def _invalid(request: LeaveRequest, action: str) -> InvalidStateTransitionException:
    return InvalidStateTransitionException(_ENTITY, request.status.value, action)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: submit, decide, cancel, edit, balances, listings."""

    @staticmethod
    def _build_request_response(req: LeaveRequest) -> LeaveRequestOut:
        return LeaveRequestOut.model_validate(req)

    # ─────────────────────────────────────────────────────────────────
    # Balance
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        viewer_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalanceOut:
        """Remaining days per category. *viewer_id* other than the owner is
        checked against the manager-of / HR rule."""
        employee = await EmployeeService.get_employee(db, employee_id)
        if viewer_id is not None and not await AuthorizationService.can_view(
            db, viewer_id, employee,
        ):
            raise ForbiddenException("You are not authorized to view this balance.")

        balances = await LeaveLedger.get_balances(db, employee_id)
        return LeaveBalanceOut(employee_id=employee_id, balances=balances)

    @staticmethod
    async def open_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        opening: Optional[Mapping[LeaveCategory, Decimal]] = None,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalanceOut:
        """Open an onboarded employee's balances (HR only at the HTTP layer)."""
        await EmployeeService.get_employee(db, employee_id)
        balances = await LeaveLedger.open_balances(
            db, employee_id, opening, actor_id=actor_id,
        )
        return LeaveBalanceOut(employee_id=employee_id, balances=balances)

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
        *,
        at_time: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Validate and persist a PENDING request. No balance is deducted."""
        staged = await validate_and_stage(db, employee_id, data, at_time=at_time)

        leave_req = await LeaveRequestRepository.add(db, staged.request)
        leave_req = await LeaveRequestRepository.get(db, leave_req.id)

        await create_audit_entry(
            db,
            action="submit",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=employee_id,
            new_values={
                "category": leave_req.category.value,
                "start_date": leave_req.start_date.isoformat(),
                "end_date": leave_req.end_date.isoformat(),
                "is_hourly": leave_req.is_hourly,
                "requested_quantity": str(leave_req.requested_quantity),
                "status": LeaveStatus.pending.value,
            },
        )

        approver_id = staged.employee.reporting_manager_id
        if approver_id:
            await NotificationService.dispatch_safely(
                db, notify_leave_submitted, leave_req, approver_id,
            )

        logger.info(
            "Leave submitted: request=%s employee=%s category=%s quantity=%s",
            leave_req.id, employee_id, leave_req.category.value,
            leave_req.requested_quantity,
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Approve
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        *,
        notes: Optional[str] = None,
    ) -> LeaveRequestOut:
        """PENDING → APPROVED, committing ``requested_quantity`` to the ledger.

        The commit is the sufficiency re-check: it only succeeds if the
        balance still covers the request at this moment. The status flip
        also matches on the committed quantity, so a period edit between
        the two refunds the commit and fails the approval.
        """
        leave_req = await LeaveRequestRepository.get(db, request_id)
        if leave_req.status != LeaveStatus.pending:
            raise _invalid(leave_req, "approve")

        requester = await EmployeeService.get_employee(
            db, leave_req.employee_id, active_only=False,
        )
        if not await AuthorizationService.can_decide(db, approver_id, requester):
            raise ForbiddenException(
                "You are not authorized to approve this leave request."
            )

        quantity = leave_req.requested_quantity
        await LeaveLedger.commit(db, leave_req.employee_id, leave_req.category, quantity)

        now = datetime.now(timezone.utc)
        moved = await LeaveRequestRepository.transition(
            db,
            request_id,
            LeaveStatus.pending,
            expected_quantity=quantity,
            status=LeaveStatus.approved,
            approver_id=approver_id,
            decision_at=now,
            decision_notes=notes,
            committed_quantity=quantity,
            updated_at=now,
        )
        if not moved:
            # Decided or re-periodised concurrently: hand the quantity back
            await LeaveLedger.restore(
                db, leave_req.employee_id, leave_req.category, quantity,
            )
            leave_req = await LeaveRequestRepository.get(db, request_id)
            raise _invalid(leave_req, "approve")

        leave_req = await LeaveRequestRepository.get(db, request_id)

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={
                "status": LeaveStatus.approved.value,
                "committed_quantity": str(quantity),
                "notes": notes,
            },
        )
        await NotificationService.dispatch_safely(db, notify_leave_approved, leave_req)

        logger.info(
            "Leave approved: request=%s approver=%s committed=%s",
            request_id, approver_id, quantity,
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        *,
        notes: Optional[str] = None,
    ) -> LeaveRequestOut:
        """PENDING → REJECTED. Nothing was committed, so the ledger is untouched."""
        leave_req = await LeaveRequestRepository.get(db, request_id)
        if leave_req.status != LeaveStatus.pending:
            raise _invalid(leave_req, "reject")

        requester = await EmployeeService.get_employee(
            db, leave_req.employee_id, active_only=False,
        )
        if not await AuthorizationService.can_decide(db, approver_id, requester):
            raise ForbiddenException(
                "You are not authorized to reject this leave request."
            )

        now = datetime.now(timezone.utc)
        moved = await LeaveRequestRepository.transition(
            db,
            request_id,
            LeaveStatus.pending,
            status=LeaveStatus.rejected,
            approver_id=approver_id,
            decision_at=now,
            decision_notes=notes,
            updated_at=now,
        )
        leave_req = await LeaveRequestRepository.get(db, request_id)
        if not moved:
            raise _invalid(leave_req, "reject")

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, "notes": notes},
        )
        await NotificationService.dispatch_safely(db, notify_leave_rejected, leave_req)

        logger.info("Leave rejected: request=%s approver=%s", request_id, approver_id)
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        *,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """PENDING/APPROVED → CANCELLED.

        Cancelling approved leave restores the committed quantity exactly
        once: only the caller whose compare-and-set moves the row out of
        APPROVED performs the restore.
        """
        leave_req = await LeaveRequestRepository.get(db, request_id)
        if leave_req.status not in (LeaveStatus.pending, LeaveStatus.approved):
            raise _invalid(leave_req, "cancel")

        requester = await EmployeeService.get_employee(
            db, leave_req.employee_id, active_only=False,
        )
        if not await AuthorizationService.can_act_for(db, actor_id, requester):
            raise ForbiddenException("You can only cancel your own leave requests.")

        previous = leave_req.status
        now = datetime.now(timezone.utc)
        moved = await LeaveRequestRepository.transition(
            db,
            request_id,
            previous,
            status=LeaveStatus.cancelled,
            cancelled_by=actor_id,
            cancelled_at=now,
            cancel_reason=reason,
            updated_at=now,
        )
        if not moved:
            leave_req = await LeaveRequestRepository.get(db, request_id)
            raise _invalid(leave_req, "cancel")

        restored: Optional[Decimal] = None
        if previous == LeaveStatus.approved:
            restored = leave_req.committed_quantity
            if restored is None:
                restored = leave_req.requested_quantity
            await LeaveLedger.restore(
                db, leave_req.employee_id, leave_req.category, restored,
            )

        leave_req = await LeaveRequestRepository.get(db, request_id)

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor_id,
            old_values={"status": previous.value},
            new_values={
                "status": LeaveStatus.cancelled.value,
                "restored_quantity": None if restored is None else str(restored),
                "reason": reason,
            },
        )

        # Tell the other side: the manager when the employee cancels,
        # the employee when someone else (HR) cancels on their behalf.
        recipient_id = (
            requester.reporting_manager_id
            if actor_id == requester.id
            else requester.id
        )
        if recipient_id:
            await NotificationService.dispatch_safely(
                db, notify_leave_cancelled, leave_req, recipient_id,
            )

        logger.info(
            "Leave cancelled: request=%s actor=%s from=%s restored=%s",
            request_id, actor_id, previous.value, restored,
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Period edit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def edit_period(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        data: LeavePeriodUpdate,
    ) -> LeavePeriodOut:
        """Move a PENDING request to a new period and recompute its quantity.

        The new quantity must still fit the current balance; otherwise the
        edit is refused and the original period stays in place.
        """
        leave_req = await LeaveRequestRepository.get(db, request_id)
        if leave_req.status != LeaveStatus.pending:
            raise _invalid(leave_req, "edit the period of")

        requester = await EmployeeService.get_employee(
            db, leave_req.employee_id, active_only=False,
        )
        if not await AuthorizationService.can_act_for(db, actor_id, requester):
            raise ForbiddenException("You can only edit your own leave requests.")

        if not leave_req.is_hourly and (data.start_time or data.end_time):
            raise ValidationException(
                {"start_time": ["Times can only be set on hourly leave."]}
            )

        start_time = data.start_time or leave_req.start_time
        end_time = data.end_time or leave_req.end_time
        conversion = to_day_equivalent(
            data.start_date,
            data.end_date,
            is_hourly=leave_req.is_hourly,
            start_time=start_time,
            end_time=end_time,
        )
        await LeaveLedger.ensure_sufficient(
            db, leave_req.employee_id, leave_req.category, conversion.quantity,
        )

        old_values = {
            "start_date": leave_req.start_date.isoformat(),
            "end_date": leave_req.end_date.isoformat(),
            "requested_quantity": str(leave_req.requested_quantity),
        }
        changes = {
            "start_date": data.start_date,
            "end_date": data.end_date,
            "requested_quantity": conversion.quantity,
            "total_hours": conversion.total_hours,
            "updated_at": datetime.now(timezone.utc),
        }
        if leave_req.is_hourly:
            changes.update(start_time=start_time, end_time=end_time)

        moved = await LeaveRequestRepository.transition(
            db, request_id, LeaveStatus.pending, **changes,
        )
        leave_req = await LeaveRequestRepository.get(db, request_id)
        if not moved:
            raise _invalid(leave_req, "edit the period of")

        await create_audit_entry(
            db,
            action="edit_period",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values={
                "start_date": leave_req.start_date.isoformat(),
                "end_date": leave_req.end_date.isoformat(),
                "requested_quantity": str(leave_req.requested_quantity),
            },
        )

        logger.info(
            "Leave period edited: request=%s %s..%s quantity=%s",
            request_id, leave_req.start_date, leave_req.end_date,
            leave_req.requested_quantity,
        )
        return LeavePeriodOut(
            request_id=leave_req.id,
            start_date=leave_req.start_date,
            end_date=leave_req.end_date,
            requested_quantity=leave_req.requested_quantity,
        )

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        viewer_id: uuid.UUID,
    ) -> LeaveRequestOut:
        """Single request, visible to its owner, their manager, and HR."""
        leave_req = await LeaveRequestRepository.get(db, request_id)
        owner = await EmployeeService.get_employee(
            db, leave_req.employee_id, active_only=False,
        )
        if not await AuthorizationService.can_view(db, viewer_id, owner):
            raise ForbiddenException("You are not authorized to view this leave request.")
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    async def my_requests(
        db: AsyncSession,
        employee_id: uuid.UUID,
        params: PaginationParams,
        filters: Optional[LeaveRequestFilters] = None,
    ) -> PaginatedResponse:
        """The employee's own requests, newest first."""
        filters = filters or LeaveRequestFilters()
        query = LeaveRequestRepository.list_query(
            employee_ids=[employee_id],
            status=filters.status,
            category=filters.category,
            from_date=filters.from_date,
            to_date=filters.to_date,
        )
        return await paginate(
            db, query, params, transform=LeaveService._build_request_response,
        )

    @staticmethod
    async def pending_for_approver(
        db: AsyncSession,
        approver_id: uuid.UUID,
        params: PaginationParams,
    ) -> PaginatedResponse:
        """PENDING requests the approver may decide: direct reports, or all for HR."""
        employee_ids: Optional[list[uuid.UUID]] = None
        if not await AuthorizationService.is_hr(db, approver_id):
            employee_ids = await EmployeeService.get_direct_report_ids(db, approver_id)

        query = LeaveRequestRepository.list_query(
            employee_ids=employee_ids, status=LeaveStatus.pending,
        )
        return await paginate(
            db, query, params, transform=LeaveService._build_request_response,
        )

    @staticmethod
    async def all_requests(
        db: AsyncSession,
        params: PaginationParams,
        filters: Optional[LeaveRequestFilters] = None,
    ) -> PaginatedResponse:
        """Every request (HR scope) with optional filters."""
        filters = filters or LeaveRequestFilters()
        query = LeaveRequestRepository.list_query(
            employee_ids=[filters.employee_id] if filters.employee_id else None,
            status=filters.status,
            category=filters.category,
            from_date=filters.from_date,
            to_date=filters.to_date,
        )
        return await paginate(
            db, query, params, transform=LeaveService._build_request_response,
        )
