"""Persistence and query interface for leave requests.

Status changes go through ``transition`` — a compare-and-set UPDATE that
only matches while the row still has the expected status. A request can
therefore leave PENDING once, and leave APPROVED once.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import LeaveCategory, LeaveStatus
from leave_ledger.common.exceptions import NotFoundException
from leave_ledger.leave.models import LeaveRequest


class LeaveRequestRepository:
    """Async data access for ``LeaveRequest`` rows."""

    @staticmethod
    async def add(db: AsyncSession, request: LeaveRequest) -> LeaveRequest:
        db.add(request)
        await db.flush()
        return request

    @staticmethod
    async def get(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        """Load a request with fresh column values, or raise NOT_FOUND."""
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalars().first()
        if request is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return request

    @staticmethod
    async def transition(
        db: AsyncSession,
        request_id: uuid.UUID,
        expected: LeaveStatus,
        *,
        expected_quantity: Optional[Decimal] = None,
        **values: Any,
    ) -> bool:
        """Apply *values* iff the request is still in *expected* status.

        With *expected_quantity* the row must also still carry that
        ``requested_quantity``, so a period edit that lands in between
        makes the update miss. Returns False when the row no longer matches.
        """
        query = update(LeaveRequest).where(
            LeaveRequest.id == request_id,
            LeaveRequest.status == expected,
        )
        if expected_quantity is not None:
            query = query.where(LeaveRequest.requested_quantity == expected_quantity)
        result = await db.execute(
            query
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def list_query(
        *,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        status: Optional[LeaveStatus] = None,
        category: Optional[LeaveCategory] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> Select:
        """Newest-first request query with optional filters.

        ``from_date``/``to_date`` select requests overlapping the window.
        """
        query = select(LeaveRequest).order_by(
            LeaveRequest.created_at.desc(), LeaveRequest.id
        )
        if employee_ids is not None:
            query = query.where(LeaveRequest.employee_id.in_(list(employee_ids)))
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if category is not None:
            query = query.where(LeaveRequest.category == category)
        if from_date is not None:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.start_date <= to_date)
        return query
