"""Employee lookup — the record collaborator consumed by the leave core."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.exceptions import NotFoundException
from leave_ledger.employees.models import Employee


class EmployeeService:
    """Read-only access to employee records."""

    @staticmethod
    async def get_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> Employee:
        """Return the employee or raise NOT_FOUND.

        Inactive employees are treated as unknown unless *active_only* is
        False (historic requests still resolve their owner).
        """
        query = select(Employee).where(Employee.id == employee_id)
        if active_only:
            query = query.where(Employee.is_active.is_(True))
        result = await db.execute(query)
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def get_direct_report_ids(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        """IDs of the active employees reporting to *manager_id*."""
        result = await db.execute(
            select(Employee.id).where(
                Employee.reporting_manager_id == manager_id,
                Employee.is_active.is_(True),
            )
        )
        return [row[0] for row in result.all()]
