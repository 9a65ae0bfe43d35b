"""Authorization decisions for leave transitions.

The leave core only asks *whether* an actor may act on a request; the
answer comes from role assignments and the manager-of relationship.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.models import RoleAssignment
from leave_ledger.common.constants import HR_ROLES
from leave_ledger.employees.models import Employee


class AuthorizationService:
    """Async permission checks used at each lifecycle gate point."""

    @staticmethod
    async def is_hr(db: AsyncSession, employee_id: uuid.UUID) -> bool:
        """True if the employee holds an active HR or system admin role."""
        result = await db.execute(
            select(RoleAssignment.id).where(
                RoleAssignment.employee_id == employee_id,
                RoleAssignment.role.in_(list(HR_ROLES)),
                RoleAssignment.is_active.is_(True),
            ).limit(1)
        )
        return result.scalar() is not None

    @staticmethod
    async def can_decide(
        db: AsyncSession,
        approver_id: uuid.UUID,
        requester: Employee,
    ) -> bool:
        """Approve/reject: the requester's reporting manager or HR, never self."""
        if approver_id == requester.id:
            return False
        if requester.reporting_manager_id == approver_id:
            return True
        return await AuthorizationService.is_hr(db, approver_id)

    @staticmethod
    async def can_act_for(
        db: AsyncSession,
        actor_id: uuid.UUID,
        requester: Employee,
    ) -> bool:
        """Cancel / period edit: the requester themself or HR."""
        if actor_id == requester.id:
            return True
        return await AuthorizationService.is_hr(db, actor_id)

    @staticmethod
    async def can_view(
        db: AsyncSession,
        viewer_id: uuid.UUID,
        owner: Employee,
    ) -> bool:
        """Read access: owner, the owner's reporting manager, or HR."""
        if viewer_id == owner.id or owner.reporting_manager_id == viewer_id:
            return True
        return await AuthorizationService.is_hr(db, viewer_id)
