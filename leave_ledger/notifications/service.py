"""Notification service — outbox writes and leave transition dispatchers."""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import NotificationType
from leave_ledger.notifications.models import Notification

logger = logging.getLogger(__name__)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: uuid.UUID,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def dispatch_safely(
        db: AsyncSession,
        dispatcher: Callable[..., Awaitable[Notification]],
        *args,
    ) -> Optional[Notification]:
        """Run *dispatcher* in a SAVEPOINT; failures are logged, never raised.

        A failed notification must not undo the transition that triggered it.
        """
        try:
            async with db.begin_nested():
                return await dispatcher(db, *args)
        except Exception:
            logger.exception(
                "Notification dispatch %s failed; transition kept",
                getattr(dispatcher, "__name__", dispatcher),
            )
            return None


# ── Leave dispatchers ───────────────────────────────────────────────
# They accept the ORM object directly to avoid tight schema coupling.


def _period(leave_request) -> str:
    if leave_request.is_hourly:
        return (
            f"{leave_request.start_date} "
            f"{leave_request.start_time:%H:%M}-{leave_request.end_time:%H:%M}"
        )
    return f"{leave_request.start_date} to {leave_request.end_date}"


async def notify_leave_submitted(
    db: AsyncSession,
    leave_request,  # leave_ledger.leave.models.LeaveRequest
    approver_id: uuid.UUID,
) -> Notification:
    """Notify the approver that a new leave request needs review."""
    return await NotificationService.create_notification(
        db,
        recipient_id=approver_id,
        type=NotificationType.action_required,
        title="New Leave Request",
        message=(
            f"A {leave_request.category.value} leave request for "
            f"{_period(leave_request)} ({leave_request.requested_quantity} day(s)) "
            f"requires your approval."
        ),
        action_url=f"/leave/requests/{leave_request.id}",
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


async def notify_leave_approved(
    db: AsyncSession,
    leave_request,
) -> Notification:
    """Notify the employee that their leave request was approved."""
    return await NotificationService.create_notification(
        db,
        recipient_id=leave_request.employee_id,
        type=NotificationType.approval,
        title="Leave Request Approved",
        message=f"Your leave request for {_period(leave_request)} has been approved.",
        action_url=f"/leave/requests/{leave_request.id}",
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


async def notify_leave_rejected(
    db: AsyncSession,
    leave_request,
) -> Notification:
    """Notify the employee that their leave request was rejected."""
    message = f"Your leave request for {_period(leave_request)} was rejected."
    if leave_request.decision_notes:
        message += f" Notes: {leave_request.decision_notes}"
    return await NotificationService.create_notification(
        db,
        recipient_id=leave_request.employee_id,
        type=NotificationType.alert,
        title="Leave Request Rejected",
        message=message,
        action_url=f"/leave/requests/{leave_request.id}",
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


async def notify_leave_cancelled(
    db: AsyncSession,
    leave_request,
    recipient_id: uuid.UUID,
) -> Notification:
    """Tell the other party (manager or employee) that a request was cancelled."""
    return await NotificationService.create_notification(
        db,
        recipient_id=recipient_id,
        type=NotificationType.info,
        title="Leave Cancelled",
        message=f"Leave request for {_period(leave_request)} has been cancelled.",
        action_url=f"/leave/requests/{leave_request.id}",
        entity_type="leave_request",
        entity_id=leave_request.id,
    )
