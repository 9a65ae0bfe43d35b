"""Balance ledger — the only code path that changes an employee's leave balance.

Every mutation is a single conditional UPDATE against one
(employee, category) row:

  - ``commit``  : ``remaining = remaining - q WHERE remaining >= q``
  - ``restore`` : ``remaining = remaining + q``

The database applies each statement atomically, so two racing commits
against the same row cannot both succeed when only one fits; the loser
sees ``rowcount == 0`` and gets ``InsufficientBalanceException``.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.constants import (
    DEFAULT_LEAVE_BALANCES,
    MAX_BALANCE,
    QUANTITY_PLACES,
    LeaveCategory,
)
from leave_ledger.common.exceptions import (
    ConflictError,
    InsufficientBalanceException,
    ValidationException,
)
from leave_ledger.leave.models import LeaveBalance

logger = logging.getLogger(__name__)


def _require_positive(quantity: Decimal) -> None:
    if quantity <= 0:
        raise ValidationException(
            {"quantity": ["Leave quantity must be greater than zero."]}
        )


class LeaveLedger:
    """Async balance operations keyed by (employee_id, category)."""

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> dict[LeaveCategory, Decimal]:
        """Current remaining quantity per category for one employee."""
        # Column select, not entities: always reads the committed row
        # values rather than a possibly stale identity-map instance.
        result = await db.execute(
            select(LeaveBalance.category, LeaveBalance.remaining)
            .where(LeaveBalance.employee_id == employee_id)
            .order_by(LeaveBalance.category)
        )
        return {category: Decimal(remaining) for category, remaining in result.all()}

    @staticmethod
    async def get_available(
        db: AsyncSession,
        employee_id: uuid.UUID,
        category: LeaveCategory,
    ) -> Decimal:
        """Remaining quantity for one category.

        A category the employee has no balance for is an error, not zero.
        """
        result = await db.execute(
            select(LeaveBalance.remaining).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.category == category,
            )
        )
        remaining = result.scalar()
        if remaining is None:
            raise ValidationException(
                {"category": [f"No {category.value} leave balance on record."]}
            )
        return Decimal(remaining)

    @staticmethod
    async def check_sufficient(
        db: AsyncSession,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        quantity: Decimal,
    ) -> bool:
        """``balance[category] >= quantity`` (check only, nothing reserved)."""
        available = await LeaveLedger.get_available(db, employee_id, category)
        return available >= quantity

    @staticmethod
    async def ensure_sufficient(
        db: AsyncSession,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        quantity: Decimal,
    ) -> Decimal:
        """Raise ``InsufficientBalanceException`` unless the balance covers *quantity*.

        Returns the available quantity.
        """
        available = await LeaveLedger.get_available(db, employee_id, category)
        if available < quantity:
            raise InsufficientBalanceException(category.value, quantity, available)
        return available

    # ─────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def commit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        quantity: Decimal,
    ) -> Decimal:
        """Atomically deduct *quantity*; fails instead of going negative.

        Returns the remaining balance after the deduction.
        """
        _require_positive(quantity)
        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.category == category,
                LeaveBalance.remaining >= quantity,
            )
            .values(
                remaining=LeaveBalance.remaining - quantity,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = await LeaveLedger.get_available(db, employee_id, category)
            logger.warning(
                "Ledger commit refused: employee=%s category=%s requested=%s available=%s",
                employee_id, category.value, quantity, available,
            )
            raise InsufficientBalanceException(category.value, quantity, available)

        remaining = await LeaveLedger.get_available(db, employee_id, category)
        logger.info(
            "Ledger commit: employee=%s category=%s quantity=%s remaining=%s",
            employee_id, category.value, quantity, remaining,
        )
        return remaining

    @staticmethod
    async def restore(
        db: AsyncSession,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        quantity: Decimal,
    ) -> Decimal:
        """Atomically give back a previously committed *quantity*.

        Returns the remaining balance after the restore.
        """
        _require_positive(quantity)
        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.category == category,
            )
            .values(
                remaining=LeaveBalance.remaining + quantity,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationException(
                {"category": [f"No {category.value} leave balance on record."]}
            )

        remaining = await LeaveLedger.get_available(db, employee_id, category)
        logger.info(
            "Ledger restore: employee=%s category=%s quantity=%s remaining=%s",
            employee_id, category.value, quantity, remaining,
        )
        return remaining

    # ─────────────────────────────────────────────────────────────────
    # Account opening
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def open_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        opening: Optional[Mapping[LeaveCategory, Decimal]] = None,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> dict[LeaveCategory, Decimal]:
        """Create one balance row per category for a newly onboarded employee.

        Categories missing from *opening* start at the onboarding default.
        Opening an employee that already has balances is a conflict.
        """
        existing = await db.execute(
            select(LeaveBalance.id).where(LeaveBalance.employee_id == employee_id).limit(1)
        )
        if existing.scalar() is not None:
            raise ConflictError("employee_id", str(employee_id))

        amounts = dict(DEFAULT_LEAVE_BALANCES)
        for category, amount in (opening or {}).items():
            amount = Decimal(amount)
            if not amount.is_finite():
                raise ValidationException(
                    {category.value: ["Opening balance must be a finite number."]}
                )
            if amount < 0:
                raise ValidationException(
                    {category.value: ["Opening balance cannot be negative."]}
                )
            if amount > MAX_BALANCE:
                raise ValidationException(
                    {category.value: [f"Opening balance cannot exceed {MAX_BALANCE}."]}
                )
            if amount != amount.quantize(QUANTITY_PLACES):
                raise ValidationException(
                    {category.value: ["Opening balance allows at most two decimal places."]}
                )
            amounts[category] = amount

        for category, amount in amounts.items():
            db.add(
                LeaveBalance(
                    employee_id=employee_id,
                    category=category,
                    remaining=amount,
                )
            )
        await db.flush()

        await create_audit_entry(
            db,
            action="open_balances",
            entity_type="employee",
            entity_id=employee_id,
            actor_id=actor_id,
            new_values={c.value: str(a) for c, a in amounts.items()},
        )
        logger.info("Opened leave balances for employee=%s", employee_id)
        return amounts
