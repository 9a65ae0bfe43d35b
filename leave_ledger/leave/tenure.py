"""Tenure gate: leave may only be requested after the minimum employment period."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Union

from dateutil.relativedelta import relativedelta

from leave_ledger.common.constants import MIN_TENURE_MONTHS
from leave_ledger.common.exceptions import TenureNotMetException
from leave_ledger.employees.models import Employee

logger = logging.getLogger(__name__)


def tenure_cutoff(at_time: Union[date, datetime], months: int = MIN_TENURE_MONTHS) -> date:
    """Latest hire date that still satisfies the tenure rule at *at_time*.

    Calendar-month arithmetic: month ends clamp (31 May - 3 months = 28/29 Feb).
    """
    at_date = at_time.date() if isinstance(at_time, datetime) else at_time
    return at_date - relativedelta(months=months)


def is_eligible(
    employee: Employee,
    at_time: Union[date, datetime],
    months: int = MIN_TENURE_MONTHS,
) -> bool:
    """True iff the employee was hired at least *months* before *at_time*.

    An unknown hire date is treated as eligible (legacy records).
    """
    if employee.hire_date is None:
        logger.warning(
            "Employee %s has no hire date; tenure gate passes by default",
            employee.id,
        )
        return True
    return employee.hire_date <= tenure_cutoff(at_time, months)


def ensure_eligible(
    employee: Employee,
    at_time: Union[date, datetime],
    months: int = MIN_TENURE_MONTHS,
) -> None:
    """Raise ``TenureNotMetException`` unless ``is_eligible``."""
    if not is_eligible(employee, at_time, months):
        raise TenureNotMetException(months)
