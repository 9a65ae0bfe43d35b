"""Day-equivalent conversion for leave requests.

A full-day request counts every calendar day of its inclusive range. An
hourly request counts clock hours on a single day and converts them at
``WORKING_HOURS_PER_DAY``. All arithmetic is done in ``Decimal`` with
ROUND_HALF_UP to two places so the persisted ``requested_quantity`` is
bit-stable across processes and locales.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from leave_ledger.common.constants import (
    MIN_HOURLY_LEAVE_HOURS,
    QUANTITY_PLACES,
    WORKING_HOURS_PER_DAY,
)
from leave_ledger.common.exceptions import ValidationException


@dataclass(frozen=True)
class Conversion:
    """Result of converting a leave span into day-equivalents."""

    quantity: Decimal
    total_hours: Optional[Decimal] = None


def _round(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def _seconds(value: time) -> Decimal:
    whole = value.hour * 3600 + value.minute * 60 + value.second
    return Decimal(whole) + Decimal(value.microsecond) / Decimal(1_000_000)


def full_day_quantity(start_date: date, end_date: date) -> Decimal:
    """Inclusive calendar-day count; ``end_date`` before ``start_date`` is an error."""
    if end_date < start_date:
        raise ValidationException(
            {"end_date": ["end_date must be on or after start_date."]}
        )
    return Decimal((end_date - start_date).days + 1)


def hourly_hours(start_time: time, end_time: time) -> Decimal:
    """Clock hours between two same-day times, rounded to 2 places."""
    if end_time <= start_time:
        raise ValidationException(
            {"end_time": ["end_time must be after start_time."]}
        )
    span = (_seconds(end_time) - _seconds(start_time)) / Decimal(3600)
    if span < MIN_HOURLY_LEAVE_HOURS:
        raise ValidationException(
            {"end_time": [
                f"Hourly leave must be at least {MIN_HOURLY_LEAVE_HOURS} hour(s)."
            ]}
        )
    return _round(span)


def to_day_equivalent(
    start_date: date,
    end_date: date,
    *,
    is_hourly: bool = False,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
) -> Conversion:
    """Convert a request span into a day-equivalent quantity.

    Pure function of its inputs. Raises ``ValidationException`` when the
    span is invalid (reversed dates, hourly leave across days, missing or
    reversed times, fewer than one hour).

    >>> to_day_equivalent(date(2025, 3, 1), date(2025, 3, 3)).quantity
    Decimal('3')
    >>> to_day_equivalent(
    ...     date(2025, 3, 1), date(2025, 3, 1),
    ...     is_hourly=True, start_time=time(9, 0), end_time=time(12, 30),
    ... )
    Conversion(quantity=Decimal('0.44'), total_hours=Decimal('3.50'))
    """
    if not is_hourly:
        return Conversion(quantity=full_day_quantity(start_date, end_date))

    if start_time is None or end_time is None:
        raise ValidationException(
            {"start_time": ["start_time and end_time are required for hourly leave."]}
        )
    if start_date != end_date:
        raise ValidationException(
            {"end_date": ["Hourly leave must start and end on the same day."]}
        )
    hours = hourly_hours(start_time, end_time)
    quantity = _round(hours / Decimal(WORKING_HOURS_PER_DAY))
    return Conversion(quantity=quantity, total_hours=hours)
