from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Union

from paydesk.models.payment import PAYMENT_STATUS_PAID, PAYMENT_STATUS_PENDING
from paydesk.services.errors import ValidationError

DateLike = Union[date, datetime]

_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def as_calendar_day(value: DateLike) -> date:
    """Drop the time of day. Aware datetimes are read in UTC, naive ones as-is."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def period_key(value: DateLike) -> str:
    day = as_calendar_day(value)
    return f"{day.year:04d}-{day.month:02d}"


def resolve_payment_status(
    payment_date: DateLike,
    requested_status: Optional[str] = None,
    *,
    today: Optional[date] = None,
) -> str:
    """
    Settlement status for a payment dated payment_date.

      payment_date > today  -> pending, whatever was requested
      otherwise             -> requested_status, or paid when omitted
    """
    if today is None:
        today = today_utc()

    if as_calendar_day(payment_date) > as_calendar_day(today):
        return PAYMENT_STATUS_PENDING

    return requested_status or PAYMENT_STATUS_PAID


def effective_hire_date(employee) -> date:
    if employee.start_date is not None:
        return as_calendar_day(employee.start_date)
    return as_calendar_day(employee.created_at)


def employment_date_errors(payment_date: DateLike, employee) -> list[str]:
    """
    Both checks always run so each violation keeps its own message.
    The month check is the one salary periods care about.
    """
    pay_day = as_calendar_day(payment_date)
    hire_day = effective_hire_date(employee)
    name = employee.name or "this employee"

    errors: list[str] = []

    if pay_day < hire_day:
        errors.append(
            f"Cannot create a payment dated {pay_day.isoformat()}: "
            f"{name} was hired on {hire_day.isoformat()}."
        )

    if (pay_day.year, pay_day.month) < (hire_day.year, hire_day.month):
        errors.append(
            f"Cannot pay the salary of {period_key(pay_day)}: "
            f"{name} was hired in {period_key(hire_day)}."
        )

    return errors


def validate_employment_date(payment_date: DateLike, employee) -> None:
    errors = employment_date_errors(payment_date, employee)
    if errors:
        raise ValidationError(errors[0], details=errors)


def validate_months(months: Iterable[str]) -> list[str]:
    cleaned = [str(m).strip() for m in months if str(m).strip()]
    bad = [m for m in cleaned if not _MONTH_RE.match(m) or not 1 <= int(m[5:]) <= 12]
    if bad:
        raise ValidationError("Invalid month format. Use YYYY-MM.", details=bad)
    return cleaned
