from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from paydesk.models.employee import Employee
from paydesk.models.payment import PAYMENT_STATUS_PENDING, Payment
from paydesk.services.errors import ValidationError
from paydesk.services.payment_rules import today_utc

MIN_UPCOMING_DAYS = 1
MAX_UPCOMING_DAYS = 365


def _pending_query(db: Session, company_id: Optional[int]) -> Query:
    q = (
        db.query(Payment, Employee.name.label("employee_name"), Employee.company_id.label("company_id"))
        .outerjoin(Employee, Employee.id == Payment.employee_id)
        .filter(Payment.status == PAYMENT_STATUS_PENDING)
    )
    if company_id is not None:
        q = q.filter(Employee.company_id == int(company_id))
    return q


def _rows(q: Query) -> list[dict[str, Any]]:
    return [
        {
            "id": p.id,
            "employee_id": p.employee_id,
            "employee_name": employee_name,
            "company_id": company_id,
            "amount_cfa": p.amount_cfa,
            "amount_usd": p.amount_usd,
            "date": p.date,
            "status": p.status,
            "type": p.type,
            "reference": p.reference,
        }
        for p, employee_name, company_id in q.all()
    ]


def overdue_payments(
    db: Session,
    *,
    company_id: Optional[int] = None,
    today: Optional[date] = None,
) -> list[dict[str, Any]]:
    """Pending and dated strictly before today."""
    if today is None:
        today = today_utc()

    q = _pending_query(db, company_id).filter(Payment.date < today)
    return _rows(q.order_by(Payment.date.asc(), Payment.id.asc()))


def upcoming_payments(
    db: Session,
    *,
    company_id: Optional[int] = None,
    days: int = 30,
    today: Optional[date] = None,
) -> list[dict[str, Any]]:
    """Pending and dated in (today, today + days]."""
    if not MIN_UPCOMING_DAYS <= int(days) <= MAX_UPCOMING_DAYS:
        raise ValidationError(
            f"days must be between {MIN_UPCOMING_DAYS} and {MAX_UPCOMING_DAYS}"
        )

    if today is None:
        today = today_utc()
    horizon = today + timedelta(days=int(days))

    q = (
        _pending_query(db, company_id)
        .filter(Payment.date > today)
        .filter(Payment.date <= horizon)
    )
    return _rows(q.order_by(Payment.date.asc(), Payment.id.asc()))


def pending_payments(
    db: Session,
    *,
    company_id: Optional[int] = None,
    as_of: Optional[date] = None,
) -> list[dict[str, Any]]:
    """What the next reconciliation pass for as_of would pick up."""
    if as_of is None:
        as_of = today_utc()

    q = _pending_query(db, company_id).filter(Payment.date <= as_of)
    return _rows(q.order_by(Payment.date.asc(), Payment.created_at.asc(), Payment.id.asc()))


def payment_statistics(db: Session, *, company_id: Optional[int] = None) -> dict[str, Any]:
    """
    Read-only reporting query.

    Grouping:
      status
    Sums are plain per-column totals; no currency conversion is applied.
    """
    q = (
        db.query(
            Payment.status.label("status"),
            func.count(Payment.id).label("count"),
            func.coalesce(func.sum(Payment.amount_cfa), 0).label("total_cfa"),
            func.coalesce(func.sum(Payment.amount_usd), 0).label("total_usd"),
        )
        .outerjoin(Employee, Employee.id == Payment.employee_id)
    )
    if company_id is not None:
        q = q.filter(Employee.company_id == int(company_id))

    rows = q.group_by(Payment.status).order_by(Payment.status.asc()).all()

    by_status = [
        {
            "status": r.status,
            "count": int(r.count),
            "total_cfa": Decimal(r.total_cfa),
            "total_usd": Decimal(r.total_usd),
        }
        for r in rows
    ]

    return {
        "company_id": None if company_id is None else int(company_id),
        "by_status": by_status,
        "total": {
            "count": sum(r["count"] for r in by_status),
            "total_cfa": sum((r["total_cfa"] for r in by_status), Decimal("0")),
            "total_usd": sum((r["total_usd"] for r in by_status), Decimal("0")),
        },
    }
