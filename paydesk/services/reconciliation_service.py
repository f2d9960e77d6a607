from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from sqlalchemy import func, text, update
from sqlalchemy.orm import Session

from paydesk.database import SessionLocal
from paydesk.models.employee import Employee
from paydesk.models.payment import PAYMENT_STATUS_PAID, PAYMENT_STATUS_PENDING, Payment
from paydesk.services.errors import ReconciliationItemError
from paydesk.services.payment_rules import today_utc

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "success"
OUTCOME_ALREADY_PROCESSED = "already_processed"
OUTCOME_ERROR = "error"


@dataclass(frozen=True)
class ReconciliationOutcome:
    payment_id: int
    reference: str
    employee_name: Optional[str]
    status: str
    message: str
    error: Optional[ReconciliationItemError] = field(default=None, repr=False, compare=False)

    def as_dict(self) -> dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "reference": self.reference,
            "employee_name": self.employee_name,
            "status": self.status,
            "message": self.message,
        }


@dataclass(frozen=True)
class ReconciliationResult:
    reference_date: date
    processed: int
    failed: int
    details: list[ReconciliationOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "reference_date": self.reference_date.isoformat(),
            "processed": self.processed,
            "failed": self.failed,
            "details": [d.as_dict() for d in self.details],
        }


def due_pending_payments(db: Session, reference_date: date) -> list[tuple[Payment, Optional[str]]]:
    return (
        db.query(Payment, Employee.name)
        .outerjoin(Employee, Employee.id == Payment.employee_id)
        .filter(Payment.status == PAYMENT_STATUS_PENDING)
        .filter(Payment.date <= reference_date)
        .order_by(Payment.date.asc(), Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


def mark_paid_if_pending(db: Session, payment_id: int) -> bool:
    """Conditional transition; False when someone else already moved the row."""
    result = db.execute(
        update(Payment)
        .where(Payment.id == int(payment_id))
        .where(Payment.status == PAYMENT_STATUS_PENDING)
        .values(status=PAYMENT_STATUS_PAID, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0) > 0


def _reconcile_one(db: Session, payment: Payment, employee_name: Optional[str]) -> ReconciliationOutcome:
    payment_id = int(payment.id)
    reference = str(payment.reference)

    savepoint = db.begin_nested()
    try:
        updated = mark_paid_if_pending(db, payment_id)
        savepoint.commit()
    except Exception as exc:
        savepoint.rollback()
        item_error = ReconciliationItemError(payment_id, str(exc) or exc.__class__.__name__)
        logger.exception(
            "Reconciliation item failed",
            extra={"payment_id": payment_id, "reference": reference},
        )
        return ReconciliationOutcome(
            payment_id=payment_id,
            reference=reference,
            employee_name=employee_name,
            status=OUTCOME_ERROR,
            message=item_error.message,
            error=item_error,
        )

    if updated:
        logger.info(
            "Payment reconciled",
            extra={"payment_id": payment_id, "reference": reference, "employee_name": employee_name},
        )
        return ReconciliationOutcome(
            payment_id=payment_id,
            reference=reference,
            employee_name=employee_name,
            status=OUTCOME_SUCCESS,
            message="Payment updated from 'pending' to 'paid'",
        )

    return ReconciliationOutcome(
        payment_id=payment_id,
        reference=reference,
        employee_name=employee_name,
        status=OUTCOME_ALREADY_PROCESSED,
        message="Payment was not updated (may have been already processed)",
    )


def reconcile_due_payments(
    *,
    db: Optional[Session] = None,
    reference_date: Optional[date] = None,
) -> ReconciliationResult:
    """
    One reconciliation pass: every pending payment dated on or before
    reference_date (UTC today by default) is moved to paid.

    Each row is handled in its own savepoint. A failing row is recorded in the
    result and the pass moves on; only the initial selection can raise.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    if reference_date is None:
        reference_date = today_utc()

    try:
        rows = due_pending_payments(db, reference_date)

        details: list[ReconciliationOutcome] = []
        for payment, employee_name in rows:
            details.append(_reconcile_one(db, payment, employee_name))

        processed = sum(1 for d in details if d.status == OUTCOME_SUCCESS)
        result = ReconciliationResult(
            reference_date=reference_date,
            processed=processed,
            failed=len(details) - processed,
            details=details,
        )

        if owns_db:
            db.commit()

        logger.info(
            "Reconciliation pass finished",
            extra={
                "reference_date": reference_date.isoformat(),
                "candidates": len(details),
                "processed": result.processed,
                "failed": result.failed,
            },
        )
        return result

    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def try_acquire_reconciliation_lock(db: Session) -> bool:
    res = db.execute(text("select pg_try_advisory_lock(7311, 7312)")).scalar()
    return bool(res)


def release_reconciliation_lock(db: Session) -> None:
    db.execute(text("select pg_advisory_unlock(7311, 7312)"))


def acquire_reconciliation_lock(db: Session) -> None:
    """Blocking variant; waits for a pass in another process to finish."""
    db.execute(text("select pg_advisory_lock(7311, 7312)"))
