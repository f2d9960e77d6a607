import logging
from typing import Optional

from sqlalchemy import Integer, cast, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paydesk.models.payment import Payment
from paydesk.services.errors import AllocationExhausted

logger = logging.getLogger(__name__)

MAX_REFERENCE_ATTEMPTS = 3
REFERENCE_CONSTRAINT = "uq_payments_reference"


def reference_prefix(year: int) -> str:
    return f"PAY-{int(year)}-"


def format_reference(year: int, seq: int) -> str:
    return f"{reference_prefix(year)}{int(seq):03d}"


def violated_constraint(exc: IntegrityError) -> Optional[str]:
    """Name of the constraint behind an IntegrityError, when the driver exposes it."""
    diag = getattr(exc.orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return str(name)

    message = str(exc.orig)
    for candidate in (REFERENCE_CONSTRAINT, "uq_payments_salary_period"):
        if candidate in message:
            return candidate
    return None


def next_reference(db: Session, year: int) -> str:
    """
    Highest PAY-<year>-NNN suffix + 1.

    Only a proposal: two callers can read the same maximum. The unique
    constraint on payments.reference decides who keeps it.
    """
    suffix = cast(func.split_part(Payment.reference, "-", 3), Integer)
    current = (
        db.query(func.coalesce(func.max(suffix), 0))
        .filter(Payment.reference.like(f"{reference_prefix(year)}%"))
        .scalar()
    )
    return format_reference(year, int(current or 0) + 1)


def insert_with_reference(
    db: Session,
    payment: Payment,
    *,
    max_attempts: int = MAX_REFERENCE_ATTEMPTS,
) -> Payment:
    """
    Assign a fresh reference to payment and flush it.

    Each attempt runs in a savepoint so a lost race on the reference only
    rolls back the insert, not the caller's transaction. Integrity errors on
    any other constraint are re-raised unchanged.
    """
    year = payment.date.year

    for attempt in range(1, int(max_attempts) + 1):
        payment.reference = next_reference(db, year)
        savepoint = db.begin_nested()
        try:
            db.add(payment)
            db.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            if violated_constraint(exc) != REFERENCE_CONSTRAINT:
                raise

            logger.warning(
                "Payment reference collision",
                extra={"reference": payment.reference, "attempt": attempt},
            )
            continue

        savepoint.commit()
        return payment

    raise AllocationExhausted()
