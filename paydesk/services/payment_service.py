from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paydesk.database import SessionLocal
from paydesk.models.employee import Employee
from paydesk.models.payment import PAYMENT_TYPE_SALARY, Payment
from paydesk.services.errors import ConflictError, NotFoundError, PaymentError, ValidationError
from paydesk.services.payment_rules import (
    period_key,
    resolve_payment_status,
    validate_employment_date,
    validate_months,
)
from paydesk.services.reference_allocator import insert_with_reference, violated_constraint

logger = logging.getLogger(__name__)

SALARY_PERIOD_CONSTRAINT = "uq_payments_salary_period"


@dataclass(frozen=True)
class PaymentInput:
    amount_cfa: Optional[Decimal] = None
    amount_usd: Optional[Decimal] = None
    date: Optional[date] = None
    status: Optional[str] = None
    type: Optional[str] = None


@dataclass
class BatchCreateResult:
    created: list[Payment] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.created) > 0


def _validate_amounts(data: PaymentInput, *, required: bool) -> None:
    errors = []
    for label, value in (("amount_cfa", data.amount_cfa), ("amount_usd", data.amount_usd)):
        if value is None:
            if required:
                errors.append(f"{label} is required")
            continue
        if Decimal(value) <= 0:
            errors.append(f"{label} must be greater than 0")

    if required and data.date is None:
        errors.append("date is required")

    if errors:
        raise ValidationError("Invalid payment data", details=errors)


def _get_employee(db: Session, employee_id: int, company_id: int) -> Employee:
    employee = (
        db.query(Employee)
        .filter(
            Employee.id == int(employee_id),
            Employee.company_id == int(company_id),
        )
        .one_or_none()
    )
    if employee is None:
        raise NotFoundError("Employee not found or not accessible")
    return employee


def salary_exists_for_month(
    db: Session,
    *,
    employee_id: int,
    company_id: int,
    payment_date: date,
    exclude_id: Optional[int] = None,
) -> bool:
    q = (
        db.query(Payment.id)
        .join(Employee, Employee.id == Payment.employee_id)
        .filter(
            Payment.employee_id == int(employee_id),
            Employee.company_id == int(company_id),
            Payment.type == PAYMENT_TYPE_SALARY,
            Payment.period == period_key(payment_date),
        )
    )
    if exclude_id is not None:
        q = q.filter(Payment.id != int(exclude_id))

    return q.first() is not None


def _salary_conflict(employee: Employee, payment_date: date) -> ConflictError:
    return ConflictError(
        f"A salary payment already exists for {employee.name or 'this employee'} "
        f"for {period_key(payment_date)}"
    )


def _ensure_no_salary_conflict(
    db: Session,
    employee: Employee,
    payment_date: date,
    *,
    exclude_id: Optional[int] = None,
) -> None:
    if salary_exists_for_month(
        db,
        employee_id=employee.id,
        company_id=employee.company_id,
        payment_date=payment_date,
        exclude_id=exclude_id,
    ):
        raise _salary_conflict(employee, payment_date)


def create_payment(
    employee_id: int,
    company_id: int,
    data: PaymentInput,
    *,
    db: Optional[Session] = None,
) -> Payment:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        _validate_amounts(data, required=True)

        employee = _get_employee(db, employee_id, company_id)
        validate_employment_date(data.date, employee)

        payment_type = data.type or PAYMENT_TYPE_SALARY
        if payment_type == PAYMENT_TYPE_SALARY:
            _ensure_no_salary_conflict(db, employee, data.date)

        payment = Payment(
            employee_id=employee.id,
            amount_cfa=data.amount_cfa,
            amount_usd=data.amount_usd,
            date=data.date,
            period=period_key(data.date),
            status=resolve_payment_status(data.date, data.status),
            type=payment_type,
        )

        try:
            insert_with_reference(db, payment)
        except IntegrityError as exc:
            # Lost the race against a concurrent salary insert for the same month.
            if violated_constraint(exc) == SALARY_PERIOD_CONSTRAINT:
                raise _salary_conflict(employee, data.date) from exc
            raise

        db.refresh(payment)

        logger.info(
            "Payment created",
            extra={
                "payment_id": payment.id,
                "reference": payment.reference,
                "employee_id": employee.id,
                "company_id": int(company_id),
                "status": payment.status,
            },
        )

        if owns_db:
            db.commit()

        return payment
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def get_payment(db: Session, payment_id: int, company_id: int) -> Optional[Payment]:
    return (
        db.query(Payment)
        .join(Employee, Employee.id == Payment.employee_id)
        .filter(
            Payment.id == int(payment_id),
            Employee.company_id == int(company_id),
        )
        .one_or_none()
    )


def update_payment(
    db: Session,
    payment_id: int,
    company_id: int,
    data: PaymentInput,
) -> Optional[Payment]:
    """
    Partial update. Returns None when the payment is missing or belongs to
    another company. Caller owns the transaction.
    """
    payment = get_payment(db, payment_id, company_id)
    if payment is None:
        return None

    _validate_amounts(data, required=False)

    employee = payment.employee
    candidate_date = data.date or payment.date
    candidate_type = data.type or payment.type

    if data.date is not None and data.date != payment.date:
        validate_employment_date(candidate_date, employee)

    if candidate_type == PAYMENT_TYPE_SALARY:
        _ensure_no_salary_conflict(db, employee, candidate_date, exclude_id=payment.id)

    if data.amount_cfa is not None:
        payment.amount_cfa = data.amount_cfa
    if data.amount_usd is not None:
        payment.amount_usd = data.amount_usd
    if data.type is not None:
        payment.type = data.type

    if data.date is not None:
        # A new date re-resolves from the request alone; an omitted status means paid.
        payment.date = candidate_date
        payment.period = period_key(candidate_date)
        payment.status = resolve_payment_status(candidate_date, data.status)
    elif data.status is not None:
        payment.status = resolve_payment_status(payment.date, data.status)

    try:
        db.flush()
    except IntegrityError as exc:
        if violated_constraint(exc) == SALARY_PERIOD_CONSTRAINT:
            raise _salary_conflict(employee, candidate_date) from exc
        raise

    db.refresh(payment)
    return payment


def delete_payment(db: Session, payment_id: int, company_id: int) -> bool:
    payment = get_payment(db, payment_id, company_id)
    if payment is None:
        return False

    db.delete(payment)
    db.flush()
    return True


def batch_create_payments(
    db: Session,
    company_id: int,
    employee_ids: Iterable[int],
    data: PaymentInput,
) -> BatchCreateResult:
    """
    Create one payment per employee with shared attributes.

    Every employee is attempted independently inside its own savepoint; a
    failure is recorded in errors and never aborts the rest of the batch.
    """
    employee_ids = list(employee_ids)
    if not employee_ids:
        raise ValidationError("employee_ids must not be empty")

    _validate_amounts(data, required=True)

    names = dict(
        db.query(Employee.id, Employee.name)
        .filter(
            Employee.id.in_([int(e) for e in employee_ids]),
            Employee.company_id == int(company_id),
        )
        .all()
    )

    result = BatchCreateResult()

    for employee_id in employee_ids:
        savepoint = db.begin_nested()
        try:
            payment = create_payment(int(employee_id), company_id, data, db=db)
        except PaymentError as exc:
            savepoint.rollback()
            result.errors.append(
                {
                    "employee_id": int(employee_id),
                    "employee_name": names.get(int(employee_id)),
                    "error": exc.message,
                    "details": exc.details,
                }
            )
            continue
        except Exception as exc:
            savepoint.rollback()
            logger.exception(
                "Batch payment creation failed",
                extra={"employee_id": int(employee_id), "company_id": int(company_id)},
            )
            result.errors.append(
                {
                    "employee_id": int(employee_id),
                    "employee_name": names.get(int(employee_id)),
                    "error": str(exc) or "Unknown error",
                    "details": [],
                }
            )
            continue

        savepoint.commit()
        result.created.append(payment)

    logger.info(
        "Batch payment creation finished",
        extra={
            "company_id": int(company_id),
            "requested": len(employee_ids),
            "created": len(result.created),
            "failed": len(result.errors),
        },
    )
    return result


def list_payments(
    db: Session,
    company_id: int,
    *,
    search: Optional[str] = None,
    employee_id: Optional[int] = None,
    months: Optional[Iterable[str]] = None,
) -> list[Payment]:
    q = (
        db.query(Payment)
        .join(Employee, Employee.id == Payment.employee_id)
        .filter(Employee.company_id == int(company_id))
    )

    if employee_id is not None:
        q = q.filter(Payment.employee_id == int(employee_id))

    if months:
        month_list = validate_months(months)
        if month_list:
            q = q.filter(Payment.period.in_(month_list))

    if search:
        term = f"%{search}%"
        q = q.filter(
            or_(
                Employee.name.ilike(term),
                Employee.email.ilike(term),
                Employee.phone.ilike(term),
                Payment.reference.ilike(term),
            )
        )

    return q.order_by(Payment.date.desc(), Payment.created_at.desc(), Payment.id.desc()).all()
