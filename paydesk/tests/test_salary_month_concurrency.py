import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from paydesk.database import SessionLocal
from paydesk.models.payment import Payment
from paydesk.services.errors import ConflictError
from paydesk.services.payment_service import PaymentInput, create_payment

pytestmark = pytest.mark.usefixtures("clean_db")


def _row(employee_id: int, day: date, reference: str, type_: str = "salary") -> Payment:
    return Payment(
        employee_id=employee_id,
        amount_cfa=Decimal("650000"),
        amount_usd=Decimal("1000"),
        date=day,
        period=day.strftime("%Y-%m"),
        status="paid",
        type=type_,
        reference=reference,
    )


def test_storage_rejects_second_salary_in_month(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))

    db1 = SessionLocal()
    db2 = SessionLocal()
    try:
        db1.add(_row(employee.id, date(2024, 6, 1), "PAY-2024-001"))
        db2.add(_row(employee.id, date(2024, 6, 15), "PAY-2024-002"))

        db1.commit()

        with pytest.raises(IntegrityError):
            db2.commit()
    finally:
        db1.rollback()
        db2.rollback()
        db1.close()
        db2.close()


def test_storage_rejects_duplicate_reference(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))

    db = SessionLocal()
    try:
        db.add(_row(employee.id, date(2024, 6, 1), "PAY-2024-001", type_="other"))
        db.commit()

        db.add(_row(employee.id, date(2024, 7, 1), "PAY-2024-001", type_="other"))
        with pytest.raises(IntegrityError):
            db.commit()
    finally:
        db.rollback()
        db.close()


def test_concurrent_salary_creation_has_exactly_one_winner(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))
    data = PaymentInput(
        amount_cfa=Decimal("650000"),
        amount_usd=Decimal("1000"),
        date=date(2024, 8, 31),
        type="salary",
    )

    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            payment = create_payment(employee.id, 1, data)
            outcome = ("created", payment.reference)
        except ConflictError as exc:
            outcome = ("conflict", exc.message)
        except Exception as exc:  # surfaced in the assertion below
            outcome = ("error", repr(exc))
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    kinds = sorted(kind for kind, _ in outcomes)
    assert kinds == ["conflict", "created"], outcomes

    db = SessionLocal()
    try:
        rows = db.query(Payment).filter(Payment.employee_id == employee.id).all()
        assert len(rows) == 1
        assert rows[0].reference == "PAY-2024-001"
    finally:
        db.close()


def test_concurrent_creation_for_different_employees_gets_distinct_references(employee_factory):
    employees = [employee_factory(name=f"E{i}", start_date=date(2020, 1, 1)) for i in range(2)]

    barrier = threading.Barrier(2)
    references = []
    lock = threading.Lock()

    def worker(employee_id: int):
        barrier.wait()
        payment = create_payment(
            employee_id,
            1,
            PaymentInput(
                amount_cfa=Decimal("1000"),
                amount_usd=Decimal("2"),
                date=date(2024, 8, 1),
                type="other",
            ),
        )
        with lock:
            references.append(payment.reference)

    threads = [threading.Thread(target=worker, args=(e.id,)) for e in employees]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(references) == ["PAY-2024-001", "PAY-2024-002"]
