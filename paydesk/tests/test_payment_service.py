from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from paydesk.database import SessionLocal
from paydesk.models.payment import Payment
from paydesk.services import payment_service
from paydesk.services.errors import ConflictError, NotFoundError, ValidationError
from paydesk.services.payment_rules import today_utc
from paydesk.services.payment_service import PaymentInput, create_payment

pytestmark = pytest.mark.usefixtures("clean_db")


def _salary(day: date, status=None) -> PaymentInput:
    return PaymentInput(
        amount_cfa=Decimal("650000"),
        amount_usd=Decimal("1000"),
        date=day,
        status=status,
        type="salary",
    )


def test_future_payment_is_pending_even_when_paid_requested(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))
    future = today_utc() + timedelta(days=10)

    payment = create_payment(employee.id, 1, _salary(future, status="paid"))

    assert payment.status == "pending"
    assert payment.period == future.strftime("%Y-%m")


def test_past_payment_defaults_to_paid_and_honours_request(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))

    defaulted = create_payment(employee.id, 1, _salary(date(2024, 1, 31)))
    requested = create_payment(employee.id, 1, _salary(date(2024, 2, 29), status="pending"))

    assert defaulted.status == "paid"
    assert requested.status == "pending"


def test_hire_date_checks(employee_factory):
    employee = employee_factory(name="Awa", start_date=date(2024, 3, 15))

    with pytest.raises(ValidationError) as day_level:
        create_payment(employee.id, 1, _salary(date(2024, 3, 10)))
    assert "hired on 2024-03-15" in day_level.value.message

    with pytest.raises(ValidationError) as month_level:
        create_payment(employee.id, 1, _salary(date(2024, 2, 28)))
    assert any("hired in 2024-03" in d for d in month_level.value.details)

    ok = create_payment(employee.id, 1, _salary(date(2024, 3, 20)))
    assert ok.id is not None


def test_hire_date_falls_back_to_creation_time(employee_factory):
    employee = employee_factory(created_at=datetime(2024, 5, 2, 9, 0))

    with pytest.raises(ValidationError):
        create_payment(employee.id, 1, _salary(date(2024, 5, 1)))

    assert create_payment(employee.id, 1, _salary(date(2024, 5, 2))).id is not None


def test_second_salary_in_same_month_conflicts(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))

    create_payment(employee.id, 1, _salary(date(2024, 6, 1)))

    with pytest.raises(ConflictError):
        create_payment(employee.id, 1, _salary(date(2024, 6, 28)))

    # Different month and non-salary payments are fine.
    create_payment(employee.id, 1, _salary(date(2024, 7, 1)))
    other = PaymentInput(
        amount_cfa=Decimal("10000"), amount_usd=Decimal("15"), date=date(2024, 6, 15), type="other"
    )
    create_payment(employee.id, 1, other)
    create_payment(employee.id, 1, other)


def test_unknown_or_foreign_employee_is_not_found(employee_factory):
    employee = employee_factory(company_id=1, start_date=date(2020, 1, 1))

    with pytest.raises(NotFoundError):
        create_payment(employee.id, 2, _salary(date(2024, 6, 1)))

    with pytest.raises(NotFoundError):
        create_payment(employee.id + 999, 1, _salary(date(2024, 6, 1)))


def test_missing_amount_is_a_validation_error(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))

    with pytest.raises(ValidationError) as excinfo:
        create_payment(employee.id, 1, PaymentInput(amount_usd=Decimal("0"), date=date(2024, 1, 1)))

    assert "amount_cfa is required" in excinfo.value.details
    assert "amount_usd must be greater than 0" in excinfo.value.details


def test_update_excludes_itself_from_duplicate_check(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))
    payment = create_payment(employee.id, 1, _salary(date(2024, 6, 1)))

    db = SessionLocal()
    try:
        updated = payment_service.update_payment(
            db, payment.id, 1, PaymentInput(date=date(2024, 6, 20), amount_usd=Decimal("1100"))
        )
        db.commit()

        assert updated.date == date(2024, 6, 20)
        assert updated.amount_usd == Decimal("1100.00")
        assert updated.reference == payment.reference
    finally:
        db.close()


def test_update_into_taken_month_conflicts(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))
    create_payment(employee.id, 1, _salary(date(2024, 6, 1)))
    july = create_payment(employee.id, 1, _salary(date(2024, 7, 1)))

    db = SessionLocal()
    try:
        with pytest.raises(ConflictError):
            payment_service.update_payment(db, july.id, 1, PaymentInput(date=date(2024, 6, 30)))
    finally:
        db.rollback()
        db.close()


def test_update_to_future_date_forces_pending(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))
    payment = create_payment(employee.id, 1, _salary(date(2024, 6, 1)))
    assert payment.status == "paid"

    future = today_utc() + timedelta(days=40)
    db = SessionLocal()
    try:
        updated = payment_service.update_payment(
            db, payment.id, 1, PaymentInput(date=future, status="paid")
        )
        db.commit()
        assert updated.status == "pending"
        assert updated.period == future.strftime("%Y-%m")
    finally:
        db.close()


def test_update_moving_date_into_the_past_without_status_marks_paid(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))
    future = today_utc() + timedelta(days=40)
    payment = create_payment(
        employee.id,
        1,
        PaymentInput(amount_cfa=Decimal("1000"), amount_usd=Decimal("2"), date=future, type="other"),
    )
    assert payment.status == "pending"

    db = SessionLocal()
    try:
        updated = payment_service.update_payment(db, payment.id, 1, PaymentInput(date=date(2024, 6, 1)))
        db.commit()
        assert updated.status == "paid"
        assert updated.period == "2024-06"
    finally:
        db.close()


def test_update_status_only_keeps_future_guard(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))
    future = today_utc() + timedelta(days=40)
    payment = create_payment(
        employee.id,
        1,
        PaymentInput(amount_cfa=Decimal("1000"), amount_usd=Decimal("2"), date=future, type="other"),
    )

    db = SessionLocal()
    try:
        updated = payment_service.update_payment(db, payment.id, 1, PaymentInput(status="paid"))
        db.commit()
        assert updated.status == "pending"
        assert updated.date == future
    finally:
        db.close()


def test_update_amount_only_leaves_status_alone(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))
    payment = create_payment(employee.id, 1, _salary(date(2024, 6, 1), status="pending"))

    db = SessionLocal()
    try:
        updated = payment_service.update_payment(
            db, payment.id, 1, PaymentInput(amount_cfa=Decimal("700000"))
        )
        db.commit()
        assert updated.status == "pending"
    finally:
        db.close()


def test_update_and_delete_are_company_scoped(employee_factory):
    employee = employee_factory(company_id=1, start_date=date(2020, 1, 1))
    payment = create_payment(employee.id, 1, _salary(date(2024, 6, 1)))

    db = SessionLocal()
    try:
        assert payment_service.update_payment(db, payment.id, 2, PaymentInput(status="pending")) is None
        assert payment_service.delete_payment(db, payment.id, 2) is False

        assert payment_service.delete_payment(db, payment.id, 1) is True
        db.commit()
        assert db.query(Payment).count() == 0
        assert payment_service.delete_payment(db, payment.id, 1) is False
    finally:
        db.close()


def test_batch_create_is_partial_success(employee_factory):
    employees = [
        employee_factory(name=f"Employee {i}", start_date=date(2020, 1, 1)) for i in range(1, 6)
    ]
    create_payment(employees[2].id, 1, _salary(date(2024, 9, 3)))

    db = SessionLocal()
    try:
        result = payment_service.batch_create_payments(
            db, 1, [e.id for e in employees], _salary(date(2024, 9, 30))
        )
        db.commit()
    finally:
        db.close()

    assert result.success is True
    assert len(result.created) == 4
    assert len(result.errors) == 1
    assert result.errors[0]["employee_id"] == employees[2].id
    assert result.errors[0]["employee_name"] == "Employee 3"

    refs = [p.reference for p in result.created]
    assert len(set(refs)) == 4

    db = SessionLocal()
    try:
        assert db.query(Payment).filter(Payment.period == "2024-09").count() == 5
    finally:
        db.close()


def test_batch_create_reports_unknown_employees(employee_factory):
    employee = employee_factory(start_date=date(2020, 1, 1))

    db = SessionLocal()
    try:
        result = payment_service.batch_create_payments(
            db, 1, [employee.id, employee.id + 500], _salary(date(2024, 9, 30))
        )
        db.commit()
    finally:
        db.close()

    assert len(result.created) == 1
    assert result.errors[0]["employee_id"] == employee.id + 500
    assert "not found" in result.errors[0]["error"]
    assert result.errors[0]["employee_name"] is None


def test_batch_with_nothing_created_is_not_a_success(employee_factory):
    employee = employee_factory(start_date=date(2024, 3, 15))

    db = SessionLocal()
    try:
        result = payment_service.batch_create_payments(db, 1, [employee.id], _salary(date(2024, 1, 31)))
        db.rollback()
    finally:
        db.close()

    assert result.success is False
    assert len(result.errors) == 1


def test_list_payments_filters(employee_factory):
    awa = employee_factory(name="Awa Diallo", email="awa@example.com", start_date=date(2020, 1, 1))
    kofi = employee_factory(name="Kofi Mensah", start_date=date(2020, 1, 1))
    stranger = employee_factory(company_id=2, name="Awa Other", start_date=date(2020, 1, 1))

    create_payment(awa.id, 1, _salary(date(2024, 1, 31)))
    create_payment(awa.id, 1, _salary(date(2024, 2, 29)))
    create_payment(kofi.id, 1, _salary(date(2024, 2, 29)))
    create_payment(stranger.id, 2, _salary(date(2024, 2, 29)))

    db = SessionLocal()
    try:
        assert len(payment_service.list_payments(db, 1)) == 3

        feb = payment_service.list_payments(db, 1, months=["2024-02"])
        assert {p.employee_id for p in feb} == {awa.id, kofi.id}

        by_search = payment_service.list_payments(db, 1, search="awa")
        assert {p.employee_id for p in by_search} == {awa.id}
        assert [p.date for p in by_search] == [date(2024, 2, 29), date(2024, 1, 31)]

        by_ref = payment_service.list_payments(db, 1, search="PAY-2024-003")
        assert [p.employee_id for p in by_ref] == [kofi.id]

        with pytest.raises(ValidationError):
            payment_service.list_payments(db, 1, months=["02-2024"])
    finally:
        db.close()
