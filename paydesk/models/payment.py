from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.schema import Index, UniqueConstraint

from paydesk.database import Base

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID)

PAYMENT_TYPE_SALARY = "salary"
PAYMENT_TYPE_OTHER = "other"
PAYMENT_TYPES = (PAYMENT_TYPE_SALARY, PAYMENT_TYPE_OTHER)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)

    employee_id = Column(
        Integer,
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount_cfa = Column(Numeric(14, 2), nullable=False)
    amount_usd = Column(Numeric(14, 2), nullable=False)

    date = Column(Date, nullable=False)
    # "YYYY-MM" of date; backs the one-salary-per-month index.
    period = Column(String(7), nullable=False)

    status = Column(String, nullable=False, server_default=PAYMENT_STATUS_PENDING)
    type = Column(String, nullable=False, server_default=PAYMENT_TYPE_SALARY)
    reference = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    employee = relationship("Employee", backref="payments")

    __table_args__ = (
        UniqueConstraint("reference", name="uq_payments_reference"),
        Index(
            "uq_payments_salary_period",
            "employee_id",
            "period",
            unique=True,
            postgresql_where=text("type = 'salary'"),
        ),
        Index("ix_payments_status_date", "status", "date"),
        CheckConstraint("status IN ('pending', 'paid')", name="ck_payments_status"),
        CheckConstraint("type IN ('salary', 'other')", name="ck_payments_type"),
        CheckConstraint("amount_cfa > 0", name="ck_payments_amount_cfa_positive"),
        CheckConstraint("amount_usd > 0", name="ck_payments_amount_usd_positive"),
        CheckConstraint("period = to_char(date, 'YYYY-MM')", name="ck_payments_period_matches_date"),
    )
