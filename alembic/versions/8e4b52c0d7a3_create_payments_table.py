"""create payments table with reference and salary period uniqueness

Revision ID: 8e4b52c0d7a3
Revises: 3c1f9a7d2b10
Create Date: 2026-03-02 11:02:51.906114
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "8e4b52c0d7a3"
down_revision: Union[str, Sequence[str], None] = "3c1f9a7d2b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("amount_cfa", sa.Numeric(14, 2), nullable=False),
        sa.Column("amount_usd", sa.Numeric(14, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("status", sa.String(), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("type", sa.String(), server_default=sa.text("'salary'"), nullable=False),
        sa.Column("reference", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("reference", name="uq_payments_reference"),
        sa.CheckConstraint("status IN ('pending', 'paid')", name="ck_payments_status"),
        sa.CheckConstraint("type IN ('salary', 'other')", name="ck_payments_type"),
        sa.CheckConstraint("amount_cfa > 0", name="ck_payments_amount_cfa_positive"),
        sa.CheckConstraint("amount_usd > 0", name="ck_payments_amount_usd_positive"),
        sa.CheckConstraint("period = to_char(date, 'YYYY-MM')", name="ck_payments_period_matches_date"),
    )

    op.create_index(op.f("ix_payments_employee_id"), "payments", ["employee_id"], unique=False)
    op.create_index("ix_payments_status_date", "payments", ["status", "date"], unique=False)

    # Hard guarantee behind the one-salary-per-employee-per-month rule.
    op.create_index(
        "uq_payments_salary_period",
        "payments",
        ["employee_id", "period"],
        unique=True,
        postgresql_where=sa.text("type = 'salary'"),
    )


def downgrade() -> None:
    op.drop_index("uq_payments_salary_period", table_name="payments")
    op.drop_index("ix_payments_status_date", table_name="payments")
    op.drop_index(op.f("ix_payments_employee_id"), table_name="payments")
    op.drop_table("payments")
