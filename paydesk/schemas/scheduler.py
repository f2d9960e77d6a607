import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class ManualCheckRequest(BaseModel):
    date: Optional[dt.date] = None


class ReconciliationOutcomeRow(BaseModel):
    payment_id: int
    reference: str
    employee_name: Optional[str]
    status: str
    message: str


class ReconciliationResultResponse(BaseModel):
    success: bool
    reference_date: dt.date
    processed: int
    failed: int
    details: list[ReconciliationOutcomeRow]


class SchedulerStatusResponse(BaseModel):
    running: bool
    interval_seconds: float
    last_run_at: Optional[str]
    last_result: Optional[ReconciliationResultResponse]
    message: str


class SchedulerControlResponse(BaseModel):
    success: bool
    message: str
    running: bool


class ScheduledPaymentRow(BaseModel):
    id: int
    employee_id: int
    employee_name: Optional[str]
    company_id: Optional[int]
    amount_cfa: Decimal
    amount_usd: Decimal
    date: dt.date
    status: str
    type: str
    reference: str


class StatusTotals(BaseModel):
    status: str
    count: int
    total_cfa: Decimal
    total_usd: Decimal


class OverallTotals(BaseModel):
    count: int
    total_cfa: Decimal
    total_usd: Decimal


class PaymentStatisticsResponse(BaseModel):
    company_id: Optional[int]
    by_status: list[StatusTotals]
    total: OverallTotals
