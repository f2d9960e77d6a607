import datetime as dt
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from paydesk.services.payment_service import PaymentInput

PaymentStatus = Literal["pending", "paid"]
PaymentType = Literal["salary", "other"]


class PaymentCreate(BaseModel):
    employee_id: int
    amount_cfa: Decimal = Field(gt=0)
    amount_usd: Decimal = Field(gt=0)
    date: dt.date
    status: Optional[PaymentStatus] = None
    type: PaymentType = "salary"

    def to_input(self) -> PaymentInput:
        return PaymentInput(
            amount_cfa=self.amount_cfa,
            amount_usd=self.amount_usd,
            date=self.date,
            status=self.status,
            type=self.type,
        )


class PaymentUpdate(BaseModel):
    amount_cfa: Optional[Decimal] = Field(default=None, gt=0)
    amount_usd: Optional[Decimal] = Field(default=None, gt=0)
    date: Optional[dt.date] = None
    status: Optional[PaymentStatus] = None
    type: Optional[PaymentType] = None

    def to_input(self) -> PaymentInput:
        return PaymentInput(
            amount_cfa=self.amount_cfa,
            amount_usd=self.amount_usd,
            date=self.date,
            status=self.status,
            type=self.type,
        )


class PaymentBatchCreate(BaseModel):
    employee_ids: list[int] = Field(min_length=1)
    amount_cfa: Decimal = Field(gt=0)
    amount_usd: Decimal = Field(gt=0)
    date: dt.date
    status: Optional[PaymentStatus] = None
    type: PaymentType = "salary"

    def to_input(self) -> PaymentInput:
        return PaymentInput(
            amount_cfa=self.amount_cfa,
            amount_usd=self.amount_usd,
            date=self.date,
            status=self.status,
            type=self.type,
        )


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    amount_cfa: Decimal
    amount_usd: Decimal
    date: dt.date
    status: str
    type: str
    reference: str
    created_at: dt.datetime
    updated_at: dt.datetime


class BatchError(BaseModel):
    employee_id: int
    employee_name: Optional[str] = None
    error: str
    details: list[str] = []


class BatchSummary(BaseModel):
    total: int
    created: int
    failed: int


class PaymentBatchResponse(BaseModel):
    success: bool
    created_payments: list[PaymentResponse]
    errors: list[BatchError]
    summary: BatchSummary
