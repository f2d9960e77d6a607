from __future__ import annotations

from typing import Optional, Sequence


class PaymentError(Exception):
    """Base for failures the payment services report to their caller."""

    status_code = 400

    def __init__(self, message: str, *, details: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = list(details) if details else []


class ValidationError(PaymentError):
    status_code = 400


class NotFoundError(PaymentError):
    # Out-of-company rows are reported the same way as missing ones.
    status_code = 404


class ConflictError(PaymentError):
    status_code = 409


class AllocationExhausted(PaymentError):
    status_code = 409

    def __init__(self, message: str = "Could not generate unique payment reference, please retry"):
        super().__init__(message)



class ReconciliationItemError(PaymentError):
    """A single payment failed to transition during a reconciliation pass."""

    def __init__(self, payment_id: int, message: str):
        super().__init__(message)
        self.payment_id = payment_id
