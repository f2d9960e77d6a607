from paydesk.models.employee import Employee
from paydesk.models.payment import Payment

__all__ = [
    "Employee",
    "Payment",
]
