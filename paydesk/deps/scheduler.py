from fastapi import Request

from paydesk.services.payment_scheduler import PaymentScheduler


def get_payment_scheduler(request: Request) -> PaymentScheduler:
    # Created in the app lifespan; one instance per process.
    return request.app.state.payment_scheduler
