from fastapi import HTTPException

from paydesk.services.errors import AllocationExhausted, PaymentError


def to_http_exception(exc: PaymentError) -> HTTPException:
    if isinstance(exc, AllocationExhausted):
        return HTTPException(status_code=exc.status_code, detail={"error": exc.message, "retry": True})

    if exc.details:
        return HTTPException(status_code=exc.status_code, detail={"error": exc.message, "details": exc.details})

    return HTTPException(status_code=exc.status_code, detail=exc.message)
