from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from paydesk.core.logging import configure_logging
from paydesk.database import dispose_database
from paydesk.models import employee, payment  # noqa: F401
from paydesk.routers.auth import router as auth_router
from paydesk.routers.employees import router as employees_router
from paydesk.routers.payments import router as payments_router
from paydesk.routers.scheduler import router as scheduler_router
from paydesk.services.payment_scheduler import PaymentScheduler, payment_scheduler_enabled

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    scheduler = PaymentScheduler.from_env()
    app.state.payment_scheduler = scheduler

    if payment_scheduler_enabled():
        scheduler.start()
    else:
        logger.info("Payment scheduler disabled")

    try:
        yield
    finally:
        scheduler.stop()
        dispose_database()


app = FastAPI(
    title="Paydesk",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception", extra={"path": request.url.path})
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(employees_router)
app.include_router(payments_router)
app.include_router(scheduler_router)


@app.get("/")
def root():
    return {"status": "Paydesk running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }
