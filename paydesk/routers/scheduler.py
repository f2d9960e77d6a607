import datetime as dt
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from paydesk.core.authorization import Role, require_role
from paydesk.core.http_errors import to_http_exception
from paydesk.database import SessionLocal
from paydesk.deps.auth import CompanyContext, require_auth
from paydesk.deps.scheduler import get_payment_scheduler
from paydesk.schemas.scheduler import (
    ManualCheckRequest,
    PaymentStatisticsResponse,
    ReconciliationResultResponse,
    ScheduledPaymentRow,
    SchedulerControlResponse,
    SchedulerStatusResponse,
)
from paydesk.services import payment_reports
from paydesk.services.errors import PaymentError
from paydesk.services.payment_scheduler import PaymentScheduler

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


@router.get("/status", response_model=SchedulerStatusResponse)
def scheduler_status(
    _ctx: CompanyContext = Depends(require_auth),
    scheduler: PaymentScheduler = Depends(get_payment_scheduler),
):
    status = scheduler.status()
    status["message"] = (
        "Payment scheduler is running" if status["running"] else "Payment scheduler is stopped"
    )
    return status


@router.post("/start", response_model=SchedulerControlResponse)
def start_scheduler(
    _ctx: CompanyContext = Depends(require_role(Role.ADMIN)),
    scheduler: PaymentScheduler = Depends(get_payment_scheduler),
):
    started = scheduler.start()
    message = "Payment scheduler started" if started else "Payment scheduler is already running"
    return {"success": True, "message": message, "running": scheduler.running}


@router.post("/stop", response_model=SchedulerControlResponse)
def stop_scheduler(
    _ctx: CompanyContext = Depends(require_role(Role.ADMIN)),
    scheduler: PaymentScheduler = Depends(get_payment_scheduler),
):
    stopped = scheduler.stop()
    message = "Payment scheduler stopped" if stopped else "Payment scheduler is already stopped"
    return {"success": True, "message": message, "running": scheduler.running}


@router.post("/restart", response_model=SchedulerControlResponse)
def restart_scheduler(
    _ctx: CompanyContext = Depends(require_role(Role.ADMIN)),
    scheduler: PaymentScheduler = Depends(get_payment_scheduler),
):
    scheduler.restart()
    return {"success": True, "message": "Payment scheduler restarted", "running": scheduler.running}


@router.post("/check", response_model=ReconciliationResultResponse)
def run_manual_check(
    payload: Optional[ManualCheckRequest] = Body(default=None),
    _ctx: CompanyContext = Depends(require_role(Role.MANAGER)),
    scheduler: PaymentScheduler = Depends(get_payment_scheduler),
):
    reference_date = None if payload is None else payload.date
    result = scheduler.run_manual_check(reference_date)
    return result.as_dict()


@router.get("/statistics", response_model=PaymentStatisticsResponse)
def get_statistics(ctx: CompanyContext = Depends(require_auth)):
    db: Session = SessionLocal()
    try:
        return payment_reports.payment_statistics(db, company_id=ctx.company_id)
    finally:
        db.close()


@router.get("/overdue", response_model=list[ScheduledPaymentRow])
def get_overdue_payments(ctx: CompanyContext = Depends(require_auth)):
    db: Session = SessionLocal()
    try:
        return payment_reports.overdue_payments(db, company_id=ctx.company_id)
    finally:
        db.close()


@router.get("/upcoming", response_model=list[ScheduledPaymentRow])
def get_upcoming_payments(
    days: int = Query(30),
    ctx: CompanyContext = Depends(require_auth),
):
    db: Session = SessionLocal()
    try:
        return payment_reports.upcoming_payments(db, company_id=ctx.company_id, days=days)
    except PaymentError as exc:
        raise to_http_exception(exc) from exc
    finally:
        db.close()


@router.get("/pending", response_model=list[ScheduledPaymentRow])
def get_pending_payments(
    date: Optional[dt.date] = Query(default=None),
    ctx: CompanyContext = Depends(require_auth),
):
    db: Session = SessionLocal()
    try:
        return payment_reports.pending_payments(db, company_id=ctx.company_id, as_of=date)
    finally:
        db.close()
