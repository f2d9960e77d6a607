from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from paydesk.core.http_errors import to_http_exception
from paydesk.database import SessionLocal
from paydesk.deps.auth import CompanyContext, require_auth
from paydesk.schemas.payment import (
    PaymentBatchCreate,
    PaymentBatchResponse,
    PaymentCreate,
    PaymentResponse,
    PaymentUpdate,
)
from paydesk.services import payment_service
from paydesk.services.errors import PaymentError

router = APIRouter(prefix="/payments", tags=["Payments"])


def _split_months(months: Optional[List[str]], month: Optional[str]) -> list[str]:
    out: list[str] = []
    for raw in months or []:
        out.extend(m.strip() for m in str(raw).split(",") if m.strip())
    if month:
        out.append(str(month).strip())
    return out


@router.get("", response_model=list[PaymentResponse])
def list_payments(
    search: Optional[str] = None,
    employee_id: Optional[int] = None,
    month: Optional[str] = None,
    months: Optional[List[str]] = Query(default=None),
    ctx: CompanyContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        return payment_service.list_payments(
            db,
            ctx.company_id,
            search=search,
            employee_id=employee_id,
            months=_split_months(months, month),
        )
    except PaymentError as exc:
        raise to_http_exception(exc) from exc
    finally:
        db.close()


@router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: int,
    ctx: CompanyContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        payment = payment_service.get_payment(db, payment_id, ctx.company_id)
        if payment is None:
            raise HTTPException(status_code=404, detail="Payment not found")
        return payment
    finally:
        db.close()


@router.post("", response_model=PaymentResponse, status_code=201)
def create_payment(
    payload: PaymentCreate,
    ctx: CompanyContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        payment = payment_service.create_payment(
            payload.employee_id,
            ctx.company_id,
            payload.to_input(),
            db=db,
        )
        db.commit()
        db.refresh(payment)
        return payment
    except PaymentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/batch", response_model=PaymentBatchResponse)
def create_payment_batch(
    payload: PaymentBatchCreate,
    ctx: CompanyContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        result = payment_service.batch_create_payments(
            db,
            ctx.company_id,
            payload.employee_ids,
            payload.to_input(),
        )
        db.commit()

        body = PaymentBatchResponse(
            success=result.success,
            created_payments=[PaymentResponse.model_validate(p) for p in result.created],
            errors=result.errors,
            summary={
                "total": len(payload.employee_ids),
                "created": len(result.created),
                "failed": len(result.errors),
            },
        )
        return JSONResponse(
            status_code=201 if result.success else 400,
            content=jsonable_encoder(body),
        )
    except PaymentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.put("/{payment_id}", response_model=PaymentResponse)
def update_payment(
    payment_id: int,
    payload: PaymentUpdate,
    ctx: CompanyContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        payment = payment_service.update_payment(db, payment_id, ctx.company_id, payload.to_input())
        if payment is None:
            raise HTTPException(status_code=404, detail="Payment not found")
        db.commit()
        db.refresh(payment)
        return payment
    except PaymentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.delete("/{payment_id}")
def delete_payment(
    payment_id: int,
    ctx: CompanyContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        deleted = payment_service.delete_payment(db, payment_id, ctx.company_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Payment not found")
        db.commit()
        return {"success": True}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
