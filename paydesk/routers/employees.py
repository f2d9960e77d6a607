from typing import List

from fastapi import APIRouter, Depends, HTTPException

from paydesk.database import SessionLocal
from paydesk.deps.auth import CompanyContext, require_auth
from paydesk.models.employee import Employee
from paydesk.schemas.employee import EmployeeCreate, EmployeeResponse

router = APIRouter(prefix="/employees", tags=["Employees"])


@router.post("", response_model=EmployeeResponse, status_code=201)
def create_employee(
    payload: EmployeeCreate,
    ctx: CompanyContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        row = Employee(
            company_id=ctx.company_id,
            name=payload.name,
            email=payload.email,
            phone=payload.phone,
            position=payload.position,
            start_date=payload.start_date,
            is_active=True,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()


@router.get("", response_model=List[EmployeeResponse])
def list_employees(ctx: CompanyContext = Depends(require_auth)):
    db = SessionLocal()
    try:
        rows = (
            db.query(Employee)
            .filter(Employee.company_id == ctx.company_id)
            .order_by(Employee.id.asc())
            .all()
        )
        return rows
    finally:
        db.close()


@router.get("/{employee_id}", response_model=EmployeeResponse)
def get_employee(
    employee_id: int,
    ctx: CompanyContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        row = (
            db.query(Employee)
            .filter(
                Employee.id == int(employee_id),
                Employee.company_id == ctx.company_id,
            )
            .first()
        )
        if row is None:
            raise HTTPException(status_code=404, detail="Employee not found")
        return row
    finally:
        db.close()
