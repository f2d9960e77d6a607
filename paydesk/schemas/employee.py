from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    start_date: Optional[date] = None


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    position: Optional[str]
    start_date: Optional[date]
    is_active: bool
    created_at: datetime
