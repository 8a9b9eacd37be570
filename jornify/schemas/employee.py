from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EmployeeCreate(BaseModel):
    name: str
    email: Optional[str] = None
    contracted_hours_per_week: int = Field(default=40, ge=0, le=168)


class EmployeeUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    contracted_hours_per_week: Optional[int] = Field(default=None, ge=0, le=168)
    is_active: Optional[bool] = None


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: int
    name: str
    email: Optional[str]
    contracted_hours_per_week: int
    is_active: bool
    created_at: datetime
