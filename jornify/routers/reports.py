from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from jornify.core.authorization import Role, ensure_employee_access, require_role
from jornify.core.exceptions import RecordNotFoundError
from jornify.database import SessionLocal
from jornify.deps.auth import AuthContext, require_auth
from jornify.services.hash_chain import parse_timestamp
from jornify.services.timesheet_service import build_company_timesheet, build_timesheet, weekly_summary

router = APIRouter(prefix="/reports", tags=["Reports"])


# ---------- Timesheet Models ----------

class TimesheetRow(BaseModel):
    id: str
    date: str
    start_time: str
    end_time: Optional[str]
    type: str
    duration_minutes: int
    duration: str
    overtime_minutes: int
    overtime: str
    notes: Optional[str]
    signed: bool
    verified: bool
    row_hash: str


class TimesheetEmployee(BaseModel):
    id: str
    name: str
    contracted_hours_per_week: int


class TimesheetChain(BaseModel):
    is_valid: bool
    broken_index: Optional[int]
    broken_record_id: Optional[str]


class TimesheetTotals(BaseModel):
    work_minutes: int
    break_minutes: int
    overtime_minutes: int


class TimesheetResponse(BaseModel):
    company_id: int
    employee: TimesheetEmployee
    date_start: str
    date_end: str
    verification_id: str
    integrity_code: str
    chain: TimesheetChain
    rows: list[TimesheetRow]
    totals: TimesheetTotals


class CompanyTimesheetSection(BaseModel):
    employee: TimesheetEmployee
    integrity_code: str
    chain: TimesheetChain
    rows: list[TimesheetRow]
    totals: TimesheetTotals


class CompanyTimesheetResponse(BaseModel):
    company_id: int
    date_start: str
    date_end: str
    verification_id: str
    record_count: int
    employees: list[CompanyTimesheetSection]
    totals: TimesheetTotals


# ---------- Weekly Models ----------

class WeeklyEmployee(BaseModel):
    employee_id: str
    name: str
    worked_minutes: int
    worked: str
    contracted_minutes: int
    overtime_minutes: int
    progress_percent: float
    month_minutes: int


class WeeklySummaryResponse(BaseModel):
    company_id: int
    week_start: str
    week_end: str
    employees: list[WeeklyEmployee]


# ---------- Endpoints ----------

@router.get("/timesheet", response_model=TimesheetResponse)
def get_timesheet(
    employee_id: str,
    date_start: datetime,
    date_end: datetime,
    auth: AuthContext = Depends(require_auth),
):
    ensure_employee_access(auth, employee_id)
    if parse_timestamp(date_end) <= parse_timestamp(date_start):
        raise HTTPException(status_code=400, detail="date_end must be after date_start")

    db = SessionLocal()
    try:
        return build_timesheet(
            company_id=auth.company_id,
            employee_id=employee_id,
            date_start=date_start,
            date_end=date_end,
            db=db,
        )
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        db.close()


@router.get("/timesheet/company", response_model=CompanyTimesheetResponse)
def get_company_timesheet(
    date_start: datetime,
    date_end: datetime,
    auth: AuthContext = Depends(require_role(Role.COMPANY)),
):
    if parse_timestamp(date_end) <= parse_timestamp(date_start):
        raise HTTPException(status_code=400, detail="date_end must be after date_start")

    db = SessionLocal()
    try:
        return build_company_timesheet(
            company_id=auth.company_id,
            date_start=date_start,
            date_end=date_end,
            db=db,
        )
    finally:
        db.close()


@router.get("/weekly", response_model=WeeklySummaryResponse)
def get_weekly_summary(
    on: Optional[date] = None,
    auth: AuthContext = Depends(require_role(Role.COMPANY)),
):
    db = SessionLocal()
    try:
        return weekly_summary(
            company_id=auth.company_id,
            on=on or date.today(),
            db=db,
        )
    finally:
        db.close()
