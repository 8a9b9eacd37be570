from typing import List
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException

from jornify.core.authorization import Role, ensure_employee_access, require_role
from jornify.database import SessionLocal
from jornify.deps.auth import AuthContext, require_auth
from jornify.models.employee import Employee
from jornify.schemas.employee import EmployeeCreate, EmployeeResponse, EmployeeUpdate

router = APIRouter(prefix="/employees", tags=["Employees"])


@router.post("", response_model=EmployeeResponse)
def create_employee(
    payload: EmployeeCreate,
    auth: AuthContext = Depends(require_role(Role.COMPANY)),
):
    db = SessionLocal()
    try:
        row = Employee(
            id=str(uuid4()),
            company_id=auth.company_id,
            name=payload.name,
            email=payload.email,
            contracted_hours_per_week=payload.contracted_hours_per_week,
            is_active=True,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()


@router.get("", response_model=List[EmployeeResponse])
def list_employees(
    auth: AuthContext = Depends(require_role(Role.COMPANY)),
):
    db = SessionLocal()
    try:
        rows = (
            db.query(Employee)
            .filter(Employee.company_id == auth.company_id)
            .order_by(Employee.created_at.asc(), Employee.id.asc())
            .all()
        )
        return rows
    finally:
        db.close()


@router.get("/{employee_id}", response_model=EmployeeResponse)
def get_employee(
    employee_id: str,
    auth: AuthContext = Depends(require_auth),
):
    ensure_employee_access(auth, employee_id)

    db = SessionLocal()
    try:
        row = (
            db.query(Employee)
            .filter(
                Employee.id == str(employee_id),
                Employee.company_id == auth.company_id,
            )
            .first()
        )
        if row is None:
            raise HTTPException(status_code=404, detail="Employee not found")
        return row
    finally:
        db.close()


@router.patch("/{employee_id}", response_model=EmployeeResponse)
def update_employee(
    employee_id: str,
    payload: EmployeeUpdate,
    auth: AuthContext = Depends(require_role(Role.COMPANY)),
):
    db = SessionLocal()
    try:
        row = (
            db.query(Employee)
            .filter(
                Employee.id == str(employee_id),
                Employee.company_id == auth.company_id,
            )
            .first()
        )
        if row is None:
            raise HTTPException(status_code=404, detail="Employee not found")

        for key, value in payload.model_dump(exclude_unset=True).items():
            if value is None and key in {"name", "contracted_hours_per_week", "is_active"}:
                continue
            setattr(row, key, value)

        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()
