from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError

from jornify.core.authorization import Role, ensure_employee_access
from jornify.database import SessionLocal
from jornify.deps.auth import AuthContext, require_auth
from jornify.models.monthly_signature import MonthlySignature
from jornify.schemas.signature import SignatureCreate, SignatureResponse
from jornify.services import record_store

router = APIRouter(prefix="/signatures", tags=["Signatures"])


@router.post("", response_model=SignatureResponse, status_code=201)
def sign_month(
    payload: SignatureCreate,
    auth: AuthContext = Depends(require_auth),
):
    ensure_employee_access(auth, payload.employee_id)

    db = SessionLocal()
    try:
        if record_store.get_employee(db, auth.company_id, payload.employee_id) is None:
            raise HTTPException(status_code=404, detail="Employee not found")

        row = MonthlySignature(
            company_id=auth.company_id,
            employee_id=payload.employee_id,
            month=payload.month,
            year=payload.year,
            signature_image=payload.signature_image,
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise HTTPException(status_code=409, detail="Month already signed") from exc
        db.refresh(row)
        return row
    finally:
        db.close()


@router.get("", response_model=List[SignatureResponse])
def list_signatures(
    auth: AuthContext = Depends(require_auth),
    employee_id: Optional[str] = None,
    year: Optional[int] = None,
):
    if auth.role == Role.EMPLOYEE.value:
        employee_id = employee_id or auth.user_id
        ensure_employee_access(auth, employee_id)

    db = SessionLocal()
    try:
        q = db.query(MonthlySignature).filter(MonthlySignature.company_id == auth.company_id)
        if employee_id is not None:
            q = q.filter(MonthlySignature.employee_id == str(employee_id))
        if year is not None:
            q = q.filter(MonthlySignature.year == int(year))
        return q.order_by(MonthlySignature.year.asc(), MonthlySignature.month.asc()).all()
    finally:
        db.close()
