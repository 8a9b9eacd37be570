from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from jornify.core.authorization import Role, ensure_employee_access, require_role
from jornify.core.exceptions import ChainConflictError, HashComputationError, RecordNotFoundError
from jornify.database import SessionLocal
from jornify.deps.auth import AuthContext, require_auth
from jornify.models.time_record import TimeRecord
from jornify.schemas.time_record import (
    ChainVerificationResponse,
    RecordEventResponse,
    TimeRecordAmend,
    TimeRecordCreate,
    TimeRecordResponse,
)
from jornify.services import record_store, time_engine
from jornify.services.hash_chain import AMENDABLE_FIELDS, RecordType, parse_timestamp, verify_chain

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/time_records",
    tags=["Time Records"],
)


class ClockInRequest(BaseModel):
    employee_id: str
    type: RecordType = RecordType.WORK
    notes: Optional[str] = None
    started_at: Optional[datetime] = Field(
        default=None,
        description="If omitted, server uses current UTC time.",
    )


class ClockOutRequest(BaseModel):
    employee_id: str
    ended_at: Optional[datetime] = Field(
        default=None,
        description="If omitted, server uses current UTC time.",
    )


class ToggleBreakRequest(BaseModel):
    employee_id: str
    at: Optional[datetime] = Field(
        default=None,
        description="If omitted, server uses current UTC time.",
    )


def _require_employee(db: Session, auth: AuthContext, employee_id: str) -> None:
    ensure_employee_access(auth, employee_id)
    if record_store.get_employee(db, auth.company_id, employee_id) is None:
        raise HTTPException(status_code=404, detail="Employee not found")


def _write_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RecordNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, HashComputationError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=409, detail=str(exc))


_WRITE_ERRORS = (ChainConflictError, HashComputationError, RecordNotFoundError, ValueError)


@router.get("", response_model=list[TimeRecordResponse])
def list_time_records(
    auth: AuthContext = Depends(require_auth),
    employee_id: Optional[str] = None,
    type: Optional[RecordType] = None,
    started_at_from: Optional[datetime] = None,
    started_at_to: Optional[datetime] = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    if auth.role == Role.EMPLOYEE.value:
        employee_id = employee_id or auth.user_id
        ensure_employee_access(auth, employee_id)

    db = SessionLocal()
    try:
        q = db.query(TimeRecord).filter(TimeRecord.company_id == auth.company_id)

        if employee_id is not None:
            q = q.filter(TimeRecord.employee_id == str(employee_id))
        if type is not None:
            q = q.filter(TimeRecord.type == type.value)
        if started_at_from is not None:
            q = q.filter(TimeRecord.start_time >= parse_timestamp(started_at_from))
        if started_at_to is not None:
            q = q.filter(TimeRecord.start_time <= parse_timestamp(started_at_to))

        rows = (
            q.order_by(TimeRecord.start_time.desc(), TimeRecord.id.asc())
            .offset(int(offset))
            .limit(int(limit))
            .all()
        )
        return rows
    finally:
        db.close()


@router.post("", response_model=TimeRecordResponse, status_code=201)
def create_time_record(
    payload: TimeRecordCreate,
    auth: AuthContext = Depends(require_auth),
):
    """Store a record whose chain link was computed by the client."""
    db = SessionLocal()
    try:
        _require_employee(db, auth, payload.employee_id)
        row = record_store.insert_record(payload, company_id=auth.company_id, db=db)
        db.commit()
        db.refresh(row)
        return row
    except _WRITE_ERRORS as exc:
        db.rollback()
        raise _write_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/clock_in", response_model=TimeRecordResponse)
def clock_in_endpoint(
    payload: ClockInRequest,
    auth: AuthContext = Depends(require_auth),
):
    started_at = payload.started_at or datetime.now(timezone.utc)

    db = SessionLocal()
    try:
        _require_employee(db, auth, payload.employee_id)
        row = time_engine.start_record(
            company_id=auth.company_id,
            employee_id=payload.employee_id,
            started_at=started_at,
            record_type=payload.type.value,
            notes=payload.notes,
            db=db,
        )
        db.commit()
        db.refresh(row)
        return row
    except _WRITE_ERRORS as exc:
        db.rollback()
        raise _write_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/clock_out", response_model=TimeRecordResponse)
def clock_out_endpoint(
    payload: ClockOutRequest,
    auth: AuthContext = Depends(require_auth),
):
    ended_at = payload.ended_at or datetime.now(timezone.utc)

    db = SessionLocal()
    try:
        _require_employee(db, auth, payload.employee_id)
        row = time_engine.close_record(
            company_id=auth.company_id,
            employee_id=payload.employee_id,
            ended_at=ended_at,
            db=db,
        )
        db.commit()
        db.refresh(row)
        return row
    except _WRITE_ERRORS as exc:
        db.rollback()
        raise _write_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/toggle_break", response_model=TimeRecordResponse)
def toggle_break_endpoint(
    payload: ToggleBreakRequest,
    auth: AuthContext = Depends(require_auth),
):
    at = payload.at or datetime.now(timezone.utc)

    db = SessionLocal()
    try:
        _require_employee(db, auth, payload.employee_id)
        row = time_engine.toggle_break(
            company_id=auth.company_id,
            employee_id=payload.employee_id,
            at=at,
            db=db,
        )
        db.commit()
        db.refresh(row)
        return row
    except _WRITE_ERRORS as exc:
        db.rollback()
        raise _write_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.get("/active", response_model=TimeRecordResponse)
def get_active_time_record(
    employee_id: str,
    auth: AuthContext = Depends(require_auth),
):
    ensure_employee_access(auth, employee_id)

    db = SessionLocal()
    try:
        row = record_store.get_open_record(db, auth.company_id, employee_id)
        if row is None:
            raise HTTPException(status_code=404, detail="No open time record")
        return row
    finally:
        db.close()


@router.get("/latest", response_model=TimeRecordResponse)
def get_latest_time_record(
    employee_id: str,
    auth: AuthContext = Depends(require_auth),
):
    ensure_employee_access(auth, employee_id)

    db = SessionLocal()
    try:
        row = (
            db.query(TimeRecord)
            .filter(
                TimeRecord.company_id == auth.company_id,
                TimeRecord.employee_id == str(employee_id),
            )
            .order_by(TimeRecord.start_time.desc())
            .first()
        )
        if row is None:
            raise HTTPException(status_code=404, detail="No time records found")
        return row
    finally:
        db.close()


@router.get("/verify", response_model=ChainVerificationResponse)
def verify_time_record_chain(
    employee_id: str,
    auth: AuthContext = Depends(require_role(Role.COMPANY)),
):
    db = SessionLocal()
    try:
        rows = record_store.query_by_employee(employee_id, company_id=auth.company_id, db=db)
        result = verify_chain(rows)
        if not result.is_valid:
            logger.warning(
                "Time record chain broken",
                extra={
                    "company_id": auth.company_id,
                    "employee_id": employee_id,
                    "broken_index": result.broken_index,
                    "broken_record_id": result.broken_record_id,
                },
            )
        return ChainVerificationResponse(
            employee_id=str(employee_id),
            is_valid=result.is_valid,
            broken_index=result.broken_index,
            broken_record_id=result.broken_record_id,
            record_count=len(rows),
        )
    finally:
        db.close()


@router.get("/changes", response_model=list[RecordEventResponse])
def list_record_changes(
    auth: AuthContext = Depends(require_auth),
    after_id: int = Query(default=0, ge=0),
    employee_id: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
):
    if auth.role == Role.EMPLOYEE.value:
        employee_id = employee_id or auth.user_id
        ensure_employee_access(auth, employee_id)

    db = SessionLocal()
    try:
        return record_store.changes_since(
            company_id=auth.company_id,
            db=db,
            after_id=after_id,
            limit=limit,
            employee_id=employee_id,
        )
    finally:
        db.close()


@router.get("/{record_id}", response_model=TimeRecordResponse)
def get_time_record(
    record_id: str,
    auth: AuthContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        row = (
            db.query(TimeRecord)
            .filter(
                TimeRecord.id == str(record_id),
                TimeRecord.company_id == auth.company_id,
            )
            .first()
        )
        if row is None:
            raise HTTPException(status_code=404, detail="Time record not found")
        ensure_employee_access(auth, row.employee_id)
        return row
    finally:
        db.close()


@router.patch("/{record_id}", response_model=TimeRecordResponse)
def amend_time_record(
    record_id: str,
    payload: TimeRecordAmend,
    auth: AuthContext = Depends(require_auth),
):
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if k in AMENDABLE_FIELDS}
    if not changes:
        raise HTTPException(status_code=422, detail="Nothing to amend")

    db = SessionLocal()
    try:
        existing = (
            db.query(TimeRecord)
            .filter(
                TimeRecord.id == str(record_id),
                TimeRecord.company_id == auth.company_id,
            )
            .first()
        )
        if existing is None:
            raise HTTPException(status_code=404, detail="Time record not found")
        ensure_employee_access(auth, existing.employee_id)

        row = record_store.update_record(
            record_id,
            changes,
            company_id=auth.company_id,
            db=db,
            expected_row_hash=payload.expected_row_hash,
            row_hash=payload.row_hash,
        )
        db.commit()
        db.refresh(row)
        return row
    except _WRITE_ERRORS as exc:
        db.rollback()
        raise _write_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
