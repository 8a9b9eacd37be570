from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from jornify.database import SessionLocal
from jornify.models.time_record import TimeRecord
from jornify.services import record_store
from jornify.services.hash_chain import ChainRecord, RecordType, append_record, normalize_timestamp


def start_record(
    company_id: int,
    employee_id: str,
    started_at: datetime,
    *,
    record_type: str = RecordType.WORK.value,
    notes: Optional[str] = None,
    record_id: Optional[str] = None,
    db: Optional[Session] = None,
) -> TimeRecord:
    """
    Open a work or break session, chained off the employee's latest record.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        if record_store.get_open_record(db, company_id, employee_id) is not None:
            raise ValueError("Open time record already exists for employee")

        draft = ChainRecord(
            id=record_id or str(uuid4()),
            employee_id=str(employee_id),
            start_time=normalize_timestamp(started_at),
            type=RecordType(record_type).value,
            notes=notes,
        )
        existing = record_store.query_by_employee(employee_id, company_id=company_id, db=db)
        row = record_store.insert_record(append_record(draft, existing), company_id=company_id, db=db)

        if owns_db:
            db.commit()

        return row
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def close_record(
    company_id: int,
    employee_id: str,
    ended_at: datetime,
    *,
    db: Optional[Session] = None,
) -> TimeRecord:
    """
    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        open_record = record_store.get_open_record(db, company_id, employee_id)
        if open_record is None:
            raise ValueError("No open time record found for employee")

        row = record_store.update_record(
            open_record.id,
            {"end_time": normalize_timestamp(ended_at)},
            company_id=company_id,
            db=db,
        )

        if owns_db:
            db.commit()

        return row
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def toggle_break(
    company_id: int,
    employee_id: str,
    at: datetime,
    *,
    db: Optional[Session] = None,
) -> TimeRecord:
    """
    Close the running session (if any) and open the opposite one at the same
    instant: work -> break, break -> work. With nothing running, a break starts.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        at = normalize_timestamp(at)
        next_type = RecordType.BREAK.value

        open_record = record_store.get_open_record(db, company_id, employee_id)
        if open_record is not None:
            if open_record.type == RecordType.BREAK.value:
                next_type = RecordType.WORK.value
            record_store.update_record(open_record.id, {"end_time": at}, company_id=company_id, db=db)

        row = start_record(company_id, employee_id, at, record_type=next_type, db=db)

        if owns_db:
            db.commit()

        return row
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def edit_notes(
    company_id: int,
    record_id: str,
    notes: Optional[str],
    *,
    db: Optional[Session] = None,
) -> TimeRecord:
    return record_store.update_record(record_id, {"notes": notes}, company_id=company_id, db=db)
