"""
Persistence boundary for time records.

This is where the chain is protected against concurrent writers: an insert
only lands if its ``parent_hash`` still equals the employee's current tail
``row_hash`` (compare-and-swap), and an amendment can be pinned to the
``row_hash`` the caller last saw. The pure chain logic lives in
``hash_chain``.

Functions follow the session convention used across services: pass ``db``
and the caller owns the transaction; omit it and the function commits or
rolls back on its own.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jornify.core.exceptions import ChainConflictError, HashComputationError, RecordNotFoundError
from jornify.database import SessionLocal
from jornify.models.employee import Employee
from jornify.models.record_event import RecordEvent
from jornify.models.time_record import TimeRecord
from jornify.services.hash_chain import (
    AMENDABLE_FIELDS,
    ChainRecord,
    amend_record,
    calculate_duration_minutes,
    compute_row_hash,
    normalize_timestamp,
    record_to_dict,
)

logger = logging.getLogger(__name__)

RECORD_CREATED = "RECORD_CREATED"
RECORD_AMENDED = "RECORD_AMENDED"


def get_employee(db: Session, company_id: int, employee_id: str) -> Optional[Employee]:
    return (
        db.query(Employee)
        .filter(
            Employee.id == str(employee_id),
            Employee.company_id == int(company_id),
        )
        .first()
    )


def get_tail(db: Session, company_id: int, employee_id: str) -> Optional[TimeRecord]:
    return (
        db.query(TimeRecord)
        .filter(
            TimeRecord.company_id == int(company_id),
            TimeRecord.employee_id == str(employee_id),
        )
        .order_by(TimeRecord.start_time.desc())
        .with_for_update()
        .first()
    )


def get_open_record(db: Session, company_id: int, employee_id: str) -> Optional[TimeRecord]:
    return (
        db.query(TimeRecord)
        .filter(
            TimeRecord.company_id == int(company_id),
            TimeRecord.employee_id == str(employee_id),
            TimeRecord.end_time.is_(None),
        )
        .order_by(TimeRecord.start_time.desc())
        .first()
    )


def query_by_employee(employee_id: str, *, company_id: int, db: Session) -> List[TimeRecord]:
    return (
        db.query(TimeRecord)
        .filter(
            TimeRecord.company_id == int(company_id),
            TimeRecord.employee_id == str(employee_id),
        )
        .order_by(TimeRecord.start_time.asc())
        .all()
    )


def _emit_event(db: Session, row: TimeRecord, event_type: str) -> None:
    db.add(
        RecordEvent(
            company_id=int(row.company_id),
            employee_id=str(row.employee_id),
            record_id=str(row.id),
            event_type=event_type,
            row_hash=row.row_hash,
            payload=record_to_dict(row),
        )
    )


def _check_tail(db: Session, company_id: int, record: ChainRecord) -> None:
    tail = get_tail(db, company_id, record.employee_id)
    tail_hash = tail.row_hash if tail is not None else ""

    if record.parent_hash != tail_hash:
        logger.info(
            "Rejected append: chain tail moved",
            extra={
                "employee_id": record.employee_id,
                "record_id": record.id,
                "parent_hash": record.parent_hash,
                "tail_row_hash": tail_hash,
            },
        )
        raise ChainConflictError(
            "Chain tail moved: parent_hash does not match the latest record",
            user_message="Could not save the time record. Please try again.",
        )

    # Compare at stored precision so two starts never collapse into one.
    if tail is not None and normalize_timestamp(record.start_time) <= normalize_timestamp(tail.start_time):
        raise ChainConflictError(
            "start_time must be after the latest record of the employee",
            user_message="Could not save the time record. Please try again.",
        )

    if record.is_open and get_open_record(db, company_id, record.employee_id) is not None:
        raise ChainConflictError(
            "Open time record already exists for employee",
            user_message="There is already a session in progress.",
        )


def insert_record(record: Any, *, company_id: int, db: Optional[Session] = None) -> TimeRecord:
    """
    Persist a record whose ``parent_hash`` and ``row_hash`` were computed by
    ``append_record``. Refuses records with a wrong ``row_hash`` and records
    that were chained off a stale tail.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        chain = ChainRecord.from_row(record)

        if chain.end_time is not None and chain.end_time < chain.start_time:
            raise ValueError("end_time must not be before start_time")

        if chain.row_hash != compute_row_hash(chain, chain.parent_hash):
            raise HashComputationError("row_hash does not match the record content")

        _check_tail(db, company_id, chain)

        duration = 0
        if chain.end_time is not None:
            duration = calculate_duration_minutes(chain.start_time, chain.end_time)

        row = TimeRecord(
            id=chain.id,
            company_id=int(company_id),
            employee_id=chain.employee_id,
            start_time=normalize_timestamp(chain.start_time),
            end_time=None if chain.end_time is None else normalize_timestamp(chain.end_time),
            duration_minutes=duration,
            type=chain.type,
            notes=chain.notes,
            parent_hash=chain.parent_hash,
            row_hash=chain.row_hash,
        )
        db.add(row)
        _emit_event(db, row, RECORD_CREATED)

        try:
            db.flush()
        except IntegrityError as exc:
            raise ChainConflictError(
                "Time record conflicts with an existing record",
                user_message="Could not save the time record. Please try again.",
            ) from exc

        if owns_db:
            db.commit()

        logger.info(
            "Time record appended",
            extra={"employee_id": row.employee_id, "record_id": row.id, "row_hash": row.row_hash},
        )
        return row
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def update_record(
    record_id: str,
    changes: Dict[str, Any],
    *,
    company_id: int,
    db: Optional[Session] = None,
    expected_row_hash: Optional[str] = None,
    row_hash: Optional[str] = None,
) -> TimeRecord:
    """
    Amend a stored record and recompute its ``row_hash``.

    ``expected_row_hash`` pins the amendment to the version the caller saw;
    ``row_hash`` is the client's own recomputation and must agree with ours.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        row = (
            db.query(TimeRecord)
            .filter(
                TimeRecord.id == str(record_id),
                TimeRecord.company_id == int(company_id),
            )
            .with_for_update()
            .first()
        )
        if row is None:
            raise RecordNotFoundError("Time record not found")

        if expected_row_hash is not None and row.row_hash != expected_row_hash:
            raise ChainConflictError(
                "Time record changed since it was read",
                user_message="Could not update the time record. Please reload.",
            )

        amended = amend_record(
            ChainRecord.from_row(row),
            **{k: v for k, v in changes.items() if k in AMENDABLE_FIELDS},
        )

        if row_hash is not None and row_hash != amended.row_hash:
            raise HashComputationError("row_hash does not match the amended record content")

        previous_hash = row.row_hash
        row.end_time = None if amended.end_time is None else normalize_timestamp(amended.end_time)
        row.duration_minutes = amended.duration_minutes
        row.notes = amended.notes
        row.type = amended.type
        row.row_hash = amended.row_hash

        if amended.row_hash != previous_hash:
            _emit_event(db, row, RECORD_AMENDED)

        try:
            db.flush()
        except IntegrityError as exc:
            raise ChainConflictError(
                "Time record update conflicts with an existing record",
                user_message="Could not update the time record. Please reload.",
            ) from exc

        if owns_db:
            db.commit()

        logger.info(
            "Time record amended",
            extra={
                "employee_id": row.employee_id,
                "record_id": row.id,
                "previous_row_hash": previous_hash,
                "row_hash": row.row_hash,
            },
        )
        return row
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def changes_since(
    *,
    company_id: int,
    db: Session,
    after_id: int = 0,
    limit: int = 100,
    employee_id: Optional[str] = None,
) -> List[RecordEvent]:
    q = (
        db.query(RecordEvent)
        .filter(RecordEvent.company_id == int(company_id))
        .filter(RecordEvent.id > int(after_id))
    )
    if employee_id is not None:
        q = q.filter(RecordEvent.employee_id == str(employee_id))
    return q.order_by(RecordEvent.id.asc()).limit(int(limit)).all()
