from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from jornify.core.exceptions import RecordNotFoundError
from jornify.models.employee import Employee
from jornify.models.monthly_signature import MonthlySignature
from jornify.models.time_record import TimeRecord
from jornify.services import record_store
from jornify.services.hash_chain import (
    RecordType,
    format_timestamp,
    integrity_code,
    parse_timestamp,
    sort_chain,
    verify_chain,
)

DEFAULT_CONTRACTED_HOURS = 40


def format_duration(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


def week_start(value: Any) -> date:
    """Monday of the (UTC) week containing ``value``."""
    day = value if isinstance(value, date) and not isinstance(value, datetime) else parse_timestamp(value).date()
    return day - timedelta(days=day.weekday())


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def contracted_minutes(employee: Employee) -> int:
    return int(employee.contracted_hours_per_week or DEFAULT_CONTRACTED_HOURS) * 60


def fallback_verification_id(seed: str) -> str:
    """32-bit string hash for documents that contain no hashed record."""
    value = 0
    for ch in seed:
        value = (value * 31 + ord(ch)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return format(abs(value), "X").zfill(8)


def _signed_months(db: Session, company_id: int, employee_id: str) -> set:
    return {
        (s.year, s.month)
        for s in db.query(MonthlySignature)
        .filter(
            MonthlySignature.company_id == int(company_id),
            MonthlySignature.employee_id == str(employee_id),
        )
        .all()
    }


def _employee_section(
    db: Session,
    company_id: int,
    employee: Employee,
    date_start: datetime,
    date_end: datetime,
) -> tuple[dict[str, Any], List[TimeRecord]]:
    chain = sort_chain(record_store.query_by_employee(employee.id, company_id=company_id, db=db))
    verification = verify_chain(chain)
    verified_upto = len(chain) if verification.is_valid else verification.broken_index
    verified_ids = {row.id for row in chain[:verified_upto]}
    signed_months = _signed_months(db, company_id, employee.id)

    period: List[TimeRecord] = [
        row for row in chain if date_start <= parse_timestamp(row.start_time) < date_end
    ]

    weekly_limit = contracted_minutes(employee)
    weekly_acc: Dict[date, int] = {}
    rows = []
    totals = {"work_minutes": 0, "break_minutes": 0, "overtime_minutes": 0}

    for row in period:
        start = parse_timestamp(row.start_time)
        duration = int(row.duration_minutes or 0)
        is_break = row.type == RecordType.BREAK.value

        overtime = 0
        if is_break:
            totals["break_minutes"] += duration
        else:
            key = week_start(start)
            before = weekly_acc.get(key, 0)
            if before >= weekly_limit:
                overtime = duration
            elif before + duration > weekly_limit:
                overtime = before + duration - weekly_limit
            weekly_acc[key] = before + duration
            totals["work_minutes"] += duration
            totals["overtime_minutes"] += overtime

        rows.append(
            {
                "id": row.id,
                "date": start.date().isoformat(),
                "start_time": format_timestamp(start),
                "end_time": None if row.end_time is None else format_timestamp(row.end_time),
                "type": row.type,
                "duration_minutes": duration,
                "duration": format_duration(duration),
                "overtime_minutes": overtime,
                "overtime": format_duration(overtime),
                "notes": row.notes,
                "signed": (start.year, start.month) in signed_months,
                "verified": row.id in verified_ids,
                "row_hash": row.row_hash,
            }
        )

    section = {
        "employee": {
            "id": employee.id,
            "name": employee.name,
            "contracted_hours_per_week": int(employee.contracted_hours_per_week or DEFAULT_CONTRACTED_HOURS),
        },
        "chain": {
            "is_valid": verification.is_valid,
            "broken_index": verification.broken_index,
            "broken_record_id": verification.broken_record_id,
        },
        "rows": rows,
        "totals": totals,
    }
    return section, period


def _fallback_seed(company_id: int, date_start: datetime, date_end: datetime, count: int) -> str:
    return f"{company_id}-{date_start.isoformat()}-{date_end.isoformat()}-{count}"


def build_timesheet(
    *,
    company_id: int,
    employee_id: str,
    date_start: datetime,
    date_end: datetime,
    db: Session,
) -> dict[str, Any]:
    """
    Timesheet rows for one employee.

    Semantics:
      start_time >= date_start AND start_time < date_end
    Overtime:
      work minutes beyond the contracted weekly minutes, accumulated per
      Monday-based week in start_time order; breaks never count.
    Verification:
      the WHOLE chain is verified; records ordered before the first break
      are ``verified``, the break and everything after it are not.
    """
    employee = record_store.get_employee(db, company_id, employee_id)
    if employee is None:
        raise RecordNotFoundError("Employee not found")

    date_start = parse_timestamp(date_start)
    date_end = parse_timestamp(date_end)

    section, period = _employee_section(db, company_id, employee, date_start, date_end)

    last_hash: Optional[str] = period[-1].row_hash if period else None
    if last_hash:
        verification_id = integrity_code(last_hash, 10)
        document_code = integrity_code(last_hash, 16)
    else:
        verification_id = fallback_verification_id(_fallback_seed(company_id, date_start, date_end, 0))
        document_code = verification_id

    return {
        "company_id": int(company_id),
        "employee": section["employee"],
        "date_start": date_start.isoformat(),
        "date_end": date_end.isoformat(),
        "verification_id": verification_id,
        "integrity_code": document_code,
        "chain": section["chain"],
        "rows": section["rows"],
        "totals": section["totals"],
    }


def build_company_timesheet(
    *,
    company_id: int,
    date_start: datetime,
    date_end: datetime,
    db: Session,
) -> dict[str, Any]:
    """
    One export for every employee with records in ``[date_start, date_end)``.

    Sections are grouped per employee and ordered by name. The document
    carries a single ``verification_id`` taken from the latest record of the
    whole period; each section keeps its own ``integrity_code`` from that
    employee's latest record.
    """
    date_start = parse_timestamp(date_start)
    date_end = parse_timestamp(date_end)

    employees = (
        db.query(Employee)
        .filter(Employee.company_id == int(company_id))
        .order_by(Employee.name.asc(), Employee.id.asc())
        .all()
    )

    sections = []
    latest: Optional[TimeRecord] = None
    record_count = 0
    totals = {"work_minutes": 0, "break_minutes": 0, "overtime_minutes": 0}

    for employee in employees:
        section, period = _employee_section(db, company_id, employee, date_start, date_end)
        if not period:
            continue

        tail = period[-1]
        if latest is None or parse_timestamp(tail.start_time) > parse_timestamp(latest.start_time):
            latest = tail
        record_count += len(period)

        for key in totals:
            totals[key] += section["totals"][key]
        section["integrity_code"] = integrity_code(tail.row_hash, 16)
        sections.append(section)

    if latest is not None and latest.row_hash:
        verification_id = integrity_code(latest.row_hash, 10)
    else:
        verification_id = fallback_verification_id(_fallback_seed(company_id, date_start, date_end, record_count))

    return {
        "company_id": int(company_id),
        "date_start": date_start.isoformat(),
        "date_end": date_end.isoformat(),
        "verification_id": verification_id,
        "record_count": record_count,
        "employees": sections,
        "totals": totals,
    }


def weekly_summary(*, company_id: int, on: date, db: Session) -> dict[str, Any]:
    """Closed work minutes per active employee for the week containing ``on``."""
    start_day = week_start(on)
    week_from = _day_start(start_day)
    week_to = week_from + timedelta(days=7)
    month_from = _day_start(on.replace(day=1))
    month_to = _day_start((on.replace(day=28) + timedelta(days=4)).replace(day=1))

    employees = (
        db.query(Employee)
        .filter(Employee.company_id == int(company_id), Employee.is_active.is_(True))
        .order_by(Employee.name.asc(), Employee.id.asc())
        .all()
    )

    def _worked(employee_id: str, lower: datetime, upper: datetime) -> int:
        rows = (
            db.query(TimeRecord)
            .filter(
                TimeRecord.company_id == int(company_id),
                TimeRecord.employee_id == employee_id,
                TimeRecord.type == RecordType.WORK.value,
                TimeRecord.end_time.isnot(None),
                TimeRecord.start_time >= lower,
                TimeRecord.start_time < upper,
            )
            .all()
        )
        return sum(int(r.duration_minutes or 0) for r in rows)

    summary = []
    for employee in employees:
        worked = _worked(employee.id, week_from, week_to)
        limit = contracted_minutes(employee)
        summary.append(
            {
                "employee_id": employee.id,
                "name": employee.name,
                "worked_minutes": worked,
                "worked": format_duration(worked),
                "contracted_minutes": limit,
                "overtime_minutes": max(worked - limit, 0),
                "progress_percent": min(round(worked * 100 / limit, 1), 100.0) if limit else 100.0,
                "month_minutes": _worked(employee.id, month_from, month_to),
            }
        )

    return {
        "company_id": int(company_id),
        "week_start": start_day.isoformat(),
        "week_end": (start_day + timedelta(days=6)).isoformat(),
        "employees": summary,
    }
