"""
Tamper-evident hash chain over an employee's time records.

Every record carries ``parent_hash`` (the ``row_hash`` of the employee's
previous record by ``start_time``, or ``""`` for the first one) and
``row_hash`` (SHA-256 over its own hashed fields plus ``parent_hash``).

The functions here are pure: they never touch the database, never log, and
return new ``ChainRecord`` values instead of mutating their inputs. Getting
a fresh chain tail is the caller's job (see ``record_store``).
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

from jornify.core.exceptions import HashComputationError


class RecordType(str, Enum):
    WORK = "work"
    BREAK = "break"


RECORD_TYPES = tuple(t.value for t in RecordType)
ROW_HASH_LENGTH = 64
AMENDABLE_FIELDS = frozenset({"end_time", "notes", "type"})

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ChainRecord:
    id: str
    employee_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    type: str = RecordType.WORK.value
    notes: Optional[str] = None
    duration_minutes: int = 0
    parent_hash: str = ""
    row_hash: str = ""

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @classmethod
    def from_row(cls, row: Any) -> "ChainRecord":
        return _as_chain_record(row)


@dataclass(frozen=True)
class ChainVerification:
    is_valid: bool
    broken_index: Optional[int] = None
    broken_record_id: Optional[str] = None
    checked: int = 0


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def parse_timestamp(value: Any) -> datetime:
    """Return ``value`` as an aware UTC datetime. Naive values are UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise HashComputationError(f"Invalid timestamp: {value!r}") from exc
    else:
        raise HashComputationError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: Any) -> datetime:
    """UTC, truncated to the millisecond precision the row hash covers."""
    parsed = parse_timestamp(value)
    return parsed.replace(microsecond=(parsed.microsecond // 1000) * 1000)


def format_timestamp(value: Any) -> str:
    """Canonical ISO-8601 form used inside the row hash: ``2024-05-06T08:00:00.000Z``."""
    ts = parse_timestamp(value)
    return f"{ts:%Y-%m-%dT%H:%M:%S}.{ts.microsecond // 1000:03d}Z"


def _type_value(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if value not in RECORD_TYPES:
        raise HashComputationError(f"Unknown record type: {value!r}")
    return value


def calculate_duration_minutes(start_time: Any, end_time: Any) -> int:
    delta = parse_timestamp(end_time) - parse_timestamp(start_time)
    return int(delta.total_seconds() // 60)


def _json_str(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def canonical_payload(record: Any, parent_hash: str) -> str:
    """
    Serialize the hashed fields with a fixed key order and no whitespace:

        {"employee_id":..,"start_time":..,"end_time":..,"type":..,"notes":..,"parent_hash":..}
    """
    employee_id = _field(record, "employee_id")
    if employee_id is None or str(employee_id) == "":
        raise HashComputationError("Record has no employee_id")

    start_time = _field(record, "start_time")
    if start_time is None:
        raise HashComputationError("Record has no start_time")

    if not isinstance(parent_hash, str):
        raise HashComputationError(f"parent_hash must be a string, got {type(parent_hash).__name__}")

    end_time = _field(record, "end_time")
    record_type = _field(record, "type")
    notes = _field(record, "notes")
    if notes is not None and not isinstance(notes, str):
        raise HashComputationError("notes must be text")

    parts = (
        ("employee_id", _json_str(str(employee_id))),
        ("start_time", _json_str(format_timestamp(start_time))),
        ("end_time", "null" if end_time is None else _json_str(format_timestamp(end_time))),
        ("type", _json_str(RecordType.WORK.value if record_type is None else _type_value(record_type))),
        ("notes", _json_str(notes or "")),
        ("parent_hash", _json_str(parent_hash)),
    )
    return "{" + ",".join(f'"{key}":{value}' for key, value in parts) + "}"


def compute_row_hash(record: Any, parent_hash: str = "") -> str:
    payload = canonical_payload(record, parent_hash)
    try:
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
    except ValueError as exc:
        # e.g. lone surrogates in notes cannot be encoded
        raise HashComputationError(f"Could not hash record: {exc}") from exc


def _as_chain_record(record: Any) -> ChainRecord:
    if isinstance(record, ChainRecord):
        return record

    record_id = _field(record, "id")
    if record_id is None or str(record_id) == "":
        raise ValueError("Record has no id")

    employee_id = _field(record, "employee_id")
    if employee_id is None:
        raise HashComputationError("Record has no employee_id")
    start_time = _field(record, "start_time")
    if start_time is None:
        raise HashComputationError("Record has no start_time")

    end_time = _field(record, "end_time")
    record_type = _field(record, "type")

    return ChainRecord(
        id=str(record_id),
        employee_id=str(employee_id),
        start_time=parse_timestamp(start_time),
        end_time=None if end_time is None else parse_timestamp(end_time),
        type=RecordType.WORK.value if record_type is None else _type_value(record_type),
        notes=_field(record, "notes"),
        duration_minutes=int(_field(record, "duration_minutes") or 0),
        parent_hash=_field(record, "parent_hash") or "",
        row_hash=_field(record, "row_hash") or "",
    )


def _sort_key(record: Any) -> datetime:
    try:
        return parse_timestamp(_field(record, "start_time"))
    except HashComputationError:
        # Unorderable rows go last and fail verification there.
        return _FAR_FUTURE


def sort_chain(records: Iterable[Any]) -> List[Any]:
    return sorted(records, key=_sort_key)


def chain_tail(records: Iterable[Any], employee_id: str, *, exclude_id: Optional[str] = None) -> Optional[Any]:
    """The employee's record with the latest ``start_time``, if any."""
    tail = None
    tail_start = None
    for record in records:
        if str(_field(record, "employee_id")) != str(employee_id):
            continue
        if exclude_id is not None and str(_field(record, "id")) == str(exclude_id):
            continue
        start = _sort_key(record)
        if tail is None or start > tail_start:
            tail, tail_start = record, start
    return tail


def append_record(draft: Any, existing: Iterable[Any]) -> ChainRecord:
    record = _as_chain_record(draft)
    tail = chain_tail(existing, record.employee_id, exclude_id=record.id)
    parent_hash = (_field(tail, "row_hash") or "") if tail is not None else ""

    if record.end_time is not None and record.end_time < record.start_time:
        raise ValueError("end_time must not be before start_time")

    duration = 0
    if record.end_time is not None:
        duration = calculate_duration_minutes(record.start_time, record.end_time)

    row_hash = compute_row_hash(record, parent_hash)
    return replace(record, parent_hash=parent_hash, row_hash=row_hash, duration_minutes=duration)


def amend_record(existing: Any, **changes: Any) -> ChainRecord:
    """
    Apply ``changes`` (end_time, notes, type) and recompute ``row_hash``.

    ``parent_hash`` is the record's position in the chain and never changes.
    Any record that chained off the old ``row_hash`` stops verifying.
    """
    record = _as_chain_record(existing)

    unknown = set(changes) - AMENDABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be amended: {', '.join(sorted(unknown))}")

    updates = {}

    if "end_time" in changes:
        end_time = changes["end_time"]
        if end_time is None:
            if record.end_time is not None:
                raise ValueError("Closed time record cannot be reopened")
        else:
            end_time = parse_timestamp(end_time)
            if record.end_time is not None and end_time != record.end_time:
                raise ValueError("Time record is already closed")
            if end_time < record.start_time:
                raise ValueError("end_time must not be before start_time")
            updates["end_time"] = end_time
            updates["duration_minutes"] = calculate_duration_minutes(record.start_time, end_time)

    if "notes" in changes:
        notes = changes["notes"]
        if notes is not None and not isinstance(notes, str):
            raise ValueError("notes must be text")
        updates["notes"] = notes

    if "type" in changes:
        updates["type"] = _type_value(changes["type"])

    amended = replace(record, **updates)
    return replace(amended, row_hash=compute_row_hash(amended, record.parent_hash))


def verify_chain(records: Iterable[Any]) -> ChainVerification:
    """
    Walk the records in ``start_time`` order and report the FIRST break.

    A break is a ``parent_hash`` that does not match the previous record's
    ``row_hash``, a ``row_hash`` that does not match the recomputed digest,
    or a record whose digest cannot be computed at all.
    """
    ordered = sort_chain(records)

    expected_parent = ""
    for index, record in enumerate(ordered):
        broken = ChainVerification(
            is_valid=False,
            broken_index=index,
            broken_record_id=None if _field(record, "id") is None else str(_field(record, "id")),
            checked=index + 1,
        )

        if (_field(record, "parent_hash") or "") != expected_parent:
            return broken

        try:
            recalculated = compute_row_hash(record, expected_parent)
        except HashComputationError:
            return broken

        row_hash = _field(record, "row_hash")
        if row_hash != recalculated:
            return broken

        expected_parent = row_hash

    return ChainVerification(is_valid=True, broken_index=None, checked=len(ordered))


def integrity_code(row_hash: Optional[str], length: int = 16) -> str:
    return (row_hash or "")[:length].upper()


def record_to_dict(record: Any) -> dict:
    """JSON-ready view of a record, timestamps in the canonical hash format."""
    end_time = _field(record, "end_time")
    return {
        "id": str(_field(record, "id")),
        "employee_id": str(_field(record, "employee_id")),
        "start_time": format_timestamp(_field(record, "start_time")),
        "end_time": None if end_time is None else format_timestamp(end_time),
        "duration_minutes": int(_field(record, "duration_minutes") or 0),
        "type": _field(record, "type"),
        "notes": _field(record, "notes"),
        "parent_hash": _field(record, "parent_hash") or "",
        "row_hash": _field(record, "row_hash") or "",
    }
