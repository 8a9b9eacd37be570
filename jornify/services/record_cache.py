"""
In-memory, optimistically updated mirror of an employee's time records.

A write goes through explicit states:

    PENDING --confirm()--> CONFIRMED
    PENDING --fail()-----> FAILED   (compensating action runs)

The compensating action for a create removes the optimistic record; for an
amendment it restores the snapshot taken before the change.

The cache may briefly hold two open records, or a record chained off a tail
the server has already moved past; ``reconcile`` brings the store's copies in
but never rewrites a hash.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from jornify.core.exceptions import RecordNotFoundError
from jornify.services.hash_chain import ChainRecord, amend_record, append_record, sort_chain


class WriteKind(Enum):
    CREATE = "create"
    AMEND = "amend"


class WriteState(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class PendingWrite:
    kind: WriteKind
    record: ChainRecord
    previous: Optional[ChainRecord] = None
    changes: Dict[str, Any] = field(default_factory=dict)
    state: WriteState = WriteState.PENDING

    @property
    def record_id(self) -> str:
        return self.record.id


class RecordCache:
    def __init__(self, records: Iterable[Any] = ()) -> None:
        self._records: Dict[str, ChainRecord] = {}
        self._pending: Dict[str, PendingWrite] = {}
        for record in records:
            chain = ChainRecord.from_row(record)
            self._records[chain.id] = chain

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def get(self, record_id: str) -> Optional[ChainRecord]:
        return self._records.get(str(record_id))

    def records(self, employee_id: Optional[str] = None) -> List[ChainRecord]:
        rows = self._records.values()
        if employee_id is not None:
            rows = [r for r in rows if r.employee_id == str(employee_id)]
        return sort_chain(rows)

    def open_record(self, employee_id: str) -> Optional[ChainRecord]:
        open_rows = [r for r in self.records(employee_id) if r.is_open]
        return open_rows[-1] if open_rows else None

    def pending(self) -> List[PendingWrite]:
        return list(self._pending.values())

    def begin_append(self, draft: Any) -> PendingWrite:
        record = ChainRecord.from_row(draft)
        if record.id in self._records:
            raise ValueError(f"Time record {record.id} is already cached")

        existing = list(self._records.values())

        # Placeholder first so the session shows up before hashing finishes.
        self._records[record.id] = replace(record, parent_hash="", row_hash="")
        try:
            finalized = append_record(record, existing)
        except Exception:
            del self._records[record.id]
            raise

        self._records[record.id] = finalized
        write = PendingWrite(kind=WriteKind.CREATE, record=finalized)
        self._pending[record.id] = write
        return write

    def begin_amend(self, record_id: str, **changes: Any) -> PendingWrite:
        previous = self._records.get(str(record_id))
        if previous is None:
            raise RecordNotFoundError(f"Time record {record_id} is not cached")
        if str(record_id) in self._pending:
            raise ValueError(f"Time record {record_id} has a write in flight")

        amended = amend_record(previous, **changes)
        self._records[amended.id] = amended

        write = PendingWrite(kind=WriteKind.AMEND, record=amended, previous=previous, changes=dict(changes))
        self._pending[amended.id] = write
        return write

    def _settle(self, write: PendingWrite, state: WriteState) -> None:
        if write.state is not WriteState.PENDING:
            raise ValueError(f"Write for {write.record_id} is already {write.state.value}")
        write.state = state
        if self._pending.get(write.record_id) is write:
            del self._pending[write.record_id]

    def confirm(self, write: PendingWrite, stored: Any = None) -> ChainRecord:
        """Mark ``write`` confirmed; ``stored`` (the store's copy) replaces the local one."""
        self._settle(write, WriteState.CONFIRMED)
        if stored is not None:
            self._records[write.record_id] = ChainRecord.from_row(stored)
        return self._records[write.record_id]

    def fail(self, write: PendingWrite) -> None:
        self._settle(write, WriteState.FAILED)

        current = self._records.get(write.record_id)
        if current != write.record:
            # A reconcile already replaced the optimistic copy.
            return

        if write.kind is WriteKind.CREATE:
            del self._records[write.record_id]
        else:
            self._records[write.record_id] = write.previous

    def reconcile(self, server_records: Iterable[Any], *, employee_id: Optional[str] = None) -> int:
        """
        Replace cached copies with the store's. With ``employee_id`` the input
        is that employee's full record set and unknown local rows are dropped.
        Records with a write in flight are left alone.
        """
        incoming = [ChainRecord.from_row(r) for r in server_records]
        changed = 0

        for record in incoming:
            if record.id in self._pending:
                continue
            if self._records.get(record.id) != record:
                self._records[record.id] = record
                changed += 1

        if employee_id is not None:
            keep = {r.id for r in incoming}
            stale = [
                rid
                for rid, r in self._records.items()
                if r.employee_id == str(employee_id) and rid not in keep and rid not in self._pending
            ]
            for rid in stale:
                del self._records[rid]
                changed += 1

        return changed
