"""HTTP client and optimistic clock session for the Jornify API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin
from uuid import uuid4

import requests

from jornify.core.exceptions import PersistenceError
from jornify.services.hash_chain import ChainRecord, RecordType, format_timestamp, normalize_timestamp, record_to_dict
from jornify.services.record_cache import PendingWrite, RecordCache

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Could not save the time record. Please try again."
RELOAD_MESSAGE = "Could not update the time record. Please reload the page."


class ApiError(RuntimeError):
    """Error talking to the Jornify API."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, detail: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ApiClient:
    """
    Record store over HTTP.

    ``session`` can be anything with ``requests.Session.request`` semantics,
    which lets tests pass FastAPI's ``TestClient``.
    """

    page_size = 100

    def __init__(
        self,
        base_url: str,
        *,
        token: str,
        company_id: int,
        timeout: int = 15,
        session: Any = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.token = token
        self.company_id = int(company_id)
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.token}",
            "X-Company-Id": str(self.company_id),
        }

    def _request(self, method: str, path: str, **kwargs):
        url = urljoin(self.base_url, path.lstrip("/"))
        kwargs.setdefault("timeout", self.timeout)
        headers = kwargs.setdefault("headers", {})
        headers.update(self._headers())
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise ApiError(str(exc)) from exc

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            raise ApiError(
                f"API error {response.status_code}: {detail}",
                status_code=response.status_code,
                detail=detail,
            )

        return response.json()

    # Record store contract

    def insert_record(self, record: Any) -> Dict[str, Any]:
        return self._request("POST", "/time_records", json=record_to_dict(record))

    def update_record(
        self,
        record_id: str,
        changes: Dict[str, Any],
        *,
        expected_row_hash: Optional[str] = None,
        row_hash: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = {k: format_timestamp(v) if isinstance(v, datetime) else v for k, v in changes.items()}
        if expected_row_hash is not None:
            body["expected_row_hash"] = expected_row_hash
        if row_hash is not None:
            body["row_hash"] = row_hash
        return self._request("PATCH", f"/time_records/{record_id}", json=body)

    def query_by_employee(self, employee_id: str) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self._request(
                "GET",
                "/time_records",
                params={"employee_id": employee_id, "limit": self.page_size, "offset": offset},
            )
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            offset += self.page_size

    def changes(self, *, after_id: int = 0, employee_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"after_id": after_id}
        if employee_id is not None:
            params["employee_id"] = employee_id
        return self._request("GET", "/time_records/changes", params=params)

    def verify(self, employee_id: str) -> Dict[str, Any]:
        return self._request("GET", "/time_records/verify", params={"employee_id": employee_id})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerSession:
    """
    One employee's clock, applied to the local cache first and persisted
    afterwards. ``store`` needs ``insert_record``, ``update_record``,
    ``query_by_employee`` and ``changes`` (``ApiClient`` provides them).
    """

    def __init__(
        self,
        store: Any,
        employee_id: str,
        *,
        cache: Optional[RecordCache] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.employee_id = str(employee_id)
        self.cache = cache if cache is not None else RecordCache()
        self.clock = clock
        self.last_event_id = 0

    def load(self) -> List[ChainRecord]:
        rows = self.store.query_by_employee(self.employee_id)
        self.cache.reconcile(rows, employee_id=self.employee_id)
        return self.cache.records(self.employee_id)

    def active_record(self) -> Optional[ChainRecord]:
        return self.cache.open_record(self.employee_id)

    def _persist_create(self, write: PendingWrite) -> ChainRecord:
        try:
            stored = self.store.insert_record(write.record)
        except (ApiError, PersistenceError) as exc:
            self.cache.fail(write)
            logger.warning(
                "Time record insert failed; optimistic record removed",
                extra={"employee_id": self.employee_id, "record_id": write.record_id},
            )
            raise PersistenceError(str(exc), user_message=SAVE_FAILED_MESSAGE) from exc
        return self.cache.confirm(write, stored)

    def _persist_amend(self, write: PendingWrite) -> ChainRecord:
        try:
            stored = self.store.update_record(
                write.record_id,
                write.changes,
                expected_row_hash=write.previous.row_hash,
                row_hash=write.record.row_hash,
            )
        except (ApiError, PersistenceError) as exc:
            self.cache.fail(write)
            logger.warning(
                "Time record update failed; previous version restored",
                extra={"employee_id": self.employee_id, "record_id": write.record_id},
            )
            raise PersistenceError(str(exc), user_message=RELOAD_MESSAGE) from exc
        return self.cache.confirm(write, stored)

    def clock_in(
        self,
        *,
        record_type: str = RecordType.WORK.value,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> ChainRecord:
        if self.active_record() is not None:
            raise ValueError("A session is already in progress")

        draft = ChainRecord(
            id=str(uuid4()),
            employee_id=self.employee_id,
            start_time=normalize_timestamp(at or self.clock()),
            type=RecordType(record_type).value,
            notes=notes,
        )
        return self._persist_create(self.cache.begin_append(draft))

    def clock_out(self, *, at: Optional[datetime] = None) -> ChainRecord:
        active = self.active_record()
        if active is None:
            raise ValueError("No session in progress")

        write = self.cache.begin_amend(active.id, end_time=normalize_timestamp(at or self.clock()))
        return self._persist_amend(write)

    def toggle_break(self, *, at: Optional[datetime] = None) -> ChainRecord:
        at = normalize_timestamp(at or self.clock())
        next_type = RecordType.BREAK.value

        active = self.active_record()
        if active is not None:
            if active.type == RecordType.BREAK.value:
                next_type = RecordType.WORK.value
            self.clock_out(at=at)

        return self.clock_in(record_type=next_type, at=at)

    def edit_notes(self, record_id: str, notes: Optional[str]) -> ChainRecord:
        return self._persist_amend(self.cache.begin_amend(record_id, notes=notes))

    def sync(self) -> int:
        """Pull the change feed and fold it into the cache. Returns rows changed."""
        changed = 0
        events = self.store.changes(after_id=self.last_event_id, employee_id=self.employee_id)
        for event in events:
            changed += self.cache.reconcile([event["payload"]])
            self.last_event_id = max(self.last_event_id, int(event["id"]))
        return changed
