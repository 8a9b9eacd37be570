from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jornify.services.hash_chain import ROW_HASH_LENGTH, RecordType, parse_timestamp


class TimeRecordCreate(BaseModel):
    """A record finalized by the client: hashes already computed."""

    id: str = Field(min_length=1)
    employee_id: str = Field(min_length=1)
    start_time: datetime
    end_time: Optional[datetime] = None
    type: RecordType = RecordType.WORK
    notes: Optional[str] = None
    duration_minutes: int = 0
    parent_hash: str = ""
    row_hash: str = Field(min_length=ROW_HASH_LENGTH, max_length=ROW_HASH_LENGTH)


class TimeRecordAmend(BaseModel):
    end_time: Optional[datetime] = None
    notes: Optional[str] = None
    type: Optional[RecordType] = None
    expected_row_hash: Optional[str] = None
    row_hash: Optional[str] = None


class TimeRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: int
    employee_id: str
    start_time: datetime
    end_time: Optional[datetime]
    duration_minutes: int
    type: str
    notes: Optional[str]
    parent_hash: str
    row_hash: str

    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    @field_validator("start_time", "end_time")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else parse_timestamp(value)


class ChainVerificationResponse(BaseModel):
    employee_id: str
    is_valid: bool
    broken_index: Optional[int]
    broken_record_id: Optional[str]
    record_count: int


class RecordEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: str
    record_id: str
    event_type: str
    row_hash: str
    payload: Dict[str, Any]
    created_at: datetime
