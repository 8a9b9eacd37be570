from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Integer, String, func
from sqlalchemy.schema import Index

from jornify.database import Base


class RecordEvent(Base):
    """Append-only change feed over time_records, read by clients to reconcile."""

    __tablename__ = "record_events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    company_id = Column(Integer, nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    record_id = Column(String, nullable=False, index=True)

    event_type = Column(String, nullable=False)  # RECORD_CREATED|RECORD_AMENDED
    row_hash = Column(String(64), nullable=False)

    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_record_events_company_id_id", "company_id", "id"),
    )
