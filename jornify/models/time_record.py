from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from jornify.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimeRecord(Base):
    __tablename__ = "time_records"

    __table_args__ = (
        # No two records of one employee may chain off the same parent.
        UniqueConstraint("employee_id", "parent_hash", name="uq_time_records_chain_link"),
        Index(
            "uq_time_records_open",
            "employee_id",
            unique=True,
            postgresql_where=text("end_time IS NULL"),
            sqlite_where=text("end_time IS NULL"),
        ),
        Index("ix_time_records_employee_start", "employee_id", "start_time"),
        CheckConstraint("type IN ('work', 'break')", name="ck_time_records_type"),
        CheckConstraint("duration_minutes >= 0", name="ck_time_records_duration_nonnegative"),
    )

    id = Column(String, primary_key=True, index=True)

    company_id = Column(Integer, nullable=False, index=True)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False, index=True)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=0)

    type = Column(String, nullable=False, default="work")
    notes = Column(Text, nullable=True)

    parent_hash = Column(String(64), nullable=False, default="")
    row_hash = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
