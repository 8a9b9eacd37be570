from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String

from jornify.database import Base


class Employee(Base):
    __tablename__ = "employees"

    __table_args__ = (
        CheckConstraint("contracted_hours_per_week >= 0", name="ck_employees_contracted_hours_nonnegative"),
    )

    id = Column(String, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    contracted_hours_per_week = Column(Integer, nullable=False, default=40)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
