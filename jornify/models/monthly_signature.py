from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from jornify.database import Base


class MonthlySignature(Base):
    __tablename__ = "monthly_signatures"

    __table_args__ = (
        UniqueConstraint("employee_id", "month", "year", name="uq_monthly_signatures_employee_month"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_monthly_signatures_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False, index=True)

    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    signature_image = Column(Text, nullable=False)  # data URL of the drawn signature
    signed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
