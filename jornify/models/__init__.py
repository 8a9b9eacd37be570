from jornify.models.employee import Employee
from jornify.models.monthly_signature import MonthlySignature
from jornify.models.record_event import RecordEvent
from jornify.models.time_record import TimeRecord

__all__ = [
    "Employee",
    "MonthlySignature",
    "RecordEvent",
    "TimeRecord",
]
