from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from datetime import datetime
from jornada.db.base import Base

# ---------- Employee ----------
class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    rut = Column(String, unique=True, nullable=False, index=True)
    full_name = Column(String, nullable=False)

    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    # Labor terms
    weekly_hours_agreed = Column(Integer, nullable=False, default=40)
    shift_start = Column(String, nullable=True)    # "HH:MM", local time
    shift_end = Column(String, nullable=True)
    is_telework = Column(Boolean, nullable=False, default=False)

    # Soft delete only; history must survive
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

# ---------- AttendanceEvent ----------
class AttendanceEvent(Base):
    """Raw punch log. Rows are inserted once and never updated or deleted."""
    __tablename__ = "attendance_events"
    __table_args__ = (
        UniqueConstraint("employee_id", "timestamp", name="uq_attendance_events_employee_ts"),
    )

    id = Column(Integer, primary_key=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)             # ENTRY / LUNCH_START / LUNCH_END / EXIT
    timestamp = Column(DateTime, nullable=False, index=True)  # UTC, exact capture time
    timestamp_raw = Column(String, nullable=False)          # ISO string as hashed
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    hash = Column(String(64), nullable=False)

# ---------- WorkingDay ----------
class WorkingDay(Base):
    """Per-day aggregate. A derived cache, always re-computable from attendance_events."""
    __tablename__ = "working_days"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_working_days_employee_date"),
    )

    id = Column(Integer, primary_key=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    actual_entry_time = Column(DateTime, nullable=True)
    actual_exit_time = Column(DateTime, nullable=True)
    lunch_minutes = Column(Integer, nullable=False, default=0)
    ordinary_minutes = Column(Integer, nullable=False, default=0)
    overtime_minutes = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="PRESENT")  # PRESENT / ABSENT / LICENSE / VACATION
    observations = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
