"""
SQLAlchemy implementations of the stores the attendance engine talks to.

The event store only ever inserts and reads; there is deliberately no update or
delete for attendance events.
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from jornada.core.accounting import DaySummary
from jornada.core.errors import DuplicateEvent, EmployeeNotFound, StorageUnavailable
from jornada.core.types import EventType, Punch
from jornada.db.models import AttendanceEvent, Employee, WorkingDay
from jornada.utils.timeutils import as_utc, to_db

logger = logging.getLogger(__name__)


def to_punch(row: AttendanceEvent) -> Punch:
    return Punch(
        id=row.id,
        employee_id=row.employee_id,
        event_type=EventType.parse(row.event_type),
        timestamp=as_utc(row.timestamp),
        lat=row.lat,
        lng=row.lng,
        hash=row.hash,
    )


class EmployeeDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get(self, employee_id, include_inactive: bool = False) -> Employee:
        try:
            emp = self.db.get(Employee, employee_id)
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Could not load employee {employee_id}: {e}", employee_id) from e
        if emp is None:
            raise EmployeeNotFound(employee_id)
        if not emp.active and not include_inactive:
            raise EmployeeNotFound(employee_id, inactive=True)
        return emp

    def active(self) -> list[Employee]:
        return (
            self.db.query(Employee)
            .filter(Employee.active.is_(True))
            .order_by(Employee.full_name.asc())
            .all()
        )


class EventStore:
    def __init__(self, db: Session):
        self.db = db

    def append(self, employee_id: int, event_type: EventType, timestamp: datetime,
               timestamp_raw: str, event_hash: str,
               lat: Optional[float] = None, lng: Optional[float] = None) -> AttendanceEvent:
        row = AttendanceEvent(
            employee_id=employee_id,
            event_type=EventType.parse(event_type).value,
            timestamp=to_db(timestamp),
            timestamp_raw=timestamp_raw,
            lat=lat,
            lng=lng,
            hash=event_hash,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateEvent(employee_id, timestamp_raw) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(
                f"Could not store mark of employee {employee_id}: {e}", employee_id
            ) from e
        self.db.refresh(row)
        return row

    def get(self, event_id: int) -> Optional[AttendanceEvent]:
        return self.db.get(AttendanceEvent, event_id)

    def query_by_employee(self, employee_id: int, since: Optional[datetime] = None,
                          until: Optional[datetime] = None, limit: Optional[int] = None,
                          descending: bool = False) -> list[Punch]:
        """Punches of one employee in [since, until), ordered by timestamp."""
        q = self.db.query(AttendanceEvent).filter(AttendanceEvent.employee_id == employee_id)
        if since is not None:
            q = q.filter(AttendanceEvent.timestamp >= to_db(since))
        if until is not None:
            q = q.filter(AttendanceEvent.timestamp < to_db(until))
        if descending:
            q = q.order_by(AttendanceEvent.timestamp.desc(), AttendanceEvent.id.desc())
        else:
            q = q.order_by(AttendanceEvent.timestamp.asc(), AttendanceEvent.id.asc())
        if limit is not None:
            q = q.limit(limit)
        try:
            rows = q.all()
        except SQLAlchemyError as e:
            raise StorageUnavailable(
                f"Could not read marks of employee {employee_id}: {e}", employee_id
            ) from e
        return [to_punch(r) for r in rows]

    def last_entry_before(self, employee_id: int, boundary: datetime) -> Optional[Punch]:
        # Entries are stored with their internal code; labels only appear on the way out.
        try:
            row = (
                self.db.query(AttendanceEvent)
                .filter(
                    AttendanceEvent.employee_id == employee_id,
                    AttendanceEvent.event_type == EventType.ENTRY.value,
                    AttendanceEvent.timestamp <= to_db(boundary),
                )
                .order_by(AttendanceEvent.timestamp.desc(), AttendanceEvent.id.desc())
                .first()
            )
        except SQLAlchemyError as e:
            raise StorageUnavailable(
                f"Could not read marks of employee {employee_id}: {e}", employee_id
            ) from e
        return to_punch(row) if row else None


class AggregateWriter:
    def __init__(self, db: Session):
        self.db = db

    def upsert(self, day: DaySummary) -> WorkingDay:
        values = {
            "actual_entry_time": to_db(day.actual_entry_time) if day.actual_entry_time else None,
            "actual_exit_time": to_db(day.actual_exit_time) if day.actual_exit_time else None,
            "lunch_minutes": day.lunch_minutes,
            "ordinary_minutes": day.ordinary_minutes,
            "overtime_minutes": day.overtime_minutes,
            "status": day.status.value,
            "observations": "\n".join(day.observations) or None,
        }
        try:
            row = (
                self.db.query(WorkingDay)
                .filter(WorkingDay.employee_id == day.employee_id, WorkingDay.date == day.date)
                .first()
            )
            if row is None:
                row = WorkingDay(employee_id=day.employee_id, date=day.date, **values)
                self.db.add(row)
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(
                f"Could not write working day {day.date} of employee {day.employee_id}: {e}",
                day.employee_id,
            ) from e
        self.db.refresh(row)
        return row

    def working_days(self, start: date, end: date, employee_id: Optional[int] = None) -> list[WorkingDay]:
        """Rows with start <= date <= end."""
        q = self.db.query(WorkingDay).filter(WorkingDay.date >= start, WorkingDay.date <= end)
        if employee_id is not None:
            q = q.filter(WorkingDay.employee_id == employee_id)
        return q.order_by(WorkingDay.date.asc(), WorkingDay.employee_id.asc()).all()
