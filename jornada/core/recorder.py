"""
Scan pipeline and working-day recomputation.

record_scan: employee lookup -> classify -> hash -> append -> recompute the day.
Once the event is appended it is never rolled back; if the working_days row cannot
be written the scan still succeeds and reports ``aggregate_synced=False``.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from jornada.config import settings
from jornada.core.accounting import summarize_day
from jornada.core.classifier import ClassificationPolicy, get_policy
from jornada.core.errors import AggregateWriteFailed, HistoryQueryFailed, StorageUnavailable
from jornada.core.integrity import event_hash
from jornada.core.sessions import WorkSession, reconstruct, sessions_by_date
from jornada.core.types import EventType
from jornada.db.models import AttendanceEvent, Employee, WorkingDay
from jornada.db.store import AggregateWriter, EmployeeDirectory, EventStore
from jornada.utils.timeutils import as_utc, iso_now, local_date, local_day_bounds, parse_iso

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    event: AttendanceEvent
    employee: Employee
    event_type: EventType
    session_date: Optional[date]
    aggregate_synced: bool


class AttendanceRecorder:
    def __init__(self, db: Session, policy: Optional[ClassificationPolicy] = None,
                 retries: Optional[int] = None):
        self.db = db
        self.policy = policy or get_policy()
        self.retries = max(1, settings.aggregate_write_retries if retries is None else retries)
        self.directory = EmployeeDirectory(db)
        self.events = EventStore(db)
        self.aggregates = AggregateWriter(db)

    # ---- classification ----
    def classify(self, employee_id: int, when: datetime) -> EventType:
        try:
            history = self.policy.load_history(self.events, employee_id, when)
        except StorageUnavailable as e:
            # fail closed: never guess the previous mark
            raise HistoryQueryFailed(employee_id, e.reason) from e
        return self.policy.classify(history, when, employee_id)

    # ---- scan ----
    def record_scan(self, employee_id: int, timestamp: Optional[str] = None,
                    lat: Optional[float] = None, lng: Optional[float] = None) -> ScanResult:
        emp = self.directory.get(employee_id)
        raw = timestamp or iso_now()
        when = parse_iso(raw)

        event_type = self.classify(emp.id, when)
        digest = event_hash(emp.rut, raw, lat, lng)
        event = self.events.append(emp.id, event_type, when, raw, digest, lat=lat, lng=lng)
        logger.info("Mark %s stored for employee %s at %s (event %s)",
                    event_type.value, emp.id, raw, event.id)

        session_date = None
        synced = True
        try:
            session_date = self.recalculate_for_event(emp.id, event.id, when)
        except (AggregateWriteFailed, StorageUnavailable) as e:
            # the mark is stored; a later recompute reconciles the day
            synced = False
            logger.error("%s", e.reason)
        return ScanResult(event, emp, event_type, session_date, synced)

    # ---- recomputation ----
    def _window_events(self, employee_id: int, start: datetime, end: datetime):
        """Events from the last ENTRY at or before ``start`` up to ``end``."""
        stale = timedelta(hours=settings.stale_session_hours)
        try:
            anchor = self.events.last_entry_before(employee_id, start - stale)
            since = anchor.timestamp if anchor else None
            return self.events.query_by_employee(employee_id, since=since, until=end + stale)
        except StorageUnavailable as e:
            raise HistoryQueryFailed(employee_id, e.reason) from e

    def sessions_for_day(self, employee_id: int, day: date) -> list[WorkSession]:
        start, end = local_day_bounds(day)
        sessions = reconstruct(self._window_events(employee_id, start, end))
        return [s for s in sessions if s.date == day]

    def recent_sessions(self, employee_id: int, now: datetime) -> list[WorkSession]:
        """Sessions touching the last stale window before ``now``, boundaries as in full history."""
        return reconstruct(self._window_events(employee_id, now, now))

    def current_session(self, employee_id: int, now: datetime) -> Optional[WorkSession]:
        """
        The session an employee is in at ``now``: the latest one while it is still
        open and not stale (a night shift started yesterday counts), or the latest
        one anchored on today's local date once it is closed.
        """
        sessions = self.recent_sessions(employee_id, now)
        if not sessions:
            return None
        last = sessions[-1]
        if last.is_open:
            if as_utc(now) - last.reference.timestamp <= timedelta(hours=settings.stale_session_hours):
                return last
            return None
        return last if last.date == local_date(now) else None

    def recalculate_for_event(self, employee_id: int, event_id: int, when: datetime) -> Optional[date]:
        sessions = reconstruct(self._window_events(employee_id, when, when))
        for s in sessions:
            if s.contains(event_id):
                self.recalculate_day(employee_id, s.date)
                return s.date
        return None

    def recalculate_day(self, employee_id: int, day: date) -> Optional[WorkingDay]:
        sessions = self.sessions_for_day(employee_id, day)
        if not sessions:
            return None
        return self._write(summarize_day(sessions))

    def recalculate_employee(self, employee_id: int) -> list[WorkingDay]:
        """Rebuild every working day of an employee from the full event history."""
        emp = self.directory.get(employee_id, include_inactive=True)
        try:
            history = self.events.query_by_employee(emp.id)
        except StorageUnavailable as e:
            raise HistoryQueryFailed(emp.id, e.reason) from e
        rows = []
        for day, sessions in sorted(sessions_by_date(reconstruct(history)).items()):
            rows.append(self._write(summarize_day(sessions)))
        logger.info("Recalculated %d working days for employee %s", len(rows), emp.id)
        return rows

    def _write(self, summary) -> WorkingDay:
        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                return self.aggregates.upsert(summary)
            except StorageUnavailable as e:
                last_error = e
                logger.warning("Working day %s of employee %s not written (attempt %d/%d): %s",
                               summary.date, summary.employee_id, attempt, self.retries, e.reason)
        raise AggregateWriteFailed(summary.employee_id, summary.date, self.retries,
                                   last_error.reason if last_error else "")
