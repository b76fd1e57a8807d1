"""
Alert detection. These checks only say *what* should be flagged; delivering the
alert (e-mail, push, kiosk voice) is somebody else's job.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from jornada.config import settings
from jornada.core.sessions import WorkSession
from jornada.utils.timeutils import as_utc, compute_lateness, local_zone, whole_minutes

EXCESSIVE_HOURS = "EXCESSIVE_HOURS"
MISSED_ENTRY = "MISSED_ENTRY"


@dataclass(frozen=True)
class Alert:
    kind: str
    employee_id: int
    message: str
    minutes: int = 0


def excessive_hours(sessions: Iterable[WorkSession], now: datetime,
                    threshold_minutes: Optional[int] = None) -> list[Alert]:
    """
    The latest session of each employee, when it is open (entry, no exit) and has
    run longer than the threshold. A session followed by a newer one is closed by
    that newer ENTRY as far as alerting goes.
    """
    limit = settings.excessive_hours_minutes if threshold_minutes is None else threshold_minutes
    latest = {}
    for s in sorted(sessions, key=lambda s: s.reference.timestamp):
        latest[s.employee_id] = s
    alerts = []
    for s in latest.values():
        if s.entry is None or s.exit is not None:
            continue
        elapsed = whole_minutes(s.entry.timestamp, now)
        if elapsed > limit:
            alerts.append(Alert(
                EXCESSIVE_HOURS, s.employee_id,
                f"Employee {s.employee_id} has been clocked in for {elapsed // 60}h{elapsed % 60:02d} "
                f"since {s.entry.timestamp.isoformat()} without an exit mark",
                elapsed,
            ))
    return alerts


def missed_entry(employee, sessions: Iterable[WorkSession], now: datetime,
                 grace_minutes: Optional[int] = None) -> Optional[Alert]:
    """Shift start plus grace has passed (local time) and nothing is anchored today."""
    if not employee.shift_start:
        return None
    grace = settings.missed_entry_grace_minutes if grace_minutes is None else grace_minutes
    local_now = as_utc(now).astimezone(local_zone()).replace(tzinfo=None)
    late = compute_lateness(local_now, employee.shift_start, grace)
    if late <= 0:
        return None
    today = local_now.date()
    if any(s.date == today for s in sessions):
        return None
    return Alert(
        MISSED_ENTRY, employee.id,
        f"Employee {employee.id} has no entry mark today; shift started at {employee.shift_start}",
        late,
    )


def should_suppress_notification(employee, last_exit: Optional[datetime], now: datetime,
                                  disconnect_hours: Optional[int] = None) -> bool:
    """Right to disconnect: teleworkers are left alone for a while after their last exit."""
    if not employee.is_telework or last_exit is None:
        return False
    hours = settings.disconnect_hours if disconnect_hours is None else disconnect_hours
    return as_utc(now) - as_utc(last_exit) < timedelta(hours=hours)
