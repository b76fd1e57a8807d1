"""
Session reconstruction: partition one employee's punch history into work sessions.

A single forward pass over the history, oldest first. A session opens on every
ENTRY, when nothing is open, or when the open session has gone stale (the new
punch is more than ``stale_hours`` after the session's entry, or after its first
punch when the entry is missing). Each punch fills its slot in the open session;
a slot already filled keeps the first punch and the later one is recorded as
dropped.

Because every ENTRY is a boundary, reconstructing from any ENTRY onwards yields
the same sessions as reconstructing the full history.
"""
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Iterable, Optional

from jornada.config import settings
from jornada.core.types import EventType, Punch
from jornada.utils.timeutils import local_date

_SLOTS = {
    EventType.ENTRY: "entry",
    EventType.LUNCH_START: "lunch_start",
    EventType.LUNCH_END: "lunch_end",
    EventType.EXIT: "exit",
}


@dataclass
class WorkSession:
    employee_id: int
    date: date
    entry: Optional[Punch] = None
    lunch_start: Optional[Punch] = None
    lunch_end: Optional[Punch] = None
    exit: Optional[Punch] = None
    dropped: list = field(default_factory=list)

    @property
    def punches(self) -> list[Punch]:
        return [p for p in (self.entry, self.lunch_start, self.lunch_end, self.exit) if p is not None]

    @property
    def reference(self) -> Punch:
        """The punch staleness is measured from."""
        if self.entry is not None:
            return self.entry
        return min(self.punches, key=lambda p: p.timestamp)

    @property
    def is_open(self) -> bool:
        return self.exit is None

    @property
    def is_complete(self) -> bool:
        return self.entry is not None and self.exit is not None

    def contains(self, event_id) -> bool:
        return any(p.id == event_id for p in self.punches + self.dropped)

    def place(self, punch: Punch) -> None:
        slot = _SLOTS[punch.event_type]
        if getattr(self, slot) is None:
            setattr(self, slot, punch)
        else:
            self.dropped.append(punch)


def reconstruct(events: Iterable[Punch], stale_hours: Optional[int] = None, tz=None) -> list[WorkSession]:
    hours = settings.stale_session_hours if stale_hours is None else stale_hours
    stale_after = timedelta(hours=hours)
    ordered = sorted(events, key=lambda p: (p.timestamp, p.id if p.id is not None else 0))

    sessions: list[WorkSession] = []
    current: Optional[WorkSession] = None
    for punch in ordered:
        event_type = EventType.parse(punch.event_type)
        if event_type is not punch.event_type:
            punch = replace(punch, event_type=event_type)

        if (
            current is None
            or event_type is EventType.ENTRY
            or punch.timestamp - current.reference.timestamp > stale_after
        ):
            current = WorkSession(employee_id=punch.employee_id, date=local_date(punch.timestamp, tz))
            sessions.append(current)
        current.place(punch)
    return sessions


def sessions_by_date(sessions: Iterable[WorkSession]) -> dict:
    grouped: dict = {}
    for s in sessions:
        grouped.setdefault(s.date, []).append(s)
    return grouped
