"""
Time accounting for reconstructed sessions.

``account`` and ``summarize_day`` only look at recorded punches and are what gets
persisted. ``project_live`` estimates an unfinished session against "now" for
dashboards and is never written to working_days.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from jornada.config import settings
from jornada.core.sessions import WorkSession
from jornada.core.types import DayStatus
from jornada.utils.timeutils import whole_minutes

# Chilean weekly hours are spread over five working days.
WORKING_DAYS_PER_WEEK = 5


@dataclass(frozen=True)
class AccountedMinutes:
    lunch_minutes: int
    total_minutes: int
    ordinary_minutes: int
    overtime_minutes: int
    target_minutes: Optional[int] = None


@dataclass
class DaySummary:
    employee_id: int
    date: date
    actual_entry_time: Optional[datetime]
    actual_exit_time: Optional[datetime]
    lunch_minutes: int
    ordinary_minutes: int
    overtime_minutes: int
    status: DayStatus = DayStatus.PRESENT
    observations: list = field(default_factory=list)


def daily_target_minutes(weekly_hours_agreed: Optional[int]) -> Optional[int]:
    if not weekly_hours_agreed:
        return None
    return weekly_hours_agreed * 60 // WORKING_DAYS_PER_WEEK


def split_ordinary(total_minutes: int, cap: Optional[int] = None) -> tuple[int, int]:
    limit = settings.daily_ordinary_cap_minutes if cap is None else cap
    total = max(0, total_minutes)
    ordinary = min(total, limit)
    return ordinary, max(0, total - ordinary)


def lunch_minutes(session: WorkSession) -> int:
    # A lunch start without an end is not estimated
    if session.lunch_start is None or session.lunch_end is None:
        return 0
    return whole_minutes(session.lunch_start.timestamp, session.lunch_end.timestamp)


def worked_minutes(session: WorkSession) -> int:
    if session.entry is None or session.exit is None:
        return 0
    span = whole_minutes(session.entry.timestamp, session.exit.timestamp)
    return max(0, span - lunch_minutes(session))


def account(session: WorkSession, weekly_hours_agreed: Optional[int] = None, cap: Optional[int] = None) -> AccountedMinutes:
    lunch = lunch_minutes(session)
    total = worked_minutes(session)
    ordinary, overtime = split_ordinary(total, cap)
    return AccountedMinutes(
        lunch_minutes=lunch,
        total_minutes=total,
        ordinary_minutes=ordinary,
        overtime_minutes=overtime,
        target_minutes=daily_target_minutes(weekly_hours_agreed),
    )


def _observations(sessions: Sequence[WorkSession]) -> list[str]:
    notes = []
    for s in sessions:
        start = s.reference.timestamp
        if s.entry is None:
            notes.append(f"session from {start.isoformat()} has no entry mark")
        if s.exit is None:
            notes.append(f"session from {start.isoformat()} has no exit mark")
        if s.lunch_start is not None and s.lunch_end is None:
            notes.append(f"session from {start.isoformat()} has lunch start without lunch end")
        for p in s.dropped:
            notes.append(f"duplicate {p.event_type.value} mark at {p.timestamp.isoformat()} ignored")
    return notes


def summarize_day(sessions: Sequence[WorkSession], cap: Optional[int] = None) -> DaySummary:
    """Fold every session anchored on one date into the working_days row for that date.

    Minutes are summed across sessions and the daily cap is applied once to the sum.
    """
    if not sessions:
        raise ValueError("summarize_day needs at least one session")
    first = sessions[0]
    entries = [s.entry.timestamp for s in sessions if s.entry is not None]
    exits = [s.exit.timestamp for s in sessions if s.exit is not None]
    lunch = sum(lunch_minutes(s) for s in sessions)
    total = sum(worked_minutes(s) for s in sessions)
    ordinary, overtime = split_ordinary(total, cap)
    return DaySummary(
        employee_id=first.employee_id,
        date=first.date,
        actual_entry_time=min(entries) if entries else None,
        actual_exit_time=max(exits) if exits else None,
        lunch_minutes=lunch,
        ordinary_minutes=ordinary,
        overtime_minutes=overtime,
        observations=_observations(sessions),
    )


# ---- live (read-only) projection ----

ACTIVE = "ACTIVE"
ON_LUNCH = "ON_LUNCH"
FINISHED = "FINISHED"


@dataclass(frozen=True)
class LiveProjection:
    state: str
    lunch_minutes: int
    worked_minutes: int
    ordinary_minutes: int
    overtime_minutes: int
    provisional: bool


def project_live(session: WorkSession, now: datetime, weekly_hours_agreed: Optional[int] = None,
                 cap: Optional[int] = None) -> LiveProjection:
    if session.exit is not None:
        acc = account(session, weekly_hours_agreed, cap)
        return LiveProjection(FINISHED, acc.lunch_minutes, acc.total_minutes,
                              acc.ordinary_minutes, acc.overtime_minutes, provisional=False)

    state = ACTIVE
    if session.lunch_start is not None and session.lunch_end is None:
        lunch = whole_minutes(session.lunch_start.timestamp, now)
        state = ON_LUNCH
    else:
        lunch = lunch_minutes(session)

    worked = 0
    if session.entry is not None:
        worked = max(0, whole_minutes(session.entry.timestamp, now) - lunch)
    ordinary, overtime = split_ordinary(worked, cap)
    return LiveProjection(state, lunch, worked, ordinary, overtime, provisional=True)


# ---- weekly consolidation ----

def consolidate(working_days: Iterable) -> dict:
    """Sum already-capped daily values over a range.

    Simplification: weekly overtime is the plain sum of daily overtime, it is not
    recomputed against the weekly agreed hours and nothing carries across days.
    """
    totals = {"ordinary": 0, "overtime": 0}
    for day in working_days:
        totals["ordinary"] += day.ordinary_minutes or 0
        totals["overtime"] += day.overtime_minutes or 0
    return totals
