from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from jornada.config import settings


def parse_hhmm(s: str) -> time:
    hh, mm = s.split(":")[:2]
    return time(int(hh), int(mm))


def compute_lateness(now: datetime, start_hhmm: str, grace_min: int) -> int:
    start = parse_hhmm(start_hhmm)
    limit = datetime.combine(now.date(), start) + timedelta(minutes=grace_min)
    return max(0, int((now - limit).total_seconds() // 60))


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.local_timezone)


def parse_iso(s: str) -> datetime:
    """Parse an ISO-8601 instant. A trailing 'Z' is accepted; naive values are taken as UTC."""
    text = s.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db(dt: datetime) -> datetime:
    """Naive UTC, the form stored in DateTime columns."""
    return as_utc(dt).replace(tzinfo=None)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    # Same shape as a browser's Date.toISOString(): millisecond precision, 'Z' suffix
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def local_date(dt: datetime, tz: Optional[ZoneInfo] = None) -> date:
    return as_utc(dt).astimezone(tz or local_zone()).date()


def local_day_bounds(d: date, tz: Optional[ZoneInfo] = None) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day, as UTC instants."""
    zone = tz or local_zone()
    start = datetime.combine(d, time.min, tzinfo=zone)
    end = datetime.combine(d + timedelta(days=1), time.min, tzinfo=zone)
    return as_utc(start), as_utc(end)


def whole_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, floored and clamped at zero."""
    return max(0, int((end - start).total_seconds() // 60))


def parse_date(s: Optional[str]) -> Optional[date]:
    """Accept YYYY-MM-DD (preferred), DD-MM-YYYY or DD/MM/YYYY."""
    if not s:
        return None
    for fmt in ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(s.strip(), fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognised date '{s}', expected YYYY-MM-DD")
