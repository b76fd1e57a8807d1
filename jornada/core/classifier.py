"""
Event classification: which point of the daily cycle a new scan represents.

Two policies exist and they are mutually exclusive; one is picked by configuration:

* ``rotation``: look only at the last mark. Within the rotation window the type
  rotates ENTRY -> LUNCH_START -> LUNCH_END -> EXIT -> ENTRY; past the window
  (or with no history) the scan is a new ENTRY. Never rejects a scan.
* ``daily_cap``: look at the marks already taken on the local calendar day; the
  n-th mark gets the n-th type of the cycle and a mark past the cap is rejected.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from jornada.config import settings
from jornada.core.errors import DayAlreadyComplete
from jornada.core.types import CYCLE, EventType, Punch
from jornada.utils.timeutils import local_date, local_day_bounds

logger = logging.getLogger(__name__)

_NEXT = {t: CYCLE[(i + 1) % len(CYCLE)] for i, t in enumerate(CYCLE)}


def next_in_rotation(event_type: EventType) -> EventType:
    return _NEXT[event_type]


class ClassificationPolicy:
    name = ""

    def load_history(self, store, employee_id: int, when: datetime) -> list[Punch]:
        """Fetch the slice of history this policy classifies against."""
        raise NotImplementedError

    def classify(self, history: Sequence[Punch], when: datetime, employee_id: Optional[int] = None) -> EventType:
        raise NotImplementedError


class RotationPolicy(ClassificationPolicy):
    name = "rotation"

    def __init__(self, window_hours: Optional[int] = None):
        hours = settings.rotation_window_hours if window_hours is None else window_hours
        self.window = timedelta(hours=hours)

    def load_history(self, store, employee_id, when):
        return store.query_by_employee(employee_id, limit=1, descending=True)

    def classify(self, history, when, employee_id=None):
        if not history:
            return EventType.ENTRY
        last = max(history, key=lambda p: p.timestamp)
        if when - last.timestamp >= self.window:
            # forgotten EXIT does not block a new day
            return EventType.ENTRY
        return next_in_rotation(last.event_type)


class DailyCapPolicy(ClassificationPolicy):
    name = "daily_cap"

    def __init__(self, max_punches: Optional[int] = None, tz=None):
        self.max_punches = settings.max_daily_punches if max_punches is None else max_punches
        # None: the configured LOCAL_TIMEZONE
        self.tz = tz

    def load_history(self, store, employee_id, when):
        start, end = local_day_bounds(local_date(when, self.tz), self.tz)
        return store.query_by_employee(employee_id, since=start, until=end)

    def classify(self, history, when, employee_id=None):
        day = local_date(when, self.tz)
        marks = sum(1 for p in history if local_date(p.timestamp, self.tz) == day)
        if marks >= self.max_punches:
            raise DayAlreadyComplete(employee_id, marks, day)
        return CYCLE[marks % len(CYCLE)]


_POLICIES = {
    RotationPolicy.name: RotationPolicy,
    DailyCapPolicy.name: DailyCapPolicy,
}


def get_policy(name: Optional[str] = None) -> ClassificationPolicy:
    key = (name or settings.classification_policy).strip().lower()
    try:
        policy = _POLICIES[key]()
    except KeyError:
        raise ValueError(
            f"unknown classification policy '{key}', expected one of {sorted(_POLICIES)}"
        ) from None
    logger.debug("classification policy: %s", policy.name)
    return policy
