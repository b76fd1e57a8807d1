"""
Value types shared by the classifier, the session reconstructor and the accountant.
"""
import enum
import unicodedata
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class EventType(str, enum.Enum):
    ENTRY = "ENTRY"
    LUNCH_START = "LUNCH_START"
    LUNCH_END = "LUNCH_END"
    EXIT = "EXIT"

    @property
    def label(self) -> str:
        """Spanish display label, as printed on kiosks and reports."""
        return _LABELS[self]

    @classmethod
    def parse(cls, value) -> "EventType":
        """Accept internal codes and Spanish display labels, case and accents ignored."""
        if isinstance(value, cls):
            return value
        key = _fold(str(value))
        try:
            return _SYNONYMS[key]
        except KeyError:
            raise ValueError(f"unknown event type '{value}'") from None


# Daily cycle order; also the rotation sequence.
CYCLE = (EventType.ENTRY, EventType.LUNCH_START, EventType.LUNCH_END, EventType.EXIT)

_LABELS = {
    EventType.ENTRY: "ENTRADA",
    EventType.LUNCH_START: "INICIO COLACIÓN",
    EventType.LUNCH_END: "TÉRMINO COLACIÓN",
    EventType.EXIT: "SALIDA",
}


def _fold(text: str) -> str:
    stripped = "".join(
        c for c in unicodedata.normalize("NFKD", text) if not unicodedata.combining(c)
    )
    return " ".join(stripped.replace("_", " ").upper().split())


_SYNONYMS = {}
for _t in EventType:
    _SYNONYMS[_fold(_t.value)] = _t
    _SYNONYMS[_fold(_LABELS[_t])] = _t


class DayStatus(str, enum.Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LICENSE = "LICENSE"
    VACATION = "VACATION"


@dataclass(frozen=True)
class Punch:
    """Read-only view of one stored attendance event."""
    id: Optional[int]
    employee_id: int
    event_type: EventType
    timestamp: datetime          # timezone-aware
    lat: Optional[float] = None
    lng: Optional[float] = None
    hash: Optional[str] = None
