import hashlib
import hmac
from typing import Optional


def _coord(value: Optional[float]) -> str:
    # Missing and zero coordinates both hash as "0"
    if value is None or value == 0:
        return "0"
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def event_hash(rut: str, timestamp_iso: str, lat: Optional[float] = None, lng: Optional[float] = None) -> str:
    """SHA-256 hex digest of ``rut|timestamp|lat|lng``."""
    data = f"{rut}|{timestamp_iso}|{_coord(lat)}|{_coord(lng)}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def verify_event(event, rut: str) -> bool:
    """Recompute the digest of a stored event and compare it with the stored one."""
    expected = event_hash(rut, event.timestamp_raw, event.lat, event.lng)
    return hmac.compare_digest(expected, event.hash or "")
