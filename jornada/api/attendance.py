from fastapi import APIRouter, Form, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from datetime import date, timedelta
from typing import Optional
import logging

from jornada.core import alerts
from jornada.core.accounting import consolidate, project_live
from jornada.core.errors import (
    AggregateWriteFailed, AttendanceError, DayAlreadyComplete, DuplicateEvent,
    EmployeeNotFound, StorageUnavailable,
)
from jornada.core.integrity import verify_event
from jornada.core.recorder import AttendanceRecorder
from jornada.core.types import EventType
from jornada.db.base import get_db
from jornada.db.models import Employee
from jornada.utils.timeutils import as_utc, parse_date, parse_iso, utc_now

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)

_STATUS_CODES = (
    (EmployeeNotFound, 404),
    (DuplicateEvent, 409),
    (DayAlreadyComplete, 409),
    (StorageUnavailable, 503),
    (AggregateWriteFailed, 503),
)


def _http_error(e: AttendanceError) -> HTTPException:
    for cls, code in _STATUS_CODES:
        if isinstance(e, cls):
            return HTTPException(status_code=code, detail=e.reason)
    return HTTPException(status_code=500, detail=e.reason)


def _date_or_422(s: Optional[str], name: str) -> Optional[date]:
    try:
        return parse_date(s)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"{name}: {e}")


def _fmt(dt) -> Optional[str]:
    return as_utc(dt).isoformat() if dt else None


def get_recorder(db: Session = Depends(get_db)) -> AttendanceRecorder:
    return AttendanceRecorder(db)


@router.post("/scan")
def scan(
    employee_id: int = Form(...),
    timestamp: Optional[str] = Form(None),   # ISO-8601; server time when omitted
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    recorder: AttendanceRecorder = Depends(get_recorder),
):
    """
    Record one scan. The event type is decided by the configured classification
    policy; the working day is recomputed afterwards.
    """
    if timestamp:
        try:
            parse_iso(timestamp)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"timestamp '{timestamp}' is not ISO-8601")
    try:
        result = recorder.record_scan(employee_id, timestamp, lat, lng)
    except AttendanceError as e:
        logger.warning("Scan rejected: %s", e.reason)
        raise _http_error(e)

    ev = result.event
    return {
        "ok": True,
        "employee_id": result.employee.id,
        "event_id": ev.id,
        "event_type": result.event_type.value,
        "event_label": result.event_type.label,
        "timestamp": ev.timestamp_raw,
        "hash": ev.hash,
        "session_date": result.session_date.isoformat() if result.session_date else None,
        "aggregate_synced": result.aggregate_synced,
        "message": f"{result.event_type.label} registered for {result.employee.full_name}",
    }


@router.get("/status/{employee_id}")
def next_event(employee_id: int, recorder: AttendanceRecorder = Depends(get_recorder)):
    """What the next scan of this employee would be recorded as. Nothing is written."""
    now = utc_now()
    try:
        emp = recorder.directory.get(employee_id)
        upcoming = recorder.classify(emp.id, now)
    except DayAlreadyComplete as e:
        return {"ok": True, "employee_id": employee_id, "next_event": None,
                "next_label": "JORNADA COMPLETA", "is_complete": True, "marks": e.marks}
    except AttendanceError as e:
        raise _http_error(e)
    return {
        "ok": True,
        "employee_id": emp.id,
        "name": emp.full_name,
        "next_event": upcoming.value,
        "next_label": upcoming.label,
        "is_complete": False,
        "policy": recorder.policy.name,
    }


@router.get("/reports")
def reports(
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD"),
    employee_id: Optional[int] = Query(None),
    recorder: AttendanceRecorder = Depends(get_recorder),
):
    start_d = _date_or_422(start, "start")
    end_d = _date_or_422(end, "end")
    rows = recorder.aggregates.working_days(start_d, end_d, employee_id)
    people = {
        e.id: e
        for e in recorder.db.query(Employee).filter(Employee.id.in_({r.employee_id for r in rows})).all()
    } if rows else {}
    return [
        {
            "employee_id": r.employee_id,
            "full_name": people[r.employee_id].full_name if r.employee_id in people else None,
            "rut": people[r.employee_id].rut if r.employee_id in people else None,
            "date": r.date.isoformat(),
            "actual_entry_time": _fmt(r.actual_entry_time),
            "actual_exit_time": _fmt(r.actual_exit_time),
            "lunch_minutes": r.lunch_minutes,
            "ordinary_minutes": r.ordinary_minutes,
            "overtime_minutes": r.overtime_minutes,
            "status": r.status,
            "observations": r.observations,
        }
        for r in rows
    ]


@router.get("/weekly")
def weekly(
    employee_id: int = Query(...),
    start: str = Query(..., description="YYYY-MM-DD"),
    end: Optional[str] = Query(None, description="defaults to start + 6 days"),
    recorder: AttendanceRecorder = Depends(get_recorder),
):
    start_d = _date_or_422(start, "start")
    end_d = _date_or_422(end, "end") or start_d + timedelta(days=6)
    try:
        emp = recorder.directory.get(employee_id, include_inactive=True)
    except AttendanceError as e:
        raise _http_error(e)
    totals = consolidate(recorder.aggregates.working_days(start_d, end_d, emp.id))
    return {
        "ok": True,
        "employee_id": emp.id,
        "start": start_d.isoformat(),
        "end": end_d.isoformat(),
        "ordinary_minutes": totals["ordinary"],
        "overtime_minutes": totals["overtime"],
        "agreed_minutes": emp.weekly_hours_agreed * 60,
    }


@router.get("/live")
def live(recorder: AttendanceRecorder = Depends(get_recorder)):
    """
    Provisional minutes for each employee's current session, using "now" as the exit
    of an open one. Read-only: these numbers are never stored.
    """
    now = utc_now()
    out = []
    for emp in recorder.directory.active():
        try:
            current = recorder.current_session(emp.id, now)
        except AttendanceError as e:
            raise _http_error(e)
        if current is None:
            out.append({"employee_id": emp.id, "full_name": emp.full_name, "rut": emp.rut, "state": "INACTIVE"})
            continue
        p = project_live(current, now, emp.weekly_hours_agreed)
        out.append({
            "employee_id": emp.id,
            "full_name": emp.full_name,
            "rut": emp.rut,
            "state": p.state,
            "entry_time": _fmt(current.entry.timestamp) if current.entry else None,
            "exit_time": _fmt(current.exit.timestamp) if current.exit else None,
            "lunch_minutes": p.lunch_minutes,
            "worked_minutes": p.worked_minutes,
            "ordinary_minutes": p.ordinary_minutes,
            "overtime_minutes": p.overtime_minutes,
            "provisional": p.provisional,
        })
    return out


@router.get("/alerts")
def pending_alerts(recorder: AttendanceRecorder = Depends(get_recorder)):
    now = utc_now()
    found = []
    for emp in recorder.directory.active():
        try:
            sessions = recorder.recent_sessions(emp.id, now)
        except AttendanceError as e:
            raise _http_error(e)
        exits = [s.exit.timestamp for s in sessions if s.exit is not None]
        if alerts.should_suppress_notification(emp, max(exits) if exits else None, now):
            continue
        found.extend(alerts.excessive_hours(sessions, now))
        missed = alerts.missed_entry(emp, sessions, now)
        if missed:
            found.append(missed)
    return [
        {"kind": a.kind, "employee_id": a.employee_id, "message": a.message, "minutes": a.minutes}
        for a in found
    ]


@router.get("/events/{event_id}/verify")
def verify(event_id: int, recorder: AttendanceRecorder = Depends(get_recorder)):
    ev = recorder.events.get(event_id)
    if not ev:
        raise HTTPException(status_code=404, detail=f"Event {event_id} not found")
    emp = recorder.directory.get(ev.employee_id, include_inactive=True)
    return {
        "ok": True,
        "event_id": ev.id,
        "employee_id": ev.employee_id,
        "event_type": ev.event_type,
        "event_label": EventType.parse(ev.event_type).label,
        "hash": ev.hash,
        "valid": verify_event(ev, emp.rut),
    }


@router.post("/recalculate/{employee_id}")
def recalculate(employee_id: int, recorder: AttendanceRecorder = Depends(get_recorder)):
    """Rebuild every working day of one employee from the raw event log."""
    try:
        rows = recorder.recalculate_employee(employee_id)
    except AttendanceError as e:
        raise _http_error(e)
    return {"ok": True, "employee_id": employee_id, "days": [r.date.isoformat() for r in rows]}
