from fastapi import APIRouter, Form, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
import logging

from jornada.config import settings
from jornada.db.base import get_db
from jornada.db.models import Employee
from jornada.utils.timeutils import parse_hhmm

router = APIRouter(prefix="/employees", tags=["employees"])
logger = logging.getLogger(__name__)


# ----- helpers -----
def _clean_rut(rut: str) -> str:
    """12.345.678-k -> 12345678-K"""
    return rut.replace(".", "").replace(" ", "").strip().upper()


def _parse_shift(s: Optional[str]) -> Optional[str]:
    if not s:
        return None
    try:
        t = parse_hhmm(s)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"shift time '{s}' must be HH:MM")
    return t.strftime("%H:%M")


def _get_or_404(db: Session, emp_id: int) -> Employee:
    emp = db.get(Employee, emp_id)
    if not emp:
        raise HTTPException(status_code=404, detail=f"Employee {emp_id} not found")
    return emp


def _serialize(emp: Employee) -> dict:
    return {
        "id": emp.id,
        "rut": emp.rut,
        "full_name": emp.full_name,
        "email": emp.email,
        "phone": emp.phone,
        "weekly_hours_agreed": emp.weekly_hours_agreed,
        "shift_start": emp.shift_start,
        "shift_end": emp.shift_end,
        "is_telework": emp.is_telework,
        "active": emp.active,
    }


# ----- create -----
@router.post("")
def create_employee(
    rut: str = Form(...),
    full_name: str = Form(...),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    weekly_hours_agreed: Optional[int] = Form(None),
    shift_start: Optional[str] = Form(None),  # e.g. 09:00
    shift_end: Optional[str] = Form(None),
    is_telework: bool = Form(False),
    db: Session = Depends(get_db),
):
    rut = _clean_rut(rut)
    exists = db.query(Employee).filter(Employee.rut == rut).first()
    if exists:
        raise HTTPException(status_code=409, detail=f"RUT {rut} already registered")

    emp = Employee(
        rut=rut,
        full_name=full_name,
        email=email,
        phone=phone,
        weekly_hours_agreed=weekly_hours_agreed or settings.default_weekly_hours,
        shift_start=_parse_shift(shift_start),
        shift_end=_parse_shift(shift_end),
        is_telework=is_telework,
    )
    db.add(emp)
    db.commit()
    db.refresh(emp)
    logger.info("Employee %s created (%s)", emp.id, emp.rut)

    return {"ok": True, "employee_id": emp.id}


# ----- read/list -----
@router.get("")
def list_employees(include_inactive: bool = False, db: Session = Depends(get_db)):
    q = db.query(Employee)
    if not include_inactive:
        q = q.filter(Employee.active.is_(True))
    return [_serialize(e) for e in q.order_by(Employee.full_name.asc()).all()]


@router.get("/{emp_id}")
def get_employee(emp_id: int, db: Session = Depends(get_db)):
    return _serialize(_get_or_404(db, emp_id))


# ----- update -----
@router.put("/{emp_id}")
def update_employee(
    emp_id: int,
    rut: Optional[str] = Form(None),
    full_name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    weekly_hours_agreed: Optional[int] = Form(None),
    shift_start: Optional[str] = Form(None),
    shift_end: Optional[str] = Form(None),
    is_telework: Optional[bool] = Form(None),
    db: Session = Depends(get_db),
):
    emp = _get_or_404(db, emp_id)

    # Patch fields if provided
    if rut is not None:
        rut = _clean_rut(rut)
        clash = db.query(Employee).filter(Employee.rut == rut, Employee.id != emp.id).first()
        if clash:
            raise HTTPException(status_code=409, detail=f"RUT {rut} already registered")
        emp.rut = rut
    if full_name is not None:
        emp.full_name = full_name
    if email is not None:
        emp.email = email
    if phone is not None:
        emp.phone = phone
    if weekly_hours_agreed is not None:
        emp.weekly_hours_agreed = weekly_hours_agreed
    if shift_start is not None:
        emp.shift_start = _parse_shift(shift_start)
    if shift_end is not None:
        emp.shift_end = _parse_shift(shift_end)
    if is_telework is not None:
        emp.is_telework = is_telework

    db.commit()
    db.refresh(emp)
    return {"ok": True, "employee": _serialize(emp)}


# ----- deactivate -----
@router.delete("/{emp_id}")
def deactivate_employee(emp_id: int, db: Session = Depends(get_db)):
    # Soft delete: attendance history must keep pointing at the employee
    emp = _get_or_404(db, emp_id)
    emp.active = False
    db.commit()
    logger.info("Employee %s deactivated", emp_id)
    return {"ok": True, "deactivated_id": emp_id}
