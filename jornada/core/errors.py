"""
Failures of the scan pipeline. Every error carries a reason string that names the
employee (when there is one) and what went wrong; the API hands it to the caller as-is.
"""
from typing import Optional


class AttendanceError(Exception):
    def __init__(self, reason: str, employee_id: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.employee_id = employee_id


class EmployeeNotFound(AttendanceError):
    def __init__(self, employee_id, inactive: bool = False):
        why = "is deactivated" if inactive else "does not exist"
        super().__init__(f"Employee {employee_id} {why}; no mark was recorded", employee_id)
        self.inactive = inactive


class StorageUnavailable(AttendanceError):
    pass


class HistoryQueryFailed(StorageUnavailable):
    def __init__(self, employee_id, cause: str = ""):
        reason = f"Could not read attendance history of employee {employee_id}; no mark was recorded"
        if cause:
            reason = f"{reason} ({cause})"
        super().__init__(reason, employee_id)


class DuplicateEvent(AttendanceError):
    def __init__(self, employee_id, timestamp):
        super().__init__(
            f"Employee {employee_id} already has a mark at {timestamp}; duplicate scan rejected",
            employee_id,
        )
        self.timestamp = timestamp


class DayAlreadyComplete(AttendanceError):
    def __init__(self, employee_id, marks: int, day):
        super().__init__(
            f"Workday already complete for employee {employee_id} on {day}: "
            f"{marks} marks already recorded",
            employee_id,
        )
        self.marks = marks
        self.day = day


class AggregateWriteFailed(AttendanceError):
    """The raw event is stored; only the derived working_days row is stale."""
    def __init__(self, employee_id, day, attempts: int, cause: str = ""):
        reason = (
            f"Could not update working day {day} of employee {employee_id} "
            f"after {attempts} attempts; the mark itself is stored"
        )
        if cause:
            reason = f"{reason} ({cause})"
        super().__init__(reason, employee_id)
        self.day = day
        self.attempts = attempts
