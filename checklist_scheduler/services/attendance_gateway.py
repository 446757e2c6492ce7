from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from checklist_scheduler.errors import AttendanceLookupFailure, TransientStoreError
from checklist_scheduler.models import AttendanceDay, AttendanceStatus, Employee


@dataclass(frozen=True, slots=True)
class EmployeeRef:
    id: str
    name: str
    department: str | None = None
    employee_code: str | None = None


class AttendanceGateway(Protocol):
    def get_status(self, org: str, employee_id: str, day_date: date) -> AttendanceStatus: ...

    def get_checked_in_employees(self, org: str, day_date: date) -> set[str]: ...


class EmployeeDirectory(Protocol):
    def list_active(self, org: str) -> list[EmployeeRef]: ...


def parse_attendance_status(raw: str | None) -> AttendanceStatus:
    try:
        return AttendanceStatus((raw or "").strip().lower())
    except ValueError:
        return AttendanceStatus.UNKNOWN


class SqlAttendanceGateway:
    """Reads the day status rows committed by the attendance subsystem."""

    def __init__(self, db: Session):
        self.db = db

    def get_status(self, org: str, employee_id: str, day_date: date) -> AttendanceStatus:
        try:
            raw_status = self.db.scalar(
                select(AttendanceDay.status).where(
                    AttendanceDay.org == org,
                    AttendanceDay.employee_id == employee_id,
                    AttendanceDay.day_date == day_date,
                )
            )
        except DBAPIError as exc:
            self.db.rollback()
            raise AttendanceLookupFailure(f"Attendance status unavailable for {employee_id}") from exc
        if raw_status is None:
            return AttendanceStatus.UNKNOWN
        return parse_attendance_status(raw_status)

    def get_checked_in_employees(self, org: str, day_date: date) -> set[str]:
        # Anyone with an attendance row for the day who is not on leave counts as present.
        try:
            rows = self.db.execute(
                select(AttendanceDay.employee_id, AttendanceDay.status).where(
                    AttendanceDay.org == org,
                    AttendanceDay.day_date == day_date,
                )
            ).all()
        except DBAPIError as exc:
            self.db.rollback()
            raise AttendanceLookupFailure(f"Attendance records unavailable for {day_date.isoformat()}") from exc
        return {
            employee_id
            for employee_id, raw_status in rows
            if parse_attendance_status(raw_status) != AttendanceStatus.ON_LEAVE
        }


class SqlEmployeeDirectory:
    def __init__(self, db: Session):
        self.db = db

    def list_active(self, org: str) -> list[EmployeeRef]:
        try:
            employees = self.db.scalars(
                select(Employee)
                .where(Employee.org == org, Employee.is_active.is_(True))
                .order_by(Employee.name.asc(), Employee.id.asc())
            ).all()
        except DBAPIError as exc:
            self.db.rollback()
            raise TransientStoreError("Employee directory unavailable") from exc
        return [
            EmployeeRef(
                id=employee.id,
                name=employee.name,
                department=employee.department,
                employee_code=employee.employee_code,
            )
            for employee in employees
        ]
