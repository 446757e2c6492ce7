from __future__ import annotations

from calendar import monthrange
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from checklist_scheduler.errors import ValidationError
from checklist_scheduler.models import ChecklistAssignment
from checklist_scheduler.services.assignment_store import AssignmentStore
from checklist_scheduler.services.attendance_gateway import SqlEmployeeDirectory
from checklist_scheduler.services.recurrence import describe_recurrence


def _rate(completed: int, total: int) -> float:
    return (completed / total) * 100 if total > 0 else 0.0


def _empty_employee_entry(employee_info: dict[str, Any]) -> dict[str, Any]:
    return {"employee_info": employee_info, "checklists": {}, "daily_stats": {}}


def build_month_grid(
    assignments: list[ChecklistAssignment],
    employees: list[dict[str, Any]],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Single pass over a month of records.

    Records for employees missing from the directory still get a row, named
    from the snapshot stored on the record.
    """
    per_employee: dict[str, Any] = {item["id"]: _empty_employee_entry(item) for item in employees}
    stats: dict[str, Any] = {
        "total_assignments": len(assignments),
        "completed_assignments": 0,
        "pending_assignments": 0,
        "completion_rate": 0.0,
        "by_employee": {},
        "by_date": {},
    }

    for assignment in assignments:
        employee_id = assignment.employee_id
        day_key = assignment.day_date.isoformat()
        completed = bool(assignment.completed)

        entry = per_employee.get(employee_id)
        if entry is None:
            entry = _empty_employee_entry({"id": employee_id, "name": assignment.employee_name})
            per_employee[employee_id] = entry

        checklist_entry = entry["checklists"].setdefault(
            str(assignment.checklist_id),
            {"checklist_title": assignment.checklist_title, "completions": {}},
        )
        checklist_entry["completions"][day_key] = {
            "completed": completed,
            "reason": assignment.reason,
            "completed_at": assignment.completed_at.isoformat() if assignment.completed_at else None,
            "is_backup": bool(assignment.is_backup_assignment),
        }

        daily = entry["daily_stats"].setdefault(day_key, {"total": 0, "completed": 0})
        daily["total"] += 1

        by_employee = stats["by_employee"].setdefault(
            employee_id,
            {"employee_name": assignment.employee_name, "total": 0, "completed": 0, "completion_rate": 0.0},
        )
        by_employee["total"] += 1

        by_date = stats["by_date"].setdefault(day_key, {"total": 0, "completed": 0})
        by_date["total"] += 1

        if completed:
            stats["completed_assignments"] += 1
            daily["completed"] += 1
            by_employee["completed"] += 1
            by_date["completed"] += 1
        else:
            stats["pending_assignments"] += 1

    for item in stats["by_employee"].values():
        item["completion_rate"] = _rate(item["completed"], item["total"])
    stats["completion_rate"] = _rate(stats["completed_assignments"], stats["total_assignments"])
    return per_employee, stats


def get_month_view(db: Session, *, org: str, month: int, year: int) -> dict[str, Any]:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 1 <= year <= 9999:
        raise ValidationError("year is out of range")

    store = AssignmentStore(db, org)
    start_date = date(year, month, 1)
    end_date = date(year, month, monthrange(year, month)[1])

    assignments = store.list_assignments(start_date=start_date, end_date=end_date)
    employees = [
        {
            "id": item.id,
            "name": item.name,
            "department": item.department,
            "employee_code": item.employee_code,
        }
        for item in SqlEmployeeDirectory(db).list_active(store.org)
    ]
    checklists = [
        {
            "id": item.id,
            "title": item.title,
            "recurrence_type": item.recurrence_type,
            "recurrence_label": describe_recurrence(item),
        }
        for item in store.list_checklists(is_active=True)
    ]

    per_employee, month_stats = build_month_grid(assignments, employees)
    return {
        "month": month,
        "year": year,
        "per_employee": per_employee,
        "month_stats": month_stats,
        "employees": employees,
        "checklists": checklists,
    }


def get_dashboard_stats(
    db: Session,
    *,
    org: str,
    day_date: date,
    employee_id: str | None = None,
) -> dict[str, Any]:
    assignments = AssignmentStore(db, org).list_assignments(day_date=day_date, employee_id=employee_id)
    total = len(assignments)
    completed = sum(1 for item in assignments if item.completed)
    return {
        "total": total,
        "completed": completed,
        "pending": total - completed,
        "completion_rate": _rate(completed, total),
    }


def get_generation_status(db: Session, *, org: str, day_date: date) -> dict[str, Any]:
    return {
        "date": day_date,
        "today_stats": get_dashboard_stats(db, org=org, day_date=day_date),
        "can_manual_generate": True,
        "generation_method": "check_in_based",
    }
