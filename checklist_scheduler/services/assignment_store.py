from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from checklist_scheduler.errors import TransientStoreError, ValidationError
from checklist_scheduler.models import Checklist, ChecklistAssignment

logger = logging.getLogger("checklist_scheduler.store")

_INVALID_ORG_KEYS = {"", "null", "undefined", "none"}


def normalize_org(org: str | None) -> str:
    value = (org or "").strip()
    if value.lower() in _INVALID_ORG_KEYS:
        raise ValidationError(f"Invalid organization key: {org!r}")
    return value


class AssignmentStore:
    """Org-scoped reads and writes for checklist definitions and assignment records.

    Every write commits on its own; nothing here spans more than one record.
    Driver failures are rolled back and surfaced as ``TransientStoreError``.
    """

    def __init__(self, db: Session, org: str):
        self.db = db
        self.org = normalize_org(org)

    @contextmanager
    def _store_call(self, operation: str) -> Iterator[None]:
        try:
            yield
        except DBAPIError as exc:
            self.db.rollback()
            logger.warning(
                "store_call_failed",
                extra={"org": self.org, "operation": operation, "error": exc.__class__.__name__},
            )
            raise TransientStoreError(f"Store operation failed: {operation}") from exc

    # checklists

    def list_checklists(self, *, is_active: bool | None = None) -> list[Checklist]:
        stmt = (
            select(Checklist)
            .where(Checklist.org == self.org)
            .order_by(Checklist.created_at.desc(), Checklist.id.desc())
        )
        if is_active is not None:
            stmt = stmt.where(Checklist.is_active.is_(is_active))
        with self._store_call("list_checklists"):
            return list(self.db.scalars(stmt).all())

    def get_checklist(self, checklist_id: int) -> Checklist | None:
        with self._store_call("get_checklist"):
            checklist = self.db.get(Checklist, checklist_id)
        if checklist is None or checklist.org != self.org:
            return None
        return checklist

    def add_checklist(self, checklist: Checklist) -> Checklist:
        checklist.org = self.org
        with self._store_call("add_checklist"):
            self.db.add(checklist)
            self.db.commit()
            self.db.refresh(checklist)
        return checklist

    def save_checklist(self, checklist: Checklist) -> Checklist:
        with self._store_call("save_checklist"):
            self.db.commit()
            self.db.refresh(checklist)
        return checklist

    def delete_checklist(self, checklist: Checklist) -> int:
        """Delete the definition and every assignment record generated from it."""
        with self._store_call("delete_checklist"):
            result = self.db.execute(
                delete(ChecklistAssignment).where(
                    ChecklistAssignment.org == self.org,
                    ChecklistAssignment.checklist_id == checklist.id,
                )
            )
            self.db.delete(checklist)
            self.db.commit()
        return int(result.rowcount or 0)

    # assignments

    def list_assignments(
        self,
        *,
        employee_id: str | None = None,
        checklist_id: int | None = None,
        day_date: date | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        completed: bool | None = None,
        is_backup_assignment: bool | None = None,
        original_employee_id: str | None = None,
    ) -> list[ChecklistAssignment]:
        stmt = (
            select(ChecklistAssignment)
            .where(ChecklistAssignment.org == self.org)
            .order_by(ChecklistAssignment.created_at.desc(), ChecklistAssignment.id.desc())
        )
        if employee_id is not None:
            stmt = stmt.where(ChecklistAssignment.employee_id == employee_id)
        if checklist_id is not None:
            stmt = stmt.where(ChecklistAssignment.checklist_id == checklist_id)
        if day_date is not None:
            stmt = stmt.where(ChecklistAssignment.day_date == day_date)
        if start_date is not None:
            stmt = stmt.where(ChecklistAssignment.day_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(ChecklistAssignment.day_date <= end_date)
        if completed is not None:
            stmt = stmt.where(ChecklistAssignment.completed.is_(completed))
        if is_backup_assignment is not None:
            stmt = stmt.where(ChecklistAssignment.is_backup_assignment.is_(is_backup_assignment))
        if original_employee_id is not None:
            stmt = stmt.where(ChecklistAssignment.original_employee_id == original_employee_id)
        with self._store_call("list_assignments"):
            return list(self.db.scalars(stmt).all())

    def find_assignments(self, checklist_id: int, employee_id: str, day_date: date) -> list[ChecklistAssignment]:
        return self.list_assignments(checklist_id=checklist_id, employee_id=employee_id, day_date=day_date)

    def count_assignments(self, *, employee_id: str, day_date: date) -> int:
        stmt = select(func.count(ChecklistAssignment.id)).where(
            ChecklistAssignment.org == self.org,
            ChecklistAssignment.employee_id == employee_id,
            ChecklistAssignment.day_date == day_date,
        )
        with self._store_call("count_assignments"):
            return int(self.db.scalar(stmt) or 0)

    def create_assignment(self, **values: Any) -> ChecklistAssignment:
        assignment = ChecklistAssignment(org=self.org, **values)
        with self._store_call("create_assignment"):
            self.db.add(assignment)
            self.db.commit()
            self.db.refresh(assignment)
        return assignment

    def update_assignment(self, assignment: ChecklistAssignment, **values: Any) -> ChecklistAssignment:
        for key, value in values.items():
            setattr(assignment, key, value)
        with self._store_call("update_assignment"):
            self.db.commit()
            self.db.refresh(assignment)
        return assignment

    def delete_assignment(self, assignment: ChecklistAssignment) -> None:
        with self._store_call("delete_assignment"):
            self.db.delete(assignment)
            self.db.commit()
