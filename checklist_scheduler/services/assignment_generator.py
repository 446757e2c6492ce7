from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from typing import Any

from checklist_scheduler.errors import AttendanceLookupFailure, TransientStoreError
from checklist_scheduler.models import AttendanceStatus, Checklist, GenerationSource
from checklist_scheduler.services.attendance_gateway import AttendanceGateway, EmployeeDirectory
from checklist_scheduler.services.duplicate_guard import KeyedMutexTable, assignment_key, cleanup_duplicates
from checklist_scheduler.services.recurrence import applies_on

logger = logging.getLogger("checklist_scheduler.generator")

UNKNOWN_EMPLOYEE_NAME = "Unknown Employee"


def backup_display_name(employee_name: str, original_name: str) -> str:
    return f"{employee_name} (Backup for {original_name})"


class AssignmentGenerator:
    """Creates assignment records for one organization.

    The lock table is shared by every generator in the process unless one is
    passed in explicitly.
    """

    locks = KeyedMutexTable()

    def __init__(
        self,
        store: Any,
        attendance: AttendanceGateway,
        directory: EmployeeDirectory,
        *,
        locks: KeyedMutexTable | None = None,
    ):
        self.store = store
        self.org = store.org
        self.attendance = attendance
        self.directory = directory
        if locks is not None:
            self.locks = locks
        self._names: dict[str, str] | None = None

    # lookups

    def employee_names(self) -> dict[str, str]:
        if self._names is None:
            try:
                self._names = {item.id: item.name for item in self.directory.list_active(self.org)}
            except (TransientStoreError, AttendanceLookupFailure):
                logger.warning("employee_directory_unavailable", extra={"org": self.org})
                return {}
        return self._names

    def is_on_leave(self, employee_id: str, day_date: date) -> bool:
        try:
            status = self.attendance.get_status(self.org, employee_id, day_date)
        except AttendanceLookupFailure:
            logger.warning(
                "attendance_lookup_failed",
                extra={"org": self.org, "employee_id": employee_id, "date": day_date, "assumed": "not_on_leave"},
            )
            return False
        return status == AttendanceStatus.ON_LEAVE

    def checked_in_employees(self, day_date: date) -> set[str]:
        try:
            return set(self.attendance.get_checked_in_employees(self.org, day_date))
        except AttendanceLookupFailure:
            logger.warning(
                "attendance_lookup_failed",
                extra={"org": self.org, "date": day_date, "assumed": "nobody_checked_in"},
            )
            return set()

    def primaries_on_leave(self, checklist: Checklist, day_date: date) -> list[str]:
        return [
            employee_id
            for employee_id in checklist.assigned_employee_ids or []
            if self.is_on_leave(employee_id, day_date)
        ]

    def due_checklists(self, day_date: date) -> list[Checklist]:
        return [item for item in self.store.list_checklists(is_active=True) if applies_on(item, day_date)]

    # single record

    def create_single_assignment(
        self,
        *,
        checklist_id: int,
        checklist_title: str,
        employee_id: str,
        day_date: date,
        generated_by: GenerationSource,
        original_employee_id: str | None = None,
    ) -> bool:
        """Create one record unless the tuple is locked or already persisted.

        Returns ``False`` without writing when another create holds the key, when
        the store already has a record for the tuple, or when the write fails.
        """
        key = assignment_key(checklist_id, employee_id, day_date)
        is_backup = original_employee_id is not None
        with self.locks.hold(key) as acquired:
            if not acquired:
                logger.info("assignment_locked", extra={"org": self.org, "assignment_key": key})
                return False
            try:
                if self.store.find_assignments(checklist_id, employee_id, day_date):
                    return False

                names = self.employee_names()
                display_name = names.get(employee_id, UNKNOWN_EMPLOYEE_NAME)
                if is_backup:
                    display_name = backup_display_name(display_name, names.get(original_employee_id, "Unknown"))

                self.store.create_assignment(
                    checklist_id=checklist_id,
                    checklist_title=checklist_title,
                    employee_id=employee_id,
                    employee_name=display_name,
                    day_date=day_date,
                    completed=False,
                    reason=None,
                    completed_at=None,
                    is_backup_assignment=is_backup,
                    original_employee_id=original_employee_id,
                    generated_by=generated_by.value,
                    assignment_key=key,
                )
            except TransientStoreError:
                logger.exception("assignment_create_failed", extra={"org": self.org, "assignment_key": key})
                return False

        logger.info(
            "assignment_created",
            extra={
                "org": self.org,
                "assignment_key": key,
                "is_backup": is_backup,
                "original_employee_id": original_employee_id,
                "generated_by": generated_by.value,
            },
        )
        return True

    def cover_with_backup(
        self,
        checklist: Checklist,
        *,
        original_employee_id: str,
        day_date: date,
        candidates: Iterable[str],
        checked_in: set[str],
        generated_by: GenerationSource,
    ) -> str | None:
        """Give ``checklist`` to the first eligible backup candidate, in listed order.

        A checklist gets at most one backup per absent primary per day; if one
        already exists nothing is created. Returns the chosen employee id.
        """
        existing_backups = self.store.list_assignments(
            checklist_id=checklist.id,
            day_date=day_date,
            is_backup_assignment=True,
            original_employee_id=original_employee_id,
        )
        if existing_backups:
            return None

        for candidate_id in candidates:
            if candidate_id == original_employee_id or candidate_id not in checked_in:
                continue
            if self.store.find_assignments(checklist.id, candidate_id, day_date):
                continue
            created = self.create_single_assignment(
                checklist_id=checklist.id,
                checklist_title=checklist.title,
                employee_id=candidate_id,
                day_date=day_date,
                generated_by=generated_by,
                original_employee_id=original_employee_id,
            )
            if created:
                return candidate_id
        return None

    # batches

    def generate_on_check_in(self, employee_id: str, day_date: date) -> dict[str, Any]:
        existing_count = self.store.count_assignments(employee_id=employee_id, day_date=day_date)
        if existing_count > 0:
            logger.info(
                "check_in_assignments_exist",
                extra={"org": self.org, "employee_id": employee_id, "date": day_date, "existing_count": existing_count},
            )
            return {
                "type": GenerationSource.CHECK_IN.value,
                "date": day_date,
                "employee_id": employee_id,
                "already_exists": True,
                "existing_count": existing_count,
                "primary_generated": 0,
                "backup_generated": 0,
                "total_generated": 0,
            }

        due = self.due_checklists(day_date)
        primary_generated = 0
        for checklist in due:
            if employee_id not in (checklist.assigned_employee_ids or []):
                continue
            if self.create_single_assignment(
                checklist_id=checklist.id,
                checklist_title=checklist.title,
                employee_id=employee_id,
                day_date=day_date,
                generated_by=GenerationSource.CHECK_IN,
            ):
                primary_generated += 1

        backup_generated = 0
        for checklist in due:
            if employee_id not in (checklist.backup_employee_ids or []):
                continue
            for original_id in self.primaries_on_leave(checklist, day_date):
                if self.cover_with_backup(
                    checklist,
                    original_employee_id=original_id,
                    day_date=day_date,
                    candidates=[employee_id],
                    checked_in={employee_id},
                    generated_by=GenerationSource.CHECK_IN,
                ):
                    backup_generated += 1

        cleanup_duplicates(self.store, day_date)

        logger.info(
            "check_in_generation_complete",
            extra={
                "org": self.org,
                "employee_id": employee_id,
                "date": day_date,
                "primary_generated": primary_generated,
                "backup_generated": backup_generated,
            },
        )
        return {
            "type": GenerationSource.CHECK_IN.value,
            "date": day_date,
            "employee_id": employee_id,
            "already_exists": False,
            "existing_count": 0,
            "primary_generated": primary_generated,
            "backup_generated": backup_generated,
            "total_generated": primary_generated + backup_generated,
        }

    def generate_for_checked_in_set(
        self,
        day_date: date,
        *,
        checklists: list[Checklist] | None = None,
        generated_by: GenerationSource = GenerationSource.MANUAL,
    ) -> dict[str, Any]:
        """Primary records for checked-in owners plus backups for absent owners.

        Safe to re-run: existing tuples are skipped, so a second run adds nothing.
        """
        if checklists is None:
            candidates = self.due_checklists(day_date)
        else:
            candidates = [item for item in checklists if item.is_active and applies_on(item, day_date)]
        checked_in = self.checked_in_employees(day_date)

        primary_generated = 0
        backup_generated = 0
        for checklist in candidates:
            for employee_id in checklist.assigned_employee_ids or []:
                if employee_id not in checked_in:
                    continue
                if self.create_single_assignment(
                    checklist_id=checklist.id,
                    checklist_title=checklist.title,
                    employee_id=employee_id,
                    day_date=day_date,
                    generated_by=generated_by,
                ):
                    primary_generated += 1

            backups = checklist.backup_employee_ids or []
            if not any(item in checked_in for item in backups):
                continue
            for original_id in self.primaries_on_leave(checklist, day_date):
                if self.cover_with_backup(
                    checklist,
                    original_employee_id=original_id,
                    day_date=day_date,
                    candidates=backups,
                    checked_in=checked_in,
                    generated_by=generated_by,
                ):
                    backup_generated += 1

        return {
            "date": day_date,
            "total_generated": primary_generated + backup_generated,
            "primary_generated": primary_generated,
            "backup_generated": backup_generated,
            "processed_checklists": len(candidates),
            "checked_in_employees": len(checked_in),
        }
