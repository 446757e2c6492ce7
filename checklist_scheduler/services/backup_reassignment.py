from __future__ import annotations

import logging
from datetime import date
from typing import Any

from checklist_scheduler.errors import TransientStoreError
from checklist_scheduler.models import Checklist, ChecklistAssignment, GenerationSource
from checklist_scheduler.services.assignment_generator import AssignmentGenerator
from checklist_scheduler.services.recurrence import applies_on

logger = logging.getLogger("checklist_scheduler.reassignment")


class BackupReassignmentEngine:
    """Moves a day's checklists to backups when an owner goes on leave, and back.

    Callers must only invoke these after the attendance change is committed,
    since eligibility is read back from the attendance gateway. A store failure
    on one checklist is logged and counted; the remaining checklists still run.
    """

    def __init__(self, generator: AssignmentGenerator):
        self.generator = generator
        self.store = generator.store
        self.org = generator.org
        self._checked_in: dict[date, set[str]] = {}

    def _checked_in_on(self, day_date: date) -> set[str]:
        if day_date not in self._checked_in:
            self._checked_in[day_date] = self.generator.checked_in_employees(day_date)
        return self._checked_in[day_date]

    def _reassign_checklist(self, checklist: Checklist, employee_id: str, day_date: date) -> tuple[int, bool]:
        removed = 0
        # Completed records are removed too; the backup gets a fresh one.
        for assignment in self.store.find_assignments(checklist.id, employee_id, day_date):
            log_extra = {
                "org": self.org,
                "assignment_key": assignment.assignment_key,
                "was_completed": assignment.completed,
            }
            self.store.delete_assignment(assignment)
            removed += 1
            logger.info("assignment_removed_for_leave", extra=log_extra)

        backups = checklist.backup_employee_ids or []
        if not backups:
            logger.info(
                "no_backup_employees",
                extra={"org": self.org, "checklist_id": checklist.id, "date": day_date},
            )
            return removed, False

        chosen = self.generator.cover_with_backup(
            checklist,
            original_employee_id=employee_id,
            day_date=day_date,
            candidates=backups,
            checked_in=self._checked_in_on(day_date),
            generated_by=GenerationSource.LEAVE_REASSIGNMENT,
        )
        return removed, chosen is not None

    def on_leave_declared(self, employee_id: str, day_date: date) -> dict[str, Any]:
        owned = [
            checklist
            for checklist in self.store.list_checklists(is_active=True)
            if employee_id in (checklist.assigned_employee_ids or []) and applies_on(checklist, day_date)
        ]

        removed_assignments = 0
        reassigned_count = 0
        failed_checklists = 0
        for checklist in owned:
            try:
                removed, reassigned = self._reassign_checklist(checklist, employee_id, day_date)
            except TransientStoreError:
                failed_checklists += 1
                logger.exception(
                    "leave_reassignment_failed",
                    extra={"org": self.org, "checklist_id": checklist.id, "employee_id": employee_id, "date": day_date},
                )
                continue
            removed_assignments += removed
            if reassigned:
                reassigned_count += 1

        logger.info(
            "leave_reassignment_complete",
            extra={
                "org": self.org,
                "employee_id": employee_id,
                "date": day_date,
                "reassigned_count": reassigned_count,
                "processed_checklists": len(owned),
                "failed_checklists": failed_checklists,
            },
        )
        return {
            "employee_id": employee_id,
            "date": day_date,
            "reassigned_count": reassigned_count,
            "processed_checklists": len(owned),
            "removed_assignments": removed_assignments,
            "failed_checklists": failed_checklists,
        }

    def _restore_from_backup(self, backup: ChecklistAssignment, employee_id: str, day_date: date) -> bool:
        checklist_id = backup.checklist_id
        checklist_title = backup.checklist_title
        self.store.delete_assignment(backup)

        if employee_id not in self._checked_in_on(day_date):
            return False
        return self.generator.create_single_assignment(
            checklist_id=checklist_id,
            checklist_title=checklist_title,
            employee_id=employee_id,
            day_date=day_date,
            generated_by=GenerationSource.LEAVE_RESTORATION,
        )

    def on_leave_cancelled(self, employee_id: str, day_date: date) -> dict[str, Any]:
        backups = self.store.list_assignments(
            day_date=day_date,
            is_backup_assignment=True,
            original_employee_id=employee_id,
        )

        restored_count = 0
        kept_completed = 0
        failed_checklists = 0
        for backup in backups:
            if backup.completed:
                kept_completed += 1
                logger.info(
                    "completed_backup_kept",
                    extra={"org": self.org, "assignment_key": backup.assignment_key},
                )
                continue

            checklist_id = backup.checklist_id
            try:
                restored = self._restore_from_backup(backup, employee_id, day_date)
            except TransientStoreError:
                failed_checklists += 1
                logger.exception(
                    "leave_restoration_failed",
                    extra={"org": self.org, "checklist_id": checklist_id, "employee_id": employee_id, "date": day_date},
                )
                continue
            if restored:
                restored_count += 1

        logger.info(
            "leave_cancellation_complete",
            extra={
                "org": self.org,
                "employee_id": employee_id,
                "date": day_date,
                "restored_count": restored_count,
                "processed_backups": len(backups),
                "failed_checklists": failed_checklists,
            },
        )
        return {
            "employee_id": employee_id,
            "date": day_date,
            "restored_count": restored_count,
            "processed_backups": len(backups),
            "kept_completed": kept_completed,
            "failed_checklists": failed_checklists,
        }
