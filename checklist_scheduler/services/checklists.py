from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from checklist_scheduler.audit import log_audit
from checklist_scheduler.errors import NotFound, TransientStoreError, ValidationError
from checklist_scheduler.models import Checklist, ChecklistAssignment, GenerationSource, RecurrenceType
from checklist_scheduler.schemas import ChecklistCreate, ChecklistUpdate, CompletionUpsertRequest
from checklist_scheduler.security import Actor, ensure_admin
from checklist_scheduler.services.assignment_generator import AssignmentGenerator
from checklist_scheduler.services.assignment_store import AssignmentStore
from checklist_scheduler.services.attendance_gateway import SqlAttendanceGateway, SqlEmployeeDirectory
from checklist_scheduler.services.day_utils import local_today

logger = logging.getLogger("checklist_scheduler.checklists")

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100


def build_generator(db: Session, store: AssignmentStore) -> AssignmentGenerator:
    return AssignmentGenerator(store, SqlAttendanceGateway(db), SqlEmployeeDirectory(db))


def normalize_employee_ids(raw_employee_ids: list[str] | None) -> list[str]:
    normalized: list[str] = []
    seen: set[str] = set()
    for raw_employee_id in raw_employee_ids or []:
        employee_id = str(raw_employee_id).strip()
        if not employee_id or employee_id in seen:
            continue
        seen.add(employee_id)
        normalized.append(employee_id)
    return normalized


def normalize_recurrence(
    *,
    recurrence_type: str,
    day_of_week: int | None,
    day_of_month: int | None,
    specific_date: date | None,
    reject_past_date: bool = True,
) -> dict[str, Any]:
    raw_type = (recurrence_type or "").strip().lower()
    try:
        normalized_type = RecurrenceType(raw_type)
    except ValueError as exc:
        raise ValidationError(f"Invalid recurrence type: {recurrence_type!r}") from exc

    values: dict[str, Any] = {
        "recurrence_type": normalized_type.value,
        "day_of_week": None,
        "day_of_month": None,
        "specific_date": None,
    }
    if normalized_type == RecurrenceType.WEEKLY:
        if day_of_week is None or not 0 <= day_of_week <= 6:
            raise ValidationError("Weekly checklists need a day_of_week between 0 (Sunday) and 6 (Saturday).")
        values["day_of_week"] = day_of_week
    elif normalized_type == RecurrenceType.MONTHLY:
        if day_of_month is None or not 1 <= day_of_month <= 31:
            raise ValidationError("Monthly checklists need a day_of_month between 1 and 31.")
        values["day_of_month"] = day_of_month
    elif normalized_type == RecurrenceType.ONCE:
        if specific_date is None:
            raise ValidationError("Date is required for one-time checklists.")
        if reject_past_date and specific_date < local_today():
            raise ValidationError("Specific date cannot be in the past.")
        values["specific_date"] = specific_date
    return values


def validate_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Checklist title is required.")
    if len(cleaned) < TITLE_MIN_LENGTH:
        raise ValidationError(f"Title must be at least {TITLE_MIN_LENGTH} characters long.")
    if len(cleaned) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters long.")
    return cleaned


def _require_assigned(employee_ids: list[str]) -> list[str]:
    if not employee_ids:
        raise ValidationError("At least one primary employee must be assigned.")
    return employee_ids


def create_checklist(db: Session, *, org: str, payload: ChecklistCreate, actor: Actor | None) -> Checklist:
    ensure_admin(actor, action="create checklists")
    store = AssignmentStore(db, org)

    recurrence = normalize_recurrence(
        recurrence_type=payload.recurrence.type,
        day_of_week=payload.recurrence.day_of_week,
        day_of_month=payload.recurrence.day_of_month,
        specific_date=payload.recurrence.specific_date,
    )
    checklist = Checklist(
        title=validate_title(payload.title),
        description=payload.description,
        is_active=payload.is_active,
        assigned_employee_ids=_require_assigned(normalize_employee_ids(payload.assigned_employee_ids)),
        backup_employee_ids=normalize_employee_ids(payload.backup_employee_ids),
        created_by=actor.id,
        created_by_name=actor.name,
        **recurrence,
    )
    store.add_checklist(checklist)
    logger.info("checklist_created", extra={"org": store.org, "checklist_id": checklist.id})

    # Employees already checked in today should see the new checklist right away.
    generation: dict[str, Any] | None = None
    try:
        generation = build_generator(db, store).generate_for_checked_in_set(
            local_today(),
            checklists=[checklist],
            generated_by=GenerationSource.CHECKLIST_CREATED,
        )
    except TransientStoreError:
        logger.exception(
            "checklist_created_generation_failed",
            extra={"org": store.org, "checklist_id": checklist.id},
        )

    log_audit(
        db,
        org=store.org,
        actor=actor,
        action="CHECKLIST_CREATED",
        success=True,
        entity_type="checklist",
        entity_id=str(checklist.id),
        details={
            "title": checklist.title,
            "recurrence_type": checklist.recurrence_type,
            "generated_today": generation["total_generated"] if generation else None,
        },
    )
    return checklist


def list_checklists(db: Session, *, org: str, is_active: bool | None = None) -> list[Checklist]:
    return AssignmentStore(db, org).list_checklists(is_active=is_active)


def get_checklist(db: Session, *, org: str, checklist_id: int) -> Checklist:
    checklist = AssignmentStore(db, org).get_checklist(checklist_id)
    if checklist is None:
        raise NotFound("Checklist not found")
    return checklist


def update_checklist(
    db: Session,
    *,
    org: str,
    checklist_id: int,
    payload: ChecklistUpdate,
    actor: Actor | None,
) -> Checklist:
    ensure_admin(actor, action="edit checklists")
    store = AssignmentStore(db, org)
    checklist = store.get_checklist(checklist_id)
    if checklist is None:
        raise NotFound("Checklist not found")

    changes = payload.model_dump(exclude_unset=True)
    if "title" in changes:
        checklist.title = validate_title(payload.title)
    if "description" in changes:
        checklist.description = payload.description
    if "is_active" in changes and payload.is_active is not None:
        checklist.is_active = payload.is_active
    if "assigned_employee_ids" in changes:
        checklist.assigned_employee_ids = _require_assigned(normalize_employee_ids(payload.assigned_employee_ids))
    if "backup_employee_ids" in changes:
        checklist.backup_employee_ids = normalize_employee_ids(payload.backup_employee_ids)
    if payload.recurrence is not None:
        recurrence = normalize_recurrence(
            recurrence_type=payload.recurrence.type,
            day_of_week=payload.recurrence.day_of_week,
            day_of_month=payload.recurrence.day_of_month,
            specific_date=payload.recurrence.specific_date,
        )
        for key, value in recurrence.items():
            setattr(checklist, key, value)

    checklist.updated_by = actor.id
    checklist.updated_by_name = actor.name
    store.save_checklist(checklist)

    log_audit(
        db,
        org=store.org,
        actor=actor,
        action="CHECKLIST_UPDATED",
        success=True,
        entity_type="checklist",
        entity_id=str(checklist.id),
        details={"fields": sorted(changes.keys())},
    )
    return checklist


def delete_checklist(db: Session, *, org: str, checklist_id: int, actor: Actor | None) -> int:
    ensure_admin(actor, action="delete checklists")
    store = AssignmentStore(db, org)
    checklist = store.get_checklist(checklist_id)
    if checklist is None:
        raise NotFound("Checklist not found")

    title = checklist.title
    deleted_assignments = store.delete_checklist(checklist)
    logger.info(
        "checklist_deleted",
        extra={"org": store.org, "checklist_id": checklist_id, "deleted_assignments": deleted_assignments},
    )
    log_audit(
        db,
        org=store.org,
        actor=actor,
        action="CHECKLIST_DELETED",
        success=True,
        entity_type="checklist",
        entity_id=str(checklist_id),
        details={"title": title, "deleted_assignments": deleted_assignments},
    )
    return deleted_assignments


def record_completion(db: Session, *, org: str, payload: CompletionUpsertRequest) -> ChecklistAssignment:
    """Mark the single record for (checklist, employee, day) done or not done.

    Creates the record first when none exists yet. A not-done answer needs a reason.
    """
    reason = (payload.reason or "").strip()
    if not payload.completed and not reason:
        raise ValidationError("Please provide a reason for not completing this checklist.")

    store = AssignmentStore(db, org)
    existing = store.find_assignments(payload.checklist_id, payload.employee_id, payload.day_date)
    if not existing:
        checklist = store.get_checklist(payload.checklist_id)
        if checklist is None:
            raise NotFound("Checklist not found")
        build_generator(db, store).create_single_assignment(
            checklist_id=checklist.id,
            checklist_title=checklist.title,
            employee_id=payload.employee_id,
            day_date=payload.day_date,
            generated_by=GenerationSource.COMPLETION,
        )
        existing = store.find_assignments(payload.checklist_id, payload.employee_id, payload.day_date)
        if not existing:
            raise TransientStoreError("Assignment is being created by another request; retry.")

    # Newest first; the earliest record is the one duplicate cleanup keeps.
    assignment = existing[-1]
    return store.update_assignment(
        assignment,
        completed=payload.completed,
        reason=None if payload.completed else reason,
        completed_at=datetime.now(timezone.utc) if payload.completed else None,
    )


def list_assignments(
    db: Session,
    *,
    org: str,
    employee_id: str | None = None,
    checklist_id: int | None = None,
    day_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    completed: bool | None = None,
) -> list[ChecklistAssignment]:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError("end_date must be greater than or equal to start_date")
    return AssignmentStore(db, org).list_assignments(
        employee_id=employee_id,
        checklist_id=checklist_id,
        day_date=day_date,
        start_date=start_date,
        end_date=end_date,
        completed=completed,
    )
