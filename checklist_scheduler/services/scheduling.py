from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from checklist_scheduler.audit import log_audit
from checklist_scheduler.models import GenerationRun, GenerationSource
from checklist_scheduler.security import Actor, ensure_admin
from checklist_scheduler.services.assignment_store import AssignmentStore
from checklist_scheduler.services.backup_reassignment import BackupReassignmentEngine
from checklist_scheduler.services.checklists import build_generator
from checklist_scheduler.services.day_utils import local_today
from checklist_scheduler.services.duplicate_guard import cleanup_duplicates

logger = logging.getLogger("checklist_scheduler.scheduling")


def generate_on_check_in(
    db: Session,
    *,
    org: str,
    employee_id: str,
    day_date: date | None = None,
) -> dict[str, Any]:
    store = AssignmentStore(db, org)
    target_date = day_date or local_today()
    return build_generator(db, store).generate_on_check_in(employee_id, target_date)


def _record_generation_run(
    db: Session,
    *,
    org: str,
    day_date: date,
    actor: Actor,
    result: dict[str, Any],
) -> None:
    db.add(
        GenerationRun(
            org=org,
            day_date=day_date,
            generation_type=GenerationSource.MANUAL.value,
            actor_id=actor.id,
            actor_name=actor.name,
            result={key: value for key, value in result.items() if key != "date"},
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("generation_run_write_failed", extra={"org": org, "date": day_date})


def manual_generate(
    db: Session,
    *,
    org: str,
    actor: Actor | None,
    day_date: date | None = None,
) -> dict[str, Any]:
    """Admin-triggered generation for everyone checked in on ``day_date``.

    Idempotent, so callers that see fewer records than expected can simply run it again.
    """
    actor = ensure_admin(actor, action="manually generate assignments")
    store = AssignmentStore(db, org)
    target_date = day_date or local_today()

    result = build_generator(db, store).generate_for_checked_in_set(
        target_date,
        generated_by=GenerationSource.MANUAL,
    )
    cleanup = cleanup_duplicates(store, target_date)
    result["duplicates_removed"] = cleanup["duplicates_removed"]

    _record_generation_run(db, org=store.org, day_date=target_date, actor=actor, result=result)
    log_audit(
        db,
        org=store.org,
        actor=actor,
        action="ASSIGNMENTS_MANUALLY_GENERATED",
        success=True,
        entity_type="assignment_day",
        entity_id=target_date.isoformat(),
        details={key: value for key, value in result.items() if key != "date"},
    )

    return {
        "type": "manual_generation",
        "success": True,
        **result,
        "message": f"Successfully generated {result['total_generated']} assignments for {target_date.isoformat()}",
    }


def on_leave_declared(db: Session, *, org: str, employee_id: str, day_date: date) -> dict[str, Any]:
    store = AssignmentStore(db, org)
    return BackupReassignmentEngine(build_generator(db, store)).on_leave_declared(employee_id, day_date)


def on_leave_cancelled(db: Session, *, org: str, employee_id: str, day_date: date) -> dict[str, Any]:
    store = AssignmentStore(db, org)
    return BackupReassignmentEngine(build_generator(db, store)).on_leave_cancelled(employee_id, day_date)


def cleanup_day(db: Session, *, org: str, actor: Actor | None, day_date: date | None = None) -> dict[str, Any]:
    ensure_admin(actor, action="clean up duplicate assignments")
    store = AssignmentStore(db, org)
    return cleanup_duplicates(store, day_date or local_today())
