from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from checklist_scheduler.models import AuditActorType, AuditLog
from checklist_scheduler.security import ROLE_ADMIN, ROLE_SYSTEM, Actor

logger = logging.getLogger("checklist_scheduler.audit")


def actor_type_for(actor: Actor | None) -> AuditActorType:
    if actor is None or actor.role == ROLE_SYSTEM:
        return AuditActorType.SYSTEM
    if actor.role == ROLE_ADMIN:
        return AuditActorType.ADMIN
    return AuditActorType.EMPLOYEE


def log_audit(
    db: Session,
    *,
    org: str,
    actor: Actor | None,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    actor_type = actor_type_for(actor)
    actor_id = actor.id if actor is not None else "system"
    audit = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        org=org,
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        success=success,
        details=details or {},
    )
    db.add(audit)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "org": org,
                "action": action,
                "actor_type": actor_type.value,
                "actor_id": actor_id,
                "success": success,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "org": org,
            "action": action,
            "actor_type": actor_type.value,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
            "details": details or {},
        },
    )
