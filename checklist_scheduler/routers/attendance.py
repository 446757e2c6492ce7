from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from checklist_scheduler.audit import log_audit
from checklist_scheduler.db import get_db
from checklist_scheduler.schemas import (
    CheckInEventRequest,
    CheckInGenerationResponse,
    LeaveEventRequest,
    LeaveEventResponse,
)
from checklist_scheduler.security import Actor, ensure_self_or_privileged, require_actor
from checklist_scheduler.services.scheduling import generate_on_check_in, on_leave_cancelled, on_leave_declared

router = APIRouter(tags=["attendance-triggers"])


@router.post("/api/orgs/{org}/attendance/check-in-events", response_model=CheckInGenerationResponse)
def check_in_event(
    org: str,
    payload: CheckInEventRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> CheckInGenerationResponse:
    ensure_self_or_privileged(actor, payload.employee_id)
    request.state.employee_id = payload.employee_id
    result = generate_on_check_in(db, org=org, employee_id=payload.employee_id, day_date=payload.day_date)
    return CheckInGenerationResponse(**result)


@router.post("/api/orgs/{org}/attendance/leave-events", response_model=LeaveEventResponse)
def leave_event(
    org: str,
    payload: LeaveEventRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> LeaveEventResponse:
    # Sent by the attendance subsystem after the leave change is committed.
    ensure_self_or_privileged(actor, payload.employee_id)
    request.state.employee_id = payload.employee_id
    if payload.kind == "declared":
        result = on_leave_declared(db, org=org, employee_id=payload.employee_id, day_date=payload.day_date)
        action = "LEAVE_REASSIGNMENT"
    else:
        result = on_leave_cancelled(db, org=org, employee_id=payload.employee_id, day_date=payload.day_date)
        action = "LEAVE_RESTORATION"

    log_audit(
        db,
        org=org,
        actor=actor,
        action=action,
        success=True,
        entity_type="employee_day",
        entity_id=f"{payload.employee_id}:{payload.day_date.isoformat()}",
        details={key: value for key, value in result.items() if key not in {"date", "employee_id"}},
        request_id=getattr(request.state, "request_id", None),
    )
    return LeaveEventResponse(kind=payload.kind, **result)
