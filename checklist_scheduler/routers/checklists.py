from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from checklist_scheduler.db import get_db
from checklist_scheduler.models import Checklist
from checklist_scheduler.schemas import (
    AssignmentRead,
    ChecklistCreate,
    ChecklistDeleteResponse,
    ChecklistRead,
    ChecklistUpdate,
    CleanupRequest,
    CleanupResponse,
    CompletionUpsertRequest,
    DashboardResponse,
    ManualGenerateRequest,
    ManualGenerationResponse,
    MonthViewResponse,
)
from checklist_scheduler.security import ROLE_ADMIN, Actor, ensure_self_or_privileged, require_actor
from checklist_scheduler.services.calendar_view import get_dashboard_stats, get_generation_status, get_month_view
from checklist_scheduler.services.checklists import (
    create_checklist,
    delete_checklist,
    get_checklist,
    list_assignments,
    list_checklists,
    record_completion,
    update_checklist,
)
from checklist_scheduler.services.day_utils import local_today
from checklist_scheduler.services.recurrence import describe_recurrence
from checklist_scheduler.services.scheduling import cleanup_day, manual_generate

router = APIRouter(tags=["checklists"])


def _to_checklist_read(checklist: Checklist) -> ChecklistRead:
    read = ChecklistRead.model_validate(checklist)
    read.recurrence_label = describe_recurrence(checklist)
    return read


@router.post("/api/orgs/{org}/checklists", response_model=ChecklistRead, status_code=201)
def create_checklist_endpoint(
    org: str,
    payload: ChecklistCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ChecklistRead:
    return _to_checklist_read(create_checklist(db, org=org, payload=payload, actor=actor))


@router.get("/api/orgs/{org}/checklists", response_model=list[ChecklistRead])
def list_checklists_endpoint(
    org: str,
    is_active: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_actor),
) -> list[ChecklistRead]:
    return [_to_checklist_read(item) for item in list_checklists(db, org=org, is_active=is_active)]


@router.get("/api/orgs/{org}/checklists/{checklist_id}", response_model=ChecklistRead)
def get_checklist_endpoint(
    org: str,
    checklist_id: int,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_actor),
) -> ChecklistRead:
    return _to_checklist_read(get_checklist(db, org=org, checklist_id=checklist_id))


@router.patch("/api/orgs/{org}/checklists/{checklist_id}", response_model=ChecklistRead)
def update_checklist_endpoint(
    org: str,
    checklist_id: int,
    payload: ChecklistUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ChecklistRead:
    checklist = update_checklist(db, org=org, checklist_id=checklist_id, payload=payload, actor=actor)
    return _to_checklist_read(checklist)


@router.delete("/api/orgs/{org}/checklists/{checklist_id}", response_model=ChecklistDeleteResponse)
def delete_checklist_endpoint(
    org: str,
    checklist_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ChecklistDeleteResponse:
    deleted_assignments = delete_checklist(db, org=org, checklist_id=checklist_id, actor=actor)
    return ChecklistDeleteResponse(ok=True, checklist_id=checklist_id, deleted_assignments=deleted_assignments)


@router.get("/api/orgs/{org}/assignments", response_model=list[AssignmentRead])
def list_assignments_endpoint(
    org: str,
    employee_id: str | None = Query(default=None),
    checklist_id: int | None = Query(default=None),
    day_date: date | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    completed: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> list[AssignmentRead]:
    if actor.role != ROLE_ADMIN:
        employee_id = actor.id
    assignments = list_assignments(
        db,
        org=org,
        employee_id=employee_id,
        checklist_id=checklist_id,
        day_date=day_date,
        start_date=start_date,
        end_date=end_date,
        completed=completed,
    )
    return [AssignmentRead.model_validate(item) for item in assignments]


@router.put("/api/orgs/{org}/assignments/completion", response_model=AssignmentRead)
def record_completion_endpoint(
    org: str,
    payload: CompletionUpsertRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> AssignmentRead:
    ensure_self_or_privileged(actor, payload.employee_id)
    return AssignmentRead.model_validate(record_completion(db, org=org, payload=payload))


@router.post("/api/orgs/{org}/assignments/generate", response_model=ManualGenerationResponse)
def manual_generate_endpoint(
    org: str,
    payload: ManualGenerateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ManualGenerationResponse:
    return ManualGenerationResponse(**manual_generate(db, org=org, actor=actor, day_date=payload.day_date))


@router.post("/api/orgs/{org}/assignments/cleanup", response_model=CleanupResponse)
def cleanup_endpoint(
    org: str,
    payload: CleanupRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> CleanupResponse:
    return CleanupResponse(**cleanup_day(db, org=org, actor=actor, day_date=payload.day_date))


@router.get("/api/orgs/{org}/calendar", response_model=MonthViewResponse)
def month_view_endpoint(
    org: str,
    month: int = Query(ge=1, le=12),
    year: int = Query(ge=2000, le=2100),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_actor),
) -> MonthViewResponse:
    return MonthViewResponse(**get_month_view(db, org=org, month=month, year=year))


@router.get("/api/orgs/{org}/dashboard", response_model=DashboardResponse)
def dashboard_endpoint(
    org: str,
    request: Request,
    day_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> DashboardResponse:
    target_date = day_date or local_today()
    if actor.role == ROLE_ADMIN:
        return DashboardResponse(**get_generation_status(db, org=org, day_date=target_date))
    request.state.employee_id = actor.id
    return DashboardResponse(
        date=target_date,
        today_stats=get_dashboard_stats(db, org=org, day_date=target_date, employee_id=actor.id),
        can_manual_generate=False,
        generation_method="check_in_based",
    )
