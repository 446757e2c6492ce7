from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class RecurrenceIn(BaseModel):
    type: str = "daily"
    day_of_week: int | None = None
    day_of_month: int | None = None
    specific_date: date | None = None


class ChecklistCreate(BaseModel):
    title: str = ""
    description: str | None = None
    is_active: bool = True
    assigned_employee_ids: list[str] = Field(default_factory=list)
    backup_employee_ids: list[str] = Field(default_factory=list)
    recurrence: RecurrenceIn = Field(default_factory=RecurrenceIn)


class ChecklistUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    is_active: bool | None = None
    assigned_employee_ids: list[str] | None = None
    backup_employee_ids: list[str] | None = None
    recurrence: RecurrenceIn | None = None


class ChecklistRead(BaseModel):
    id: int
    title: str
    description: str | None = None
    is_active: bool
    assigned_employee_ids: list[str]
    backup_employee_ids: list[str]
    recurrence_type: str
    day_of_week: int | None = None
    day_of_month: int | None = None
    specific_date: date | None = None
    recurrence_label: str | None = None
    created_by: str
    created_by_name: str | None = None
    updated_by: str | None = None
    updated_by_name: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssignmentRead(BaseModel):
    id: int
    checklist_id: int
    checklist_title: str
    employee_id: str
    employee_name: str
    day_date: date
    completed: bool
    reason: str | None = None
    completed_at: datetime | None = None
    is_backup_assignment: bool
    original_employee_id: str | None = None
    generated_by: str
    assignment_key: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompletionUpsertRequest(BaseModel):
    checklist_id: int
    employee_id: str = Field(min_length=1, max_length=64)
    day_date: date
    completed: bool
    reason: str | None = Field(default=None, max_length=500)


class CheckInEventRequest(BaseModel):
    employee_id: str = Field(min_length=1)
    day_date: date | None = None


class LeaveEventRequest(BaseModel):
    employee_id: str = Field(min_length=1)
    day_date: date
    kind: Literal["declared", "cancelled"]


class ManualGenerateRequest(BaseModel):
    day_date: date | None = None


class CleanupRequest(BaseModel):
    day_date: date | None = None


class CheckInGenerationResponse(BaseModel):
    type: str
    date: date
    employee_id: str
    already_exists: bool
    existing_count: int
    primary_generated: int
    backup_generated: int
    total_generated: int


class ManualGenerationResponse(BaseModel):
    type: str
    success: bool
    date: date
    total_generated: int
    primary_generated: int
    backup_generated: int
    processed_checklists: int
    checked_in_employees: int
    duplicates_removed: int
    message: str


class LeaveEventResponse(BaseModel):
    kind: Literal["declared", "cancelled"]
    employee_id: str
    date: date
    reassigned_count: int = 0
    processed_checklists: int = 0
    removed_assignments: int = 0
    restored_count: int = 0
    processed_backups: int = 0
    kept_completed: int = 0
    failed_checklists: int = 0


class CleanupResponse(BaseModel):
    duplicates_removed: int
    date: date


class ChecklistDeleteResponse(BaseModel):
    ok: bool
    checklist_id: int
    deleted_assignments: int


class MonthViewResponse(BaseModel):
    month: int
    year: int
    per_employee: dict[str, Any]
    month_stats: dict[str, Any]
    employees: list[dict[str, Any]]
    checklists: list[dict[str, Any]]


class DashboardResponse(BaseModel):
    date: date
    today_stats: dict[str, Any]
    can_manual_generate: bool
    generation_method: str
