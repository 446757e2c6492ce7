from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any

from checklist_scheduler.models import ChecklistAssignment

logger = logging.getLogger("checklist_scheduler.duplicate_guard")


def assignment_key(checklist_id: int | str, employee_id: str, day_date: date) -> str:
    return f"{checklist_id}_{employee_id}_{day_date.isoformat()}"


class KeyedMutexTable:
    """Process-wide table of assignment keys with a create in flight.

    ``hold`` never blocks: a second caller for a held key gets ``False`` and must
    not write. Keys are removed on every exit path, so the table is empty
    whenever no create is running.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    def __len__(self) -> int:
        with self._guard:
            return len(self._held)

    def is_held(self, key: str) -> bool:
        with self._guard:
            return key in self._held

    @contextmanager
    def hold(self, key: str) -> Iterator[bool]:
        with self._guard:
            acquired = key not in self._held
            if acquired:
                self._held.add(key)
        try:
            yield acquired
        finally:
            if acquired:
                with self._guard:
                    self._held.discard(key)


def _created_sort_key(assignment: ChecklistAssignment) -> tuple[datetime, int]:
    created_at = assignment.created_at
    if created_at is None:
        created_at = datetime.max
    # SQLite hands back naive values; compare everything as naive UTC.
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc).replace(tzinfo=None)
    return created_at, assignment.id or 0


def cleanup_duplicates(store: Any, day_date: date) -> dict[str, Any]:
    """Keep the earliest-created record per (checklist, employee, day); delete the rest."""
    groups: dict[str, list[ChecklistAssignment]] = defaultdict(list)
    for assignment in store.list_assignments(day_date=day_date):
        key = assignment_key(assignment.checklist_id, assignment.employee_id, assignment.day_date)
        groups[key].append(assignment)

    duplicates_removed = 0
    for key, assignments in groups.items():
        if len(assignments) < 2:
            continue
        assignments.sort(key=_created_sort_key)
        kept = assignments[0]
        for duplicate in assignments[1:]:
            store.delete_assignment(duplicate)
            duplicates_removed += 1
        logger.warning(
            "duplicates_removed",
            extra={
                "org": store.org,
                "assignment_key": key,
                "kept_id": kept.id,
                "removed_count": len(assignments) - 1,
            },
        )

    return {"duplicates_removed": duplicates_removed, "date": day_date}
