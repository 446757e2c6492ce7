from __future__ import annotations

from datetime import date, datetime
from typing import Any

from checklist_scheduler.errors import ValidationError
from checklist_scheduler.models import RecurrenceType
from checklist_scheduler.services.day_utils import js_weekday, to_calendar_day

DAY_OF_WEEK_NAMES: dict[int, str] = {
    0: "Sunday",
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}


def applies_on(definition: Any, day: date | datetime | str) -> bool:
    """Whether a checklist definition is due on ``day``.

    Monthly rules match the literal day of month, so day 31 never fires in
    shorter months. Unknown recurrence types never fire.
    """
    recurrence_type = getattr(definition, "recurrence_type", None)
    if isinstance(recurrence_type, RecurrenceType):
        recurrence_type = recurrence_type.value

    try:
        day_date = to_calendar_day(day)
    except ValidationError:
        return False

    if recurrence_type == RecurrenceType.DAILY.value:
        return True
    if recurrence_type == RecurrenceType.WEEKLY.value:
        return js_weekday(day_date) == definition.day_of_week
    if recurrence_type == RecurrenceType.MONTHLY.value:
        return day_date.day == definition.day_of_month
    if recurrence_type == RecurrenceType.ONCE.value:
        specific_date = definition.specific_date
        if specific_date is None:
            return False
        try:
            return day_date == to_calendar_day(specific_date)
        except ValidationError:
            return False
    return False


def ordinal_suffix(day: int) -> str:
    if 11 <= day <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def describe_recurrence(definition: Any) -> str:
    recurrence_type = getattr(definition, "recurrence_type", None)
    if isinstance(recurrence_type, RecurrenceType):
        recurrence_type = recurrence_type.value

    if recurrence_type == RecurrenceType.DAILY.value:
        return "Daily"
    if recurrence_type == RecurrenceType.WEEKLY.value:
        return f"Weekly ({DAY_OF_WEEK_NAMES.get(definition.day_of_week, 'Unknown')})"
    if recurrence_type == RecurrenceType.MONTHLY.value and definition.day_of_month is not None:
        return f"Monthly ({definition.day_of_month}{ordinal_suffix(definition.day_of_month)})"
    if recurrence_type == RecurrenceType.ONCE.value and definition.specific_date is not None:
        return f"Once ({to_calendar_day(definition.specific_date).isoformat()})"
    return "Unknown"
