from __future__ import annotations

from datetime import date, datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from checklist_scheduler.errors import ValidationError
from checklist_scheduler.settings import get_settings


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or "Europe/Istanbul"
    try:
        return ZoneInfo(raw_name)
    except Exception:
        return ZoneInfo("Europe/Istanbul")


def local_today() -> date:
    return datetime.now(attendance_timezone()).date()


def to_calendar_day(value: date | datetime | str) -> date:
    """Reduce a date, timestamp or ISO string to its calendar day.

    Timestamps keep the calendar day they carry; no timezone conversion is applied.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        day_part = value.strip().replace(" ", "T", 1).split("T", 1)[0]
        try:
            return date.fromisoformat(day_part)
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {value!r}") from exc
    raise ValidationError(f"Invalid date: {value!r}")


def js_weekday(day_date: date) -> int:
    """0=Sunday ... 6=Saturday."""
    return day_date.isoweekday() % 7
