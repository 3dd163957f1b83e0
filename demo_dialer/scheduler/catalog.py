"""Static demo slot catalog and ``when`` → calendar date resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

log = logging.getLogger("demo_dialer.scheduler.catalog")

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WEEKEND = {"saturday", "sunday"}

_WEEKDAY_SLOTS = ["9:00 AM", "10:00 AM", "11:00 AM", "2:00 PM", "3:00 PM", "4:00 PM"]

DEMO_SLOTS: dict[str, list[str]] = {
    "monday": list(_WEEKDAY_SLOTS),
    "tuesday": list(_WEEKDAY_SLOTS),
    "wednesday": list(_WEEKDAY_SLOTS),
    "thursday": list(_WEEKDAY_SLOTS),
    "friday": ["9:00 AM", "10:00 AM", "11:00 AM", "2:00 PM", "3:00 PM"],
}


@dataclass(frozen=True)
class TimeSlot:
    """A bookable (weekday, time-of-day label) pair from the catalog."""

    weekday: str
    time: str


def catalog_slots(catalog: dict[str, list[str]], weekday: str) -> list[TimeSlot]:
    """Return the catalog's slots for a lowercase weekday name."""
    if weekday in WEEKEND:
        return []
    return [TimeSlot(weekday=weekday, time=t) for t in catalog.get(weekday, [])]


def resolve_when(when: str, today: date) -> date:
    """Resolve ``"today"``, ``"tomorrow"`` or a weekday name to a date.

    Weekday names resolve to the next occurrence at or after ``today``.
    Anything unrecognised falls back to today.
    """
    key = (when or "").strip().lower()
    if key == "today":
        return today
    if key == "tomorrow":
        return today + timedelta(days=1)
    if key in WEEKDAYS:
        days_ahead = (WEEKDAYS.index(key) - today.weekday()) % 7
        return today + timedelta(days=days_ahead)

    log.warning("Unrecognised availability request %r; using today", when)
    return today


def weekday_name(day: date) -> str:
    """Lowercase weekday name, e.g. ``"monday"``."""
    return WEEKDAYS[day.weekday()]


def display_date(day: date) -> str:
    """Short display form used in booking labels, e.g. ``"Oct 20"``."""
    return f"{day.strftime('%b')} {day.day}"
