"""In-memory scheduling store: slot availability plus the booking ledger.

Bookings are append-only.  A slot counts as taken for a date when some
booking's datetime label names that date and that time, e.g.
``"Oct 20 at 9:00 AM"``.  The store does not reject double bookings.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from datetime import date, datetime
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo

from demo_dialer.errors import ValidationError
from demo_dialer.models.booking import Availability, Booking, BookingRequest
from demo_dialer.scheduler.catalog import (
    DEMO_SLOTS,
    WEEKEND,
    catalog_slots,
    display_date,
    resolve_when,
    weekday_name,
)

log = logging.getLogger("demo_dialer.scheduler.store")

REQUIRED_FIELDS = ("organization", "contact", "phone", "datetime")
WEEKEND_MESSAGE = "No demos on weekends"


class SchedulingStore:
    """Thread-safe slot catalog and booking ledger shared by all calls."""

    def __init__(
        self,
        catalog: dict[str, list[str]] | None = None,
        timezone: str = "America/Denver",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._catalog = catalog if catalog is not None else DEMO_SLOTS
        self._tz = ZoneInfo(timezone)
        self._clock = clock
        self._lock = threading.Lock()
        self._bookings: list[Booking] = []
        self._last_id_ms = 0

    # ── Availability ───────────────────────────────────────────

    def today(self) -> date:
        return datetime.fromtimestamp(self._clock(), tz=self._tz).date()

    def availability(self, when: str, today: date | None = None) -> Availability:
        """Return the open slots for ``when`` (today / tomorrow / weekday)."""
        target = resolve_when(when, today or self.today())
        day = weekday_name(target)
        date_str = display_date(target)

        if day in WEEKEND:
            return Availability(
                date=date_str,
                weekday=day.capitalize(),
                slots=[],
                message=WEEKEND_MESSAGE,
            )

        taken = self._taken_times(date_str)
        slots = [s.time for s in catalog_slots(self._catalog, day) if s.time not in taken]
        log.debug("Availability %s (%s): %d open, %d taken", date_str, day, len(slots), len(taken))
        return Availability(date=date_str, weekday=day.capitalize(), slots=slots)

    def _taken_times(self, date_str: str) -> set[str]:
        # Whole-token match so "Oct 2" doesn't claim "Oct 20" bookings.
        pattern = re.compile(rf"(?<!\w){re.escape(date_str)}(?!\d)")
        taken: set[str] = set()
        with self._lock:
            for booking in self._bookings:
                if pattern.search(booking.datetime) and " at " in booking.datetime:
                    taken.add(booking.datetime.rsplit(" at ", 1)[1].strip())
        return taken

    # ── Bookings ───────────────────────────────────────────────

    def book(self, details: BookingRequest | Mapping[str, Any]) -> Booking:
        """Validate and record a booking.

        Raises:
            ValidationError: if organization, contact, phone or datetime
                is missing or blank.  Nothing is stored in that case.
        """
        if isinstance(details, BookingRequest):
            data = details.model_dump()
        else:
            data = dict(details)

        missing = [f for f in REQUIRED_FIELDS if not str(data.get(f) or "").strip()]
        if missing:
            raise ValidationError(missing=missing)

        with self._lock:
            booking = Booking(
                id=self._next_id(),
                organization=str(data["organization"]).strip(),
                contact=str(data["contact"]).strip(),
                phone=str(data["phone"]).strip(),
                email=(str(data["email"]).strip() or None) if data.get("email") else None,
                datetime=str(data["datetime"]).strip(),
                notes=(str(data["notes"]).strip() or None) if data.get("notes") else None,
            )
            self._bookings.append(booking)

        log.info(
            "Demo booked: %s for %s (%s) at %s",
            booking.id,
            booking.organization,
            booking.contact,
            booking.datetime,
        )
        return booking

    def _next_id(self) -> str:
        # Caller holds the lock.  Epoch-ms, bumped to stay strictly increasing.
        now_ms = int(self._clock() * 1000)
        self._last_id_ms = max(now_ms, self._last_id_ms + 1)
        return f"DEMO-{self._last_id_ms}"

    def bookings(self) -> list[Booking]:
        """All bookings, newest first."""
        with self._lock:
            return sorted(self._bookings, key=lambda b: (b.booked_at, b.id), reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._bookings)
