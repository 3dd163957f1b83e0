"""Book-demo tool for the voice agent.

The model calls ``book_demo`` once the lead has picked a slot.  The booking
is recorded in the scheduling store and every configured notifier is fired
in the background; the tool's reply never waits on them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from demo_dialer.models.booking import Booking
from demo_dialer.notifications.base import Notifier
from demo_dialer.scheduler.store import SchedulingStore
from demo_dialer.tools.base import BaseTool

logger = logging.getLogger(__name__)


class BookDemoTool(BaseTool):
    """Record a demo booking.

    Parameters accepted from the model:

    * ``organization`` -- Business the lead represents.
    * ``contact``      -- Lead's name.
    * ``phone``        -- Callback number.
    * ``email``        -- Optional email address.
    * ``datetime``     -- Slot label, e.g. ``"Oct 20 at 9:00 AM"``.
    * ``notes``        -- Optional free-form notes.

    Raises ``ValidationError`` (from the store) when a required field is
    missing; the dispatcher turns that into a structured reply.
    """

    def __init__(
        self,
        store: SchedulingStore,
        notifiers: Iterable[Notifier] = (),
        rep_name: str = "Jakob",
    ) -> None:
        self._store = store
        self._notifiers = list(notifiers)
        self._rep_name = rep_name
        self._background: set[asyncio.Task] = set()

    # ---- BaseTool interface ------------------------------------------------

    @property
    def name(self) -> str:
        return "book_demo"

    @property
    def description(self) -> str:
        return "Book a demo appointment once the lead has chosen a time slot."

    @property
    def parameters_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "organization": {
                    "type": "string",
                    "description": "Name of the lead's business.",
                },
                "contact": {
                    "type": "string",
                    "description": "Full name of the person booking.",
                },
                "phone": {
                    "type": "string",
                    "description": "Phone number to call for the demo.",
                },
                "email": {
                    "type": "string",
                    "description": "Email address for the calendar invite.",
                },
                "datetime": {
                    "type": "string",
                    "description": "Chosen slot exactly as offered, e.g. 'Oct 20 at 9:00 AM'.",
                },
                "notes": {
                    "type": "string",
                    "description": "Anything worth telling the rep before the demo.",
                },
            },
            "required": ["organization", "contact", "phone", "datetime"],
        }

    async def execute(self, **kwargs: Any) -> dict:
        """Store the booking, kick off notifications, return the confirmation."""
        booking = self._store.book(kwargs)
        self._notify(booking)

        return {
            "success": True,
            "confirmationId": booking.id,
            "message": f"Demo confirmed for {booking.contact} from {booking.organization}",
            "datetime": booking.datetime,
            "details": (
                f"{self._rep_name} will call at the scheduled time. "
                "Calendar invite coming shortly."
            ),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _notify(self, booking: Booking) -> None:
        """Fire every notifier as an independent background task."""
        for notifier in self._notifiers:
            task = asyncio.create_task(
                notifier.notify(booking), name=f"notify-{notifier.name}-{booking.id}"
            )
            self._background.add(task)
            task.add_done_callback(self._on_notified)

    def _on_notified(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Booking notification %s failed: %s", task.get_name(), exc)

    @property
    def pending_notifications(self) -> int:
        return len(self._background)
