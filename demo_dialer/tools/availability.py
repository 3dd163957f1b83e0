"""Check-availability tool for the voice agent.

The model calls ``check_availability`` with ``when`` ("today", "tomorrow"
or a weekday name) and gets back the open demo slots for that date.
"""

from __future__ import annotations

import logging
from typing import Any

from demo_dialer.scheduler.store import SchedulingStore
from demo_dialer.tools.base import BaseTool

logger = logging.getLogger(__name__)


class CheckAvailabilityTool(BaseTool):
    """Return open demo slots for one day.

    Parameters accepted from the model:

    * ``when`` -- ``"today"``, ``"tomorrow"`` or a day name.
    """

    def __init__(self, store: SchedulingStore) -> None:
        self._store = store

    # ---- BaseTool interface ------------------------------------------------

    @property
    def name(self) -> str:
        return "check_availability"

    @property
    def description(self) -> str:
        return "Check available demo slots for a specific date."

    @property
    def parameters_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "when": {
                    "type": "string",
                    "description": "Date to check: 'today', 'tomorrow', or day name",
                },
            },
            "required": ["when"],
        }

    async def execute(self, **kwargs: Any) -> dict:
        """Query the store and shape the reply the model narrates."""
        when = str(kwargs.get("when") or "today")
        availability = self._store.availability(when)

        if availability.message:
            return {
                "success": True,
                "message": availability.message,
                "slots": [],
            }

        logger.info(
            "check_availability(%s) → %s: %d slots",
            when,
            availability.date,
            len(availability.slots),
        )
        return {
            "success": True,
            "date": availability.date,
            "dayName": availability.weekday,
            "slots": [
                {"time": t, "display": f"{availability.date} at {t}"}
                for t in availability.slots
            ],
        }
