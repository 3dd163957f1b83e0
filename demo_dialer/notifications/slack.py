"""Slack incoming-webhook notifier for new demo bookings."""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from demo_dialer.models.booking import Booking
from demo_dialer.notifications.base import Notifier

logger = logging.getLogger(__name__)


class SlackNotifier(Notifier):
    """Post a Block Kit summary of the booking to a Slack webhook."""

    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        rep_name: str = "Jakob",
        agent_name: str = "Kora",
        company_name: str = "Boostly",
        timezone_name: str = "America/Denver",
        timeout: float = 10.0,
    ) -> None:
        if not webhook_url:
            raise ValueError("Slack webhook URL must be provided.")
        self._webhook_url = webhook_url
        self._rep_name = rep_name
        self._agent_name = agent_name
        self._company_name = company_name
        self._tz = ZoneInfo(timezone_name)
        self._timeout = timeout

    def build_message(self, booking: Booking) -> dict[str, Any]:
        """Build the Block Kit payload for a booking."""
        booked_at = booking.booked_at
        if booked_at.tzinfo is None:
            booked_at = booked_at.replace(tzinfo=timezone.utc)
        booked_local = booked_at.astimezone(self._tz)
        fields = [
            ("Organization", booking.organization),
            ("Contact", booking.contact),
            ("Phone", booking.phone),
            ("Email", booking.email or "Not provided"),
            ("Date/Time", booking.datetime),
            ("Rep", self._rep_name),
        ]
        return {
            "text": f"New {self._company_name} Demo Booked!",
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": "New Demo Booked!"},
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}
                        for label, value in fields
                    ],
                },
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": f"*Notes:*\n{booking.notes or 'No notes provided'}",
                    },
                },
                {"type": "divider"},
                {
                    "type": "context",
                    "elements": [
                        {
                            "type": "mrkdwn",
                            "text": (
                                f"{booking.id} booked by {self._agent_name} AI at "
                                f"{booked_local.strftime('%Y-%m-%d %I:%M %p %Z')}"
                            ),
                        }
                    ],
                },
            ],
        }

    async def notify(self, booking: Booking) -> None:
        message = self.build_message(booking)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._webhook_url, json=message)
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Slack notification failed for %s (status %s)",
                booking.id,
                exc.response.status_code,
            )
            raise
        logger.info("Slack notification sent for %s", booking.id)
