"""SMS notifier — texts the admin phone about each new demo via Twilio."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any

from demo_dialer.models.booking import Booking
from demo_dialer.notifications.base import Notifier

logger = logging.getLogger(__name__)


class SmsNotifier(Notifier):
    """Send a one-line SMS summary through the Twilio REST client.

    The Twilio SDK is synchronous, so the request runs in the default
    thread pool to keep the event loop free.
    """

    name = "sms"

    def __init__(self, twilio_client: Any, from_number: str, to_number: str) -> None:
        if not from_number or not to_number:
            raise ValueError("Both from and to numbers are required for SMS notifications.")
        self._client = twilio_client
        self._from = from_number
        self._to = to_number

    @staticmethod
    def build_body(booking: Booking) -> str:
        return f"New Demo: {booking.organization} - {booking.contact} - {booking.datetime}"

    async def notify(self, booking: Booking) -> None:
        loop = asyncio.get_running_loop()
        message = await loop.run_in_executor(
            None,
            partial(
                self._client.messages.create,
                body=self.build_body(booking),
                from_=self._from,
                to=self._to,
            ),
        )
        logger.info("SMS notification sent for %s (sid=%s)", booking.id, getattr(message, "sid", "?"))
