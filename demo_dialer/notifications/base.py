"""Abstract booking notifier.

Notifiers are best-effort collaborators: the booking tool schedules them
as background tasks and never waits on their outcome.
"""

from abc import ABC, abstractmethod

from demo_dialer.models.booking import Booking


class Notifier(ABC):
    """Announces a freshly booked demo somewhere outside the call."""

    name: str = "notifier"

    @abstractmethod
    async def notify(self, booking: Booking) -> None:
        """Deliver the notification.  May raise; callers log and move on."""
