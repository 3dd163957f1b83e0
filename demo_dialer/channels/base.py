"""TelephonyChannel ABC — the call-side socket the relay bridge drives.

Audio is relayed untouched: the carrier's base64 G.711 u-law payloads go to
the speech model as-is and the model's u-law deltas come back the same way.
A channel therefore only frames events; it never converts audio.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

ULAW_SAMPLE_RATE = 8000


@dataclass
class MediaFrame:
    """One inbound media event: base64 u-law 8kHz mono."""

    payload: str  # base64, as received
    track: str = "inbound"
    timestamp: Optional[str] = None

    @property
    def num_samples(self) -> int:
        """Number of u-law samples (one byte each) in this frame."""
        data_len = len(self.payload.rstrip("="))
        return data_len * 3 // 4

    @property
    def duration_ms(self) -> float:
        """Duration of this frame in milliseconds."""
        return (self.num_samples / ULAW_SAMPLE_RATE) * 1000


class TelephonyChannel(ABC):
    """Abstract call-side transport.

    Concrete channels wrap one media WebSocket and expose its events as
    plain dicts (``{"event": "start" | "media" | "mark" | "stop", ...}``).
    """

    @abstractmethod
    async def receive_event(self) -> Optional[dict[str, Any]]:
        """Return the next transport event, or ``None`` once the socket closes."""

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        """Yield events until the socket closes."""
        while True:
            event = await self.receive_event()
            if event is None:
                return
            yield event

    @abstractmethod
    async def send_media(self, stream_sid: str, payload: str) -> None:
        """Send one base64 audio payload addressed to ``stream_sid``.

        Raises ``TransportError`` if the socket is gone.
        """

    @abstractmethod
    async def send_mark(self, stream_sid: str, name: str) -> None:
        """Send a named mark (used as an application-level keepalive)."""

    @abstractmethod
    async def close(self) -> None:
        """Tear down the channel connection.  Safe to call multiple times."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the socket is closed or a ``stop`` event was seen."""
