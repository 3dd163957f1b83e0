"""RealtimeConnection — thin wrapper around the speech-model WebSocket.

Events are JSON objects with a ``type`` field.  Sends raise
``TransportError`` once the socket is gone; iteration simply ends.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidHandshake

from demo_dialer.errors import TransportError

log = logging.getLogger("demo_dialer.realtime")


class RealtimeConnection:
    """One open WebSocket to the realtime speech model."""

    def __init__(self, ws: Any):
        self._ws = ws
        self._closed = False

    @classmethod
    async def connect(
        cls,
        url: str,
        api_key: str,
        open_timeout: float = 10.0,
    ) -> "RealtimeConnection":
        """Open the model socket.

        Protocol pings are disabled; the bridge runs its own keepalive.
        """
        headers = {
            "Authorization": f"Bearer {api_key}",
            "OpenAI-Beta": "realtime=v1",
        }
        try:
            ws = await websockets.connect(
                url,
                additional_headers=headers,
                ping_interval=None,
                max_size=None,
                open_timeout=open_timeout,
            )
        except (OSError, InvalidHandshake, TimeoutError) as exc:
            raise TransportError(f"Could not connect to realtime model: {exc}") from exc
        log.info("Connected to realtime model")
        return cls(ws)

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_event(self, event: dict[str, Any]) -> None:
        if self._closed:
            raise TransportError("Realtime socket is closed")
        try:
            await self._ws.send(json.dumps(event))
        except ConnectionClosed as exc:
            self._closed = True
            raise TransportError(f"Realtime socket closed: {exc}") from exc

    async def receive_event(self) -> Optional[dict[str, Any]]:
        """Next parsed event, or ``None`` when the socket has closed."""
        while not self._closed:
            try:
                raw = await self._ws.recv()
            except ConnectionClosedError as exc:
                log.warning("Realtime socket closed with error: %s", exc)
                self._closed = True
                return None
            except ConnectionClosed:
                log.info("Realtime socket closed")
                self._closed = True
                return None
            try:
                return json.loads(raw)
            except (TypeError, json.JSONDecodeError):
                log.warning("Ignoring non-JSON frame from realtime model")
        return None

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            event = await self.receive_event()
            if event is None:
                return
            yield event

    async def ping(self) -> None:
        """Send a WebSocket ping without waiting for the pong."""
        if self._closed:
            return
        try:
            await self._ws.ping()
        except ConnectionClosed as exc:
            self._closed = True
            raise TransportError(f"Realtime ping failed: {exc}") from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._ws.close()
        log.info("Realtime socket closed by bridge")
