"""TwilioMediaStreamChannel — TelephonyChannel for Twilio Media Streams.

Twilio Media Streams deliver audio over a WebSocket as base64-encoded
mulaw (G.711 u-law) at 8kHz mono, 20ms per frame.  The speech model is
configured for the same format, so payloads pass through untouched.

Protocol reference:
  https://www.twilio.com/docs/voice/media-streams/websocket-messages

WebSocket message flow:
  ← {"event":"connected", "protocol":"Call", "version":"1.0.0"}
  ← {"event":"start",     "start":{"streamSid":"...","callSid":"...",
                                   "customParameters":{"callId":"..."}}}
  ← {"event":"media",     "media":{"track":"inbound","payload":"<base64>"}}
  ← {"event":"mark",      "mark":{"name":"..."}}
  ← {"event":"stop"}

  → {"event":"media", "streamSid":"...", "media":{"payload":"<base64>"}}
  → {"event":"mark",  "streamSid":"...", "mark":{"name":"..."}}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import WebSocket, WebSocketDisconnect

from demo_dialer.channels.base import MediaFrame, TelephonyChannel
from demo_dialer.errors import TransportError

log = logging.getLogger("demo_dialer.twilio_channel")


def parse_media(msg: dict[str, Any]) -> MediaFrame:
    """Pull the payload/track out of a ``media`` event."""
    media = msg.get("media") or {}
    return MediaFrame(
        payload=media.get("payload", ""),
        track=media.get("track") or "inbound",
        timestamp=media.get("timestamp"),
    )


class TwilioMediaStreamChannel(TelephonyChannel):
    """TelephonyChannel implementation for Twilio Media Streams over WebSocket.

    Usage::

        @app.websocket("/media-stream")
        async def media_stream(ws: WebSocket):
            await ws.accept()
            channel = TwilioMediaStreamChannel(ws)
            async for event in channel.events():
                ...
    """

    def __init__(self, websocket: WebSocket):
        self._ws = websocket
        self._stream_sid: str = ""
        self._call_sid: str = ""
        self._custom_parameters: dict[str, str] = {}
        self._connected = False
        self._stopped = False
        self._closed = False

    @property
    def stream_sid(self) -> str:
        return self._stream_sid

    @property
    def custom_parameters(self) -> dict[str, str]:
        return dict(self._custom_parameters)

    @property
    def closed(self) -> bool:
        return self._closed or self._stopped

    async def receive_event(self) -> Optional[dict[str, Any]]:
        """Read the next JSON event from Twilio.

        Returns ``None`` when the WebSocket closes.  Non-JSON frames are
        logged and skipped.
        """
        while not self._closed:
            try:
                raw = await self._ws.receive_text()
            except WebSocketDisconnect:
                log.info("Twilio WebSocket closed (call_sid=%s)", self._call_sid)
                self._closed = True
                return None
            except RuntimeError as exc:
                # Starlette raises RuntimeError once the socket is already closed.
                log.info("Twilio WebSocket unavailable: %s", exc)
                self._closed = True
                return None

            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                log.warning("Ignoring non-JSON frame from Twilio: %.80r", raw)
                continue

            self._observe(msg)
            return msg
        return None

    def _observe(self, msg: dict[str, Any]) -> None:
        event = msg.get("event")
        if event == "connected":
            log.info(
                "Twilio connected: protocol=%s version=%s",
                msg.get("protocol"),
                msg.get("version"),
            )
            self._connected = True

        elif event == "start":
            start = msg.get("start") or {}
            self._stream_sid = start.get("streamSid", "")
            self._call_sid = start.get("callSid", "")
            self._custom_parameters = dict(start.get("customParameters") or {})
            log.info(
                "Twilio stream started: stream_sid=%s call_sid=%s",
                self._stream_sid,
                self._call_sid,
            )

        elif event == "stop":
            log.info("Twilio stream stopped (call_sid=%s)", self._call_sid)
            self._stopped = True

    async def send_media(self, stream_sid: str, payload: str) -> None:
        await self._send(
            {
                "event": "media",
                "streamSid": stream_sid,
                "media": {"payload": payload},
            }
        )

    async def send_mark(self, stream_sid: str, name: str) -> None:
        await self._send(
            {
                "event": "mark",
                "streamSid": stream_sid,
                "mark": {"name": name},
            }
        )

    async def _send(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise TransportError("Twilio WebSocket is closed")
        try:
            await self._ws.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as exc:
            self._closed = True
            raise TransportError(f"Failed to send to Twilio: {exc}") from exc

    async def get_caller_info(self) -> dict[str, Any]:
        """Return Twilio stream metadata."""
        return {
            "call_sid": self._call_sid,
            "stream_sid": self._stream_sid,
            "transport": "twilio",
            "custom_parameters": dict(self._custom_parameters),
        }

    async def close(self) -> None:
        """Close the Twilio Media Stream WebSocket."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close()
        except RuntimeError as exc:
            log.debug("Twilio WebSocket already closed: %s", exc)
        log.info("Twilio channel closed (call_sid=%s)", self._call_sid)
