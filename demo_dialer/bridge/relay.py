"""AudioRelayBridge — one call's duplex audio path and turn-taking.

Two sockets feed the bridge: the Twilio media stream and the realtime
model.  A reader task per socket pushes events onto a single queue, and
one consumer task applies them in arrival order, so every handler runs
to completion before the next starts.  Keepalive tasks only send; they
never touch state.

Phases::

    CONNECTING ──model open──▶ AWAITING_STREAM ──start──▶ ACTIVE
        │                                                   │
        └──start (stream known) ──model open──▶ ACTIVE      │
                                                            ▼
                           any close / stop ──▶ CLOSING ──▶ CLOSED

Turn-taking rules:

* Caller audio is appended as it arrives and committed every
  ``commit_threshold_ms`` worth of frames.
* On ``speech_stopped`` any uncommitted audio is committed *before* a
  response is requested.
* At most one response is in flight.  ``response.create`` sets the flag,
  ``response.done`` clears it.
* Model audio that arrives before Twilio's ``start`` is buffered and
  flushed once, in order, when the stream id becomes known.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional

from demo_dialer.bridge.state import BridgePhase, BridgeState
from demo_dialer.channels.base import TelephonyChannel
from demo_dialer.config import Settings, settings as default_settings
from demo_dialer.errors import TransportError, UpstreamModelError
from demo_dialer.realtime.client import RealtimeConnection
from demo_dialer.realtime.session import (
    build_function_output,
    build_greeting_item,
    build_session_update,
    input_audio_append,
    input_audio_commit,
    response_create,
)
from demo_dialer.sessions import SessionRegistry
from demo_dialer.tools.dispatcher import ToolDispatcher

log = logging.getLogger("demo_dialer.bridge")

# Queue item kinds
_TELEPHONY = "telephony"
_MODEL = "model"
_MODEL_OPEN = "model-open"
_CLOSED = "closed"

AUDIO_DELTA_TYPES = frozenset({"response.audio.delta", "response.output_audio.delta"})

ModelFactory = Callable[[], Awaitable[RealtimeConnection]]


class AudioRelayBridge:
    """Relay one call between a TelephonyChannel and the realtime model.

    Usage::

        bridge = AudioRelayBridge(channel, dispatcher, registry)
        await bridge.run()   # returns once the call is torn down

    The ``handle_*`` / ``on_model_open`` methods are the state machine's
    entry points; ``run()`` feeds them from the two sockets.
    """

    def __init__(
        self,
        channel: TelephonyChannel,
        dispatcher: ToolDispatcher,
        registry: SessionRegistry,
        settings: Optional[Settings] = None,
        model_factory: Optional[ModelFactory] = None,
    ):
        self._channel = channel
        self._dispatcher = dispatcher
        self._registry = registry
        self._settings = settings or default_settings
        self._model_factory = model_factory or self._connect_model
        self._model: Optional[RealtimeConnection] = None

        self._frame_ms = self._settings.telephony_frame_ms
        self._commit_threshold_ms = self._settings.commit_threshold_ms
        self._keepalive_s = self._settings.keepalive_interval_s

        self.state = BridgeState()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()

    async def _connect_model(self) -> RealtimeConnection:
        return await RealtimeConnection.connect(
            self._settings.openai_realtime_url,
            self._settings.openai_api_key,
        )

    @property
    def phase(self) -> BridgePhase:
        return self.state.phase

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Relay until either side closes, then tear everything down."""
        self._spawn(self._read_telephony(), "telephony-reader")
        self._spawn(self._keepalive_telephony(), "telephony-keepalive")
        consumer = self._spawn(self._consume(), "bridge-consumer")
        try:
            try:
                model = await self._model_factory()
            except TransportError as exc:
                log.error("Realtime model unreachable: %s", exc.detail)
                self._queue.put_nowait((_CLOSED, _MODEL))
            else:
                if self.state.terminal:
                    await model.close()
                    return
                self._queue.put_nowait((_MODEL_OPEN, model))
            await consumer
        finally:
            await self._teardown("bridge exit")
            pending = [t for t in self._tasks if not t.done()]
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _read_telephony(self) -> None:
        async for event in self._channel.events():
            await self._queue.put((_TELEPHONY, event))
        await self._queue.put((_CLOSED, _TELEPHONY))

    async def _read_model(self, model: RealtimeConnection) -> None:
        async for event in model.events():
            await self._queue.put((_MODEL, event))
        await self._queue.put((_CLOSED, _MODEL))

    async def _consume(self) -> None:
        while not self.state.terminal:
            kind, payload = await self._queue.get()
            try:
                if kind == _TELEPHONY:
                    await self.handle_telephony_event(payload)
                elif kind == _MODEL:
                    await self.handle_model_event(payload)
                elif kind == _MODEL_OPEN:
                    await self.on_model_open(payload)
                    self._spawn(self._read_model(payload), "model-reader")
                    self._spawn(self._keepalive_model(), "model-keepalive")
                elif kind == _CLOSED:
                    await self._teardown(f"{payload} socket closed")
            except TransportError as exc:
                log.warning("Transport failure on call %s: %s", self.state.call_id, exc.detail)
                await self._teardown("transport error")

    async def close(self) -> None:
        await self._teardown("closed by caller")

    async def _teardown(self, reason: str) -> None:
        if self.state.terminal:
            return
        log.info("Tearing down call %s (%s)", self.state.call_id or "?", reason)
        self.state.phase = BridgePhase.CLOSING

        if self._model is not None:
            try:
                await self._model.close()
            except Exception as exc:
                log.warning("Failed to close realtime socket: %s", exc)
        try:
            await self._channel.close()
        except Exception as exc:
            log.warning("Failed to close telephony socket: %s", exc)

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        self.state.release()
        self.state.phase = BridgePhase.CLOSED
        log.info("Call %s closed", self.state.call_id or "?")

    # ------------------------------------------------------------------
    # Keepalive
    # ------------------------------------------------------------------

    async def _keepalive_model(self) -> None:
        while True:
            await asyncio.sleep(self._keepalive_s)
            if self._model is None:
                continue
            try:
                await self._model.ping()
            except TransportError as exc:
                log.warning("Realtime keepalive failed: %s", exc.detail)

    async def _keepalive_telephony(self) -> None:
        while True:
            await asyncio.sleep(self._keepalive_s)
            if not self.state.stream_sid:
                continue
            try:
                await self._channel.send_mark(self.state.stream_sid, "keepalive")
            except TransportError as exc:
                log.warning("Telephony keepalive failed: %s", exc.detail)

    # ------------------------------------------------------------------
    # Model socket
    # ------------------------------------------------------------------

    async def on_model_open(self, model: RealtimeConnection) -> None:
        """Model socket is up.  Configure and greet now, or wait for ``start``."""
        self._model = model
        self.state.model_open = True
        if self.state.stream_known:
            await self._configure_and_greet()
            self.state.phase = BridgePhase.ACTIVE
        else:
            self.state.phase = BridgePhase.AWAITING_STREAM
            log.info("Realtime model open; waiting for Twilio stream start")

    async def handle_model_event(self, event: dict[str, Any]) -> None:
        etype = event.get("type", "")

        if etype in AUDIO_DELTA_TYPES:
            delta = event.get("delta")
            if delta:
                await self._send_outbound_audio(delta)

        elif etype == "input_audio_buffer.speech_stopped":
            await self._commit_pending()
            await self._request_response()

        elif etype == "response.created":
            self.state.response_in_flight = True

        elif etype == "response.done":
            self.state.response_in_flight = False
            if self.state.tool_followup_pending:
                self.state.tool_followup_pending = False
                await self._request_response()

        elif etype == "response.function_call_arguments.done":
            await self._handle_tool_call(event)

        elif etype == "error":
            err = UpstreamModelError(event.get("error"))
            log.warning("Realtime model error on call %s: %s", self.state.call_id, err.detail)

        elif etype in ("session.created", "session.updated"):
            log.info("Realtime %s", etype)

        else:
            log.debug("Realtime event: %s", etype)

    async def _send_model(self, event: dict[str, Any]) -> None:
        if self._model is None:
            raise TransportError("Realtime socket not open")
        await self._model.send_event(event)

    async def _configure_and_greet(self) -> None:
        if not self.state.session_configured:
            self.state.session_configured = True
            await self._send_model(
                build_session_update(
                    self._settings, self.state.call_session, self._dispatcher.manifest()
                )
            )
        if not self.state.greeting_requested:
            self.state.greeting_requested = True
            await self._send_model(build_greeting_item(self._settings, self.state.call_session))
            await self._request_response()

    async def _commit_pending(self) -> None:
        if self.state.pending_chunks and self.state.model_open:
            self.state.pending_chunks = 0
            await self._send_model(input_audio_commit())

    async def _request_response(self) -> bool:
        """Send ``response.create`` unless one is already in flight."""
        if self.state.response_in_flight:
            return False
        self.state.response_in_flight = True
        await self._send_model(response_create())
        return True

    async def _handle_tool_call(self, event: dict[str, Any]) -> None:
        name = event.get("name", "")
        result = await self._dispatcher.dispatch(name, event.get("arguments"))
        log.info("Tool %s → success=%s", name, result.get("success"))

        await self._send_model(build_function_output(event.get("call_id", ""), json.dumps(result)))
        if self.state.response_in_flight:
            self.state.tool_followup_pending = True
        else:
            await self._request_response()

    # ------------------------------------------------------------------
    # Telephony socket
    # ------------------------------------------------------------------

    async def handle_telephony_event(self, event: dict[str, Any]) -> None:
        kind = event.get("event")

        if kind == "media":
            await self._handle_inbound_media(event.get("media") or {})

        elif kind == "start":
            await self._handle_start(event.get("start") or {})

        elif kind == "stop":
            await self._handle_stop()

        elif kind in ("connected", "mark"):
            log.debug("Twilio %s", kind)

        else:
            log.debug("Ignoring Twilio event %r", kind)

    async def _handle_start(self, start: dict[str, Any]) -> None:
        params = start.get("customParameters") or {}
        self.state.stream_sid = start.get("streamSid") or None
        self.state.call_id = params.get("callId", "")
        self.state.call_session = self._registry.get(self.state.call_id)

        if self.state.call_session is None:
            log.warning("Stream %s started for unknown call id %r", self.state.stream_sid, self.state.call_id)
        else:
            log.info(
                "Stream %s started for %s (%s)",
                self.state.stream_sid,
                self.state.call_session.name,
                self.state.call_session.company,
            )

        if self.state.model_open:
            await self._configure_and_greet()
            self.state.phase = BridgePhase.ACTIVE

        await self._drain_outbound()

    async def _drain_outbound(self) -> None:
        if self.state.buffer_drained or not self.state.stream_sid:
            return
        buffered = len(self.state.outbound_buffer)
        while self.state.outbound_buffer:
            payload = self.state.outbound_buffer.popleft()
            await self._channel.send_media(self.state.stream_sid, payload)
        self.state.buffer_drained = True
        if buffered:
            log.info("Flushed %d buffered audio chunks to stream %s", buffered, self.state.stream_sid)

    async def _send_outbound_audio(self, payload: str) -> None:
        if self.state.stream_sid and self.state.buffer_drained:
            await self._channel.send_media(self.state.stream_sid, payload)
        else:
            self.state.outbound_buffer.append(payload)

    async def _handle_inbound_media(self, media: dict[str, Any]) -> None:
        track = media.get("track") or "inbound"
        payload = media.get("payload")
        if track != "inbound" or not payload or not self.state.model_open:
            return

        await self._send_model(input_audio_append(payload))
        self.state.pending_chunks += 1
        if self.state.pending_chunks * self._frame_ms >= self._commit_threshold_ms:
            await self._commit_pending()

    async def _handle_stop(self) -> None:
        log.info("Twilio stop on call %s", self.state.call_id)
        if self.state.model_open:
            try:
                await self._commit_pending()
                await self._request_response()
            except TransportError as exc:
                log.info("Final response request dropped: %s", exc.detail)
        await self._teardown("telephony stop")
