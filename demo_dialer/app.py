"""FastAPI application — outbound dialing, Twilio webhooks and the media bridge.

Endpoints:

  GET  /                  Liveness message
  GET  /health            Health check
  POST /make-call         Place an outbound call to a lead (admin)
  *    /outbound-answer   Twilio answer webhook: TwiML to hang up or stream
  POST /call-status       Twilio status callback: expires the call's session
  GET  /demos             Booked demos, newest first (admin)
  POST /mcp/list_tools    Tool manifest over HTTP
  POST /mcp/call_tool     Run a tool over HTTP
  WS   /media-stream      Twilio Media Stream ↔ realtime model bridge

The outbound flow:
  1. POST /make-call registers the lead and asks Twilio to dial
  2. Twilio fetches /outbound-answer?callId=… once someone picks up
  3. Machines get <Hangup/>; humans get <Connect><Stream> with the callId
     passed as a <Parameter> (survives stream renegotiation, unlike a query)
  4. Twilio opens /media-stream and AudioRelayBridge takes over
  5. Terminal statuses on /call-status expire the registry entry
"""

from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import logging
import time
from typing import Any, Optional
from xml.etree.ElementTree import Element, SubElement, tostring

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-24s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, Request, WebSocket
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from demo_dialer.auth import require_admin_token
from demo_dialer.bridge.relay import AudioRelayBridge, ModelFactory
from demo_dialer.channels.twilio_channel import TwilioMediaStreamChannel
from demo_dialer.config import Settings, settings as default_settings
from demo_dialer.models.lead import CallRequest
from demo_dialer.notifications import Notifier, SlackNotifier, SmsNotifier
from demo_dialer.scheduler.store import SchedulingStore
from demo_dialer.sessions import CallAttemptTracker, SessionRegistry, redact_pii
from demo_dialer.tools import BookDemoTool, CheckAvailabilityTool, ToolDispatcher

log = logging.getLogger("demo_dialer.app")

_START_TIME = time.time()

MACHINE_ANSWERS = frozenset(
    {"machine_start", "machine_end_beep", "machine_end_silence", "machine_end_other", "fax"}
)
TERMINAL_STATUSES = frozenset({"completed", "no-answer", "busy", "failed", "canceled"})
STATUS_CALLBACK_EVENTS = ["answered", "completed", "no-answer", "busy"]
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def build_twilio_client(cfg: Settings) -> Optional[Client]:
    if not cfg.twilio_account_sid or not cfg.twilio_auth_token:
        return None
    return Client(cfg.twilio_account_sid, cfg.twilio_auth_token)


def build_notifiers(cfg: Settings, twilio_client: Optional[Any]) -> list[Notifier]:
    """Slack and SMS notifiers for whichever channels are configured."""
    notifiers: list[Notifier] = []
    if cfg.slack_webhook_url:
        notifiers.append(
            SlackNotifier(
                cfg.slack_webhook_url,
                rep_name=cfg.rep_name,
                agent_name=cfg.agent_name,
                company_name=cfg.company_name,
                timezone_name=cfg.calendar_timezone,
            )
        )
    if cfg.admin_phone and cfg.twilio_phone_number and twilio_client is not None:
        notifiers.append(SmsNotifier(twilio_client, cfg.twilio_phone_number, cfg.admin_phone))
    return notifiers


def build_dispatcher(
    store: SchedulingStore,
    notifiers: list[Notifier],
    rep_name: str,
) -> ToolDispatcher:
    return ToolDispatcher(
        [
            CheckAvailabilityTool(store),
            BookDemoTool(store, notifiers, rep_name=rep_name),
        ]
    )


def _public_base(request: Request, cfg: Settings) -> str:
    """https://host for callback URLs; PUBLIC_BASE_URL wins over the Host header."""
    if cfg.public_base_url:
        return cfg.public_base_url.rstrip("/")
    host = request.headers.get("host", "localhost")
    return f"https://{host}"


def _twiml(response_el: Element) -> str:
    return XML_DECLARATION + tostring(response_el, encoding="unicode")


def build_stream_twiml(stream_url: str, call_id: str) -> str:
    response_el = Element("Response")
    connect_el = SubElement(response_el, "Connect")
    stream_el = SubElement(connect_el, "Stream")
    stream_el.set("url", stream_url)
    param_el = SubElement(stream_el, "Parameter")
    param_el.set("name", "callId")
    param_el.set("value", call_id)
    return _twiml(response_el)


def build_hangup_twiml() -> str:
    response_el = Element("Response")
    SubElement(response_el, "Hangup")
    return _twiml(response_el)


def create_app(
    app_settings: Optional[Settings] = None,
    registry: Optional[SessionRegistry] = None,
    store: Optional[SchedulingStore] = None,
    dispatcher: Optional[ToolDispatcher] = None,
    twilio_client: Optional[Any] = None,
    attempts: Optional[CallAttemptTracker] = None,
    model_factory: Optional[ModelFactory] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Shared state (registry, store, dispatcher) is built once here and
    handed to every call's bridge.
    """
    cfg = app_settings or default_settings
    registry = registry if registry is not None else SessionRegistry()
    store = store if store is not None else SchedulingStore(timezone=cfg.calendar_timezone)
    if twilio_client is None:
        twilio_client = build_twilio_client(cfg)
    if dispatcher is None:
        dispatcher = build_dispatcher(store, build_notifiers(cfg, twilio_client), cfg.rep_name)
    attempts = attempts if attempts is not None else CallAttemptTracker(cfg.max_call_attempts)

    app = FastAPI(
        title="Demo Dialer",
        description="Outbound voice agent that books product demos",
        version="0.1.0",
    )
    app.state.registry = registry
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.attempts = attempts

    # ── Liveness ───────────────────────────────────────────────

    @app.get("/")
    async def index() -> JSONResponse:
        return JSONResponse({"message": f"{cfg.company_name} AI SDR is running!"})

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check — confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime, "active_calls": len(registry)})

    # ── Outbound calls ─────────────────────────────────────────

    @app.post("/make-call", dependencies=[Depends(require_admin_token)])
    async def make_call(body: CallRequest, request: Request) -> JSONResponse:
        missing = body.missing_fields()
        if missing:
            return JSONResponse(
                {"error": "Required: phone number (to), name, and company", "missing": missing},
                status_code=400,
            )
        if twilio_client is None or not cfg.twilio_phone_number:
            return JSONResponse({"error": "Twilio is not configured"}, status_code=503)

        to = body.to.strip()
        if not attempts.can_call(to):
            log.info("Attempt cap reached for %s", redact_pii(to))
            return JSONResponse(
                {"error": f"Already called {attempts.max_attempts} times", "attempts": attempts.attempts(to)},
                status_code=409,
            )

        attempt = attempts.record(to)
        call_id = registry.create(
            phone_number=to,
            name=body.name.strip(),
            company=body.company.strip(),
            email=body.email,
            attempt_number=attempt,
        )
        base = _public_base(request, cfg)

        try:
            call = await run_in_threadpool(
                twilio_client.calls.create,
                to=to,
                from_=cfg.twilio_phone_number,
                url=f"{base}/outbound-answer?callId={call_id}",
                status_callback=f"{base}/call-status?callId={call_id}",
                status_callback_event=STATUS_CALLBACK_EVENTS,
                machine_detection="DetectMessageEnd",
                async_amd="true",
                timeout=cfg.call_timeout_s,
            )
        except TwilioRestException as exc:
            log.error("Failed to place call %s: %s", call_id, exc.msg)
            registry.delete(call_id)
            return JSONResponse(
                {"error": f"Failed to initiate call: {exc.msg}"},
                status_code=500,
            )

        log.info("Calling %s at %s (call_id=%s, attempt %d)", body.name, body.company, call_id, attempt)
        return JSONResponse(
            {
                "success": True,
                "callSid": call.sid,
                "callId": call_id,
                "attempt": attempt,
                "message": f"Calling {body.name} at {body.company}...",
            }
        )

    @app.api_route("/outbound-answer", methods=["GET", "POST"])
    async def outbound_answer(request: Request) -> Response:
        """Twilio answer webhook.

        Answering machines and fax lines are hung up on.  Humans are
        connected to /media-stream, with the callId as a stream parameter.
        """
        call_id = request.query_params.get("callId", "")
        params: dict[str, Any] = dict(request.query_params)
        if request.method == "POST":
            params.update(await request.form())
        answered_by = params.get("AnsweredBy", "")

        if answered_by in MACHINE_ANSWERS:
            log.info("Call %s answered by %s, hanging up", call_id, answered_by)
            return Response(content=build_hangup_twiml(), media_type="application/xml")

        base = _public_base(request, cfg)
        stream_url = "wss://" + base.split("://", 1)[-1] + "/media-stream"
        log.info("Call %s answered (%s); streaming to %s", call_id, answered_by or "human", stream_url)
        return Response(content=build_stream_twiml(stream_url, call_id), media_type="application/xml")

    @app.post("/call-status")
    async def call_status(request: Request) -> JSONResponse:
        call_id = request.query_params.get("callId", "")
        form = await request.form()
        status = form.get("CallStatus", "")
        lead = registry.get(call_id)

        log.info(
            "Call %s to %s (%s): %s",
            call_id,
            lead.name if lead else "?",
            redact_pii(str(form.get("To", ""))),
            status,
        )
        if status in TERMINAL_STATUSES:
            log.info("Call %s ended: %s after %ss", call_id, status, form.get("CallDuration", "0"))
            if call_id:
                registry.schedule_expiry(call_id, cfg.session_expiry_s)
        return JSONResponse({"received": True})

    # ── Bookings and tools ─────────────────────────────────────

    @app.get("/demos", dependencies=[Depends(require_admin_token)])
    async def list_demos() -> JSONResponse:
        demos = store.bookings()
        return JSONResponse(
            {
                "count": len(demos),
                "demos": [d.model_dump(mode="json") for d in demos],
            }
        )

    @app.post("/mcp/list_tools")
    async def mcp_list_tools() -> JSONResponse:
        tools = [
            {"name": t["name"], "description": t["description"], "parameters": t["parameters"]}
            for t in dispatcher.manifest()
        ]
        return JSONResponse({"tools": tools})

    @app.post("/mcp/call_tool")
    async def mcp_call_tool(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse({"error": "Body must be JSON"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Body must be a JSON object"}, status_code=400)
        result = await dispatcher.dispatch(body.get("tool", ""), body.get("arguments"))
        return JSONResponse(result)

    # ── Twilio Media Stream WebSocket ──────────────────────────

    @app.websocket("/media-stream")
    async def media_stream(websocket: WebSocket) -> None:
        """One call: Twilio audio ↔ AudioRelayBridge ↔ realtime model."""
        await websocket.accept()
        log.info("Twilio Media Stream WebSocket connected")

        channel = TwilioMediaStreamChannel(websocket)
        bridge = AudioRelayBridge(
            channel,
            dispatcher,
            registry,
            settings=cfg,
            model_factory=model_factory,
        )
        await bridge.run()
        log.info("Twilio Media Stream ended (call_id=%s)", bridge.state.call_id or "?")

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    for warning in default_settings.validate_startup():
        log.warning(warning)

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "demo_dialer.app:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        log_config=log_config,
    )
