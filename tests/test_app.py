"""Tests for the HTTP surface: call placement, TwiML, status callbacks, tools."""

import asyncio
import xml.etree.ElementTree as ET
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from twilio.base.exceptions import TwilioRestException

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from demo_dialer.app import create_app
from demo_dialer.auth import require_admin_token
from demo_dialer.config import Settings
from demo_dialer.scheduler.store import SchedulingStore
from demo_dialer.sessions import SessionRegistry


class FakeModel:
    """Realtime socket stand-in; events are preloaded before the call starts."""

    def __init__(self, preload=()):
        self.sent = []
        self.inbox = asyncio.Queue()
        for event in preload:
            self.inbox.put_nowait(event)
        self.closed = False

    async def send_event(self, event):
        self.sent.append(event)

    async def events(self):
        while True:
            event = await self.inbox.get()
            if event is None:
                return
            yield event

    async def ping(self):
        pass

    async def close(self):
        self.closed = True
        self.inbox.put_nowait(None)


@pytest.fixture
def cfg():
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        twilio_account_sid="AC123",
        twilio_auth_token="token",
        twilio_phone_number="+15550001111",
        session_expiry_s=60.0,
    )


@pytest.fixture
def twilio_client():
    client = MagicMock()
    client.calls.create.return_value = MagicMock(sid="CA123")
    return client


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def store():
    return SchedulingStore()


@pytest.fixture
def app(cfg, registry, store, twilio_client):
    app = create_app(app_settings=cfg, registry=registry, store=store, twilio_client=twilio_client)
    app.dependency_overrides[require_admin_token] = lambda: None
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


LEAD = {"to": "+15551234567", "name": "Maria", "company": "Maria's Tacos"}


class TestLiveness:
    def test_root(self, client):
        assert client.get("/").json() == {"message": "Boostly AI SDR is running!"}

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["active_calls"] == 0


class TestMakeCall:
    def test_places_call_with_callbacks(self, client, twilio_client, registry):
        resp = client.post("/make-call", json={**LEAD, "email": "m@tacos.com"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["callSid"] == "CA123"

        call_id = body["callId"]
        session = registry.get(call_id)
        assert session.company == "Maria's Tacos"
        assert session.email == "m@tacos.com"

        kwargs = twilio_client.calls.create.call_args.kwargs
        assert kwargs["to"] == "+15551234567"
        assert kwargs["from_"] == "+15550001111"
        assert kwargs["url"] == f"https://testserver/outbound-answer?callId={call_id}"
        assert kwargs["status_callback"] == f"https://testserver/call-status?callId={call_id}"
        assert kwargs["status_callback_event"] == ["answered", "completed", "no-answer", "busy"]
        assert kwargs["machine_detection"] == "DetectMessageEnd"
        assert kwargs["timeout"] == 30

    def test_public_base_url_wins(self, registry, store, twilio_client):
        cfg = Settings(
            _env_file=None,
            openai_api_key="sk-test",
            twilio_phone_number="+15550001111",
            public_base_url="https://dialer.example.com/",
        )
        app = create_app(app_settings=cfg, registry=registry, store=store, twilio_client=twilio_client)
        app.dependency_overrides[require_admin_token] = lambda: None
        call_id = TestClient(app).post("/make-call", json=LEAD).json()["callId"]
        url = twilio_client.calls.create.call_args.kwargs["url"]
        assert url == f"https://dialer.example.com/outbound-answer?callId={call_id}"

    @pytest.mark.parametrize("missing", ["to", "name", "company"])
    def test_missing_field_is_400(self, client, twilio_client, missing):
        body = {k: v for k, v in LEAD.items() if k != missing}
        resp = client.post("/make-call", json=body)
        assert resp.status_code == 400
        assert resp.json()["missing"] == [missing]
        twilio_client.calls.create.assert_not_called()

    def test_attempt_cap(self, client, twilio_client):
        assert client.post("/make-call", json=LEAD).json()["attempt"] == 1
        assert client.post("/make-call", json=LEAD).json()["attempt"] == 2
        resp = client.post("/make-call", json=LEAD)
        assert resp.status_code == 409
        assert twilio_client.calls.create.call_count == 2

    def test_twilio_failure_is_500_and_forgets_session(self, client, twilio_client, registry):
        twilio_client.calls.create.side_effect = TwilioRestException(400, "/Calls", msg="bad number")
        resp = client.post("/make-call", json=LEAD)
        assert resp.status_code == 500
        assert "bad number" in resp.json()["error"]
        assert len(registry) == 0

    def test_requires_twilio(self, cfg, registry, store):
        cfg = Settings(_env_file=None, openai_api_key="sk-test")
        app = create_app(app_settings=cfg, registry=registry, store=store)
        app.dependency_overrides[require_admin_token] = lambda: None
        resp = TestClient(app).post("/make-call", json=LEAD)
        assert resp.status_code == 503

    def test_admin_token_enforced(self, cfg, registry, store, twilio_client, monkeypatch):
        monkeypatch.setattr("demo_dialer.auth.settings", Settings(_env_file=None, admin_api_key="secret"))
        app = create_app(app_settings=cfg, registry=registry, store=store, twilio_client=twilio_client)
        client = TestClient(app)

        assert client.post("/make-call", json=LEAD).status_code == 401
        ok = client.post("/make-call", json=LEAD, headers={"Authorization": "Bearer secret"})
        assert ok.status_code == 200


class TestOutboundAnswer:
    def test_human_gets_stream_with_call_id_parameter(self, client):
        resp = client.post("/outbound-answer?callId=abc123", data={"AnsweredBy": "human"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/xml")

        root = ET.fromstring(resp.content)
        stream = root.find("./Connect/Stream")
        assert stream.get("url") == "wss://testserver/media-stream"
        param = stream.find("Parameter")
        assert param.get("name") == "callId"
        assert param.get("value") == "abc123"

    def test_missing_answered_by_connects(self, client):
        root = ET.fromstring(client.post("/outbound-answer?callId=abc123").content)
        assert root.find("./Connect/Stream") is not None

    @pytest.mark.parametrize(
        "answered_by",
        ["machine_start", "machine_end_beep", "machine_end_silence", "machine_end_other", "fax"],
    )
    def test_machines_get_hangup(self, client, answered_by):
        resp = client.post("/outbound-answer?callId=abc123", data={"AnsweredBy": answered_by})
        root = ET.fromstring(resp.content)
        assert root.find("Hangup") is not None
        assert root.find("Connect") is None

    def test_get_supported(self, client):
        resp = client.get("/outbound-answer", params={"callId": "abc123", "AnsweredBy": "fax"})
        assert ET.fromstring(resp.content).find("Hangup") is not None


class TestCallStatus:
    @pytest.mark.parametrize("status", ["completed", "no-answer", "busy", "failed", "canceled"])
    def test_terminal_status_schedules_expiry(self, client, registry, status):
        registry.schedule_expiry = MagicMock()
        call_id = registry.create("+15551234567", "Maria", "Tacos")

        resp = client.post(
            f"/call-status?callId={call_id}",
            data={"CallSid": "CA123", "CallStatus": status, "CallDuration": "42", "To": "+15551234567"},
        )

        assert resp.json() == {"received": True}
        registry.schedule_expiry.assert_called_once_with(call_id, 60.0)

    def test_in_progress_status_keeps_session(self, client, registry):
        registry.schedule_expiry = MagicMock()
        call_id = registry.create("+15551234567", "Maria", "Tacos")
        client.post(f"/call-status?callId={call_id}", data={"CallStatus": "answered"})
        registry.schedule_expiry.assert_not_called()
        assert call_id in registry


class TestToolEndpoints:
    def test_list_tools(self, client):
        tools = client.post("/mcp/list_tools").json()["tools"]
        assert [t["name"] for t in tools] == ["check_availability", "book_demo"]
        assert "parameters" in tools[0]

    def test_call_tool_books_and_lists_demo(self, client):
        result = client.post(
            "/mcp/call_tool",
            json={
                "tool": "book_demo",
                "arguments": {
                    "organization": "Maria's Tacos",
                    "contact": "Maria",
                    "phone": "+15551234567",
                    "datetime": "Oct 20 at 9:00 AM",
                },
            },
        ).json()
        assert result["success"] is True

        demos = client.get("/demos").json()
        assert demos["count"] == 1
        assert demos["demos"][0]["id"] == result["confirmationId"]
        assert demos["demos"][0]["status"] == "scheduled"

    def test_call_tool_unknown(self, client, store):
        result = client.post("/mcp/call_tool", json={"tool": "foo", "arguments": {}}).json()
        assert result["error"] == "unknown_tool"
        assert len(store) == 0

    def test_call_tool_validation_error(self, client, store):
        result = client.post(
            "/mcp/call_tool",
            json={"tool": "book_demo", "arguments": {"organization": "Maria's Tacos"}},
        ).json()
        assert result["success"] is False
        assert result["missing"] == ["contact", "phone", "datetime"]

    def test_call_tool_rejects_non_json(self, client):
        resp = client.post("/mcp/call_tool", content=b"nope", headers={"content-type": "application/json"})
        assert resp.status_code == 400


class TestMediaStream:
    def test_bridge_greets_lead_and_flushes_audio(self, cfg, registry, store):
        model = FakeModel(preload=[{"type": "response.audio.delta", "delta": "aGVsbG8="}])

        async def factory():
            return model

        app = create_app(app_settings=cfg, registry=registry, store=store, model_factory=factory)
        call_id = registry.create("+15551234567", "Maria", "Maria's Tacos")

        with TestClient(app).websocket_connect("/media-stream") as ws:
            ws.send_json({"event": "connected", "protocol": "Call", "version": "1.0.0"})
            ws.send_json({
                "event": "start",
                "start": {
                    "streamSid": "MZ1",
                    "callSid": "CA1",
                    "customParameters": {"callId": call_id},
                },
            })
            media = ws.receive_json()
            assert media == {"event": "media", "streamSid": "MZ1", "media": {"payload": "aGVsbG8="}}
            ws.send_json({"event": "stop"})
            assert ws.receive()["type"] == "websocket.close"

        types = [e["type"] for e in model.sent]
        assert types[:3] == ["session.update", "conversation.item.create", "response.create"]
        assert "Maria's Tacos" in model.sent[0]["session"]["instructions"]
        assert model.closed
