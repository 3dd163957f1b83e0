"""Tests for the scheduling tools and the ToolDispatcher."""

import asyncio
import json
from datetime import date

import pytest
from unittest.mock import AsyncMock, MagicMock

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from demo_dialer.notifications.base import Notifier
from demo_dialer.scheduler.store import SchedulingStore
from demo_dialer.tools import BookDemoTool, CheckAvailabilityTool, ToolDispatcher

MONDAY = date(2026, 10, 19)


def book_args(**overrides):
    args = {
        "organization": "Maria's Tacos",
        "contact": "Maria",
        "phone": "+15551234567",
        "datetime": "Oct 19 at 9:00 AM",
    }
    args.update(overrides)
    return args


class FailingNotifier(Notifier):
    name = "failing"

    def __init__(self):
        self.calls = 0

    async def notify(self, booking):
        self.calls += 1
        raise RuntimeError("webhook down")


class SlowNotifier(Notifier):
    name = "slow"

    def __init__(self):
        self.release = asyncio.Event()
        self.done = False

    async def notify(self, booking):
        await self.release.wait()
        self.done = True


@pytest.fixture
def store():
    store = SchedulingStore()
    store.today = MagicMock(return_value=MONDAY)
    return store


@pytest.fixture
def dispatcher(store):
    return ToolDispatcher([CheckAvailabilityTool(store), BookDemoTool(store)])


class TestManifest:
    def test_exposes_exactly_two_tools(self, dispatcher):
        names = [t["name"] for t in dispatcher.manifest()]
        assert names == ["check_availability", "book_demo"]

    def test_entries_are_function_tools(self, dispatcher):
        for entry in dispatcher.manifest():
            assert entry["type"] == "function"
            assert entry["parameters"]["type"] == "object"

    def test_book_demo_required_fields(self, dispatcher):
        book = next(t for t in dispatcher.manifest() if t["name"] == "book_demo")
        assert book["parameters"]["required"] == ["organization", "contact", "phone", "datetime"]
        assert "email" in book["parameters"]["properties"]
        assert "notes" in book["parameters"]["properties"]


class TestCheckAvailability:
    async def test_weekday_slots(self, dispatcher):
        result = await dispatcher.dispatch("check_availability", {"when": "today"})
        assert result["success"] is True
        assert result["date"] == "Oct 19"
        assert result["dayName"] == "Monday"
        assert result["slots"][0] == {"time": "9:00 AM", "display": "Oct 19 at 9:00 AM"}

    async def test_weekend(self, dispatcher):
        result = await dispatcher.dispatch("check_availability", {"when": "saturday"})
        assert result == {"success": True, "message": "No demos on weekends", "slots": []}

    async def test_booked_slot_not_offered(self, dispatcher):
        await dispatcher.dispatch("book_demo", book_args())
        result = await dispatcher.dispatch("check_availability", {"when": "monday"})
        times = [s["time"] for s in result["slots"]]
        assert "9:00 AM" not in times
        assert "10:00 AM" in times

    async def test_missing_when_defaults_to_today(self, dispatcher):
        result = await dispatcher.dispatch("check_availability", {})
        assert result["date"] == "Oct 19"


class TestBookDemo:
    async def test_success_shape(self, dispatcher, store):
        result = await dispatcher.dispatch("book_demo", book_args(email="m@tacos.com"))
        assert result["success"] is True
        assert result["confirmationId"].startswith("DEMO-")
        assert result["message"] == "Demo confirmed for Maria from Maria's Tacos"
        assert result["datetime"] == "Oct 19 at 9:00 AM"
        assert "Jakob" in result["details"]
        assert len(store) == 1

    async def test_missing_phone_is_validation_error(self, dispatcher, store):
        args = book_args()
        del args["phone"]
        result = await dispatcher.dispatch("book_demo", args)
        assert result["success"] is False
        assert result["error"] == "validation_error"
        assert result["missing"] == ["phone"]
        assert len(store) == 0

    async def test_json_string_arguments(self, dispatcher, store):
        result = await dispatcher.dispatch("book_demo", json.dumps(book_args()))
        assert result["success"] is True
        assert len(store) == 1

    async def test_malformed_json_is_validation_error(self, dispatcher, store):
        result = await dispatcher.dispatch("book_demo", '{"organization": ')
        assert result["success"] is False
        assert result["error"] == "validation_error"
        assert len(store) == 0

    async def test_non_object_json_is_validation_error(self, dispatcher):
        result = await dispatcher.dispatch("book_demo", "[1, 2]")
        assert result["error"] == "validation_error"


class TestNotifications:
    async def test_every_notifier_fired(self, store):
        first = AsyncMock(spec=Notifier)
        first.name = "first"
        second = AsyncMock(spec=Notifier)
        second.name = "second"
        tool = BookDemoTool(store, [first, second])

        await tool.execute(**book_args())
        await asyncio.sleep(0.01)

        first.notify.assert_awaited_once()
        second.notify.assert_awaited_once()
        booking = first.notify.await_args.args[0]
        assert booking.organization == "Maria's Tacos"

    async def test_failing_notifier_does_not_change_result(self, store):
        failing = FailingNotifier()
        tool = BookDemoTool(store, [failing])

        result = await tool.execute(**book_args())
        await asyncio.sleep(0.01)

        assert result["success"] is True
        assert failing.calls == 1
        assert tool.pending_notifications == 0

    async def test_result_does_not_wait_for_notifiers(self, store):
        slow = SlowNotifier()
        tool = BookDemoTool(store, [slow])

        result = await asyncio.wait_for(tool.execute(**book_args()), timeout=0.5)
        assert result["success"] is True
        assert slow.done is False
        assert tool.pending_notifications == 1

        slow.release.set()
        await asyncio.sleep(0.01)
        assert slow.done is True
        assert tool.pending_notifications == 0

    async def test_no_notifications_on_validation_error(self, store):
        notifier = AsyncMock(spec=Notifier)
        notifier.name = "mock"
        dispatcher = ToolDispatcher([BookDemoTool(store, [notifier])])

        await dispatcher.dispatch("book_demo", book_args(phone=""))
        await asyncio.sleep(0.01)
        notifier.notify.assert_not_awaited()


class TestUnknownTool:
    async def test_unknown_tool_structured_reply(self, dispatcher):
        result = await dispatcher.dispatch("foo", {"when": "today"})
        assert result == {"success": False, "error": "unknown_tool", "message": "Unknown tool: foo"}

    async def test_unknown_tool_leaves_state_unchanged(self, dispatcher, store):
        await dispatcher.dispatch("book_demo", book_args())
        before = store.bookings()

        await dispatcher.dispatch("foo", book_args(datetime="Oct 19 at 10:00 AM"))

        assert store.bookings() == before
        result = await dispatcher.dispatch("check_availability", {"when": "today"})
        assert "10:00 AM" in [s["time"] for s in result["slots"]]
