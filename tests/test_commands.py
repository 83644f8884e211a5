"""
Tests for the command surface UI clients use to drive a session.
"""
import pytest

from gemini_live_session.commands import (
    ControlConnection,
    async_handle_command,
    registered_commands,
)
from gemini_live_session.const import EVENT_MUTE_CHANGED, EVENT_STATUS_CHANGED
from gemini_live_session.session import SessionStatus


@pytest.fixture
def outbox():
    return []


@pytest.fixture
def client(outbox):
    return ControlConnection(outbox.append)


async def run(session, client, outbox, msg):
    outbox.clear()
    await async_handle_command(session, client, msg)
    return outbox


def results(outbox):
    return [m for m in outbox if m["type"] == "result"]


def test_registered_commands():
    assert registered_commands() == [
        "live/clear_transcript",
        "live/get_status",
        "live/set_resumption",
        "live/start",
        "live/stop",
        "live/subscribe",
        "live/toggle_camera",
        "live/toggle_mute",
        "live/unsubscribe",
    ]


class TestValidation:

    async def test_unknown_command(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/explode"})
        assert outbox == [
            {
                "id": 1,
                "type": "result",
                "success": False,
                "error": {"code": "unknown_command", "message": "Unknown command: live/explode"},
            }
        ]

    async def test_missing_id(self, session, client, outbox):
        await run(session, client, outbox, {"type": "live/start"})
        assert outbox[0]["success"] is False
        assert outbox[0]["error"]["code"] == "invalid_format"
        assert session.status is SessionStatus.IDLE

    async def test_bad_field_type(self, session, client, outbox):
        await run(session, client, outbox, {"id": 2, "type": "live/set_resumption", "enable": "yes"})
        assert outbox[0]["error"]["code"] == "invalid_format"

    async def test_extra_fields_rejected(self, session, client, outbox):
        await run(session, client, outbox, {"id": 3, "type": "live/stop", "force": True})
        assert outbox[0]["error"]["code"] == "invalid_format"

    async def test_non_dict_message(self, session, client, outbox):
        await run(session, client, outbox, ["live/start"])
        assert outbox[0]["id"] is None
        assert outbox[0]["error"]["code"] == "invalid_format"


class TestLifecycleCommands:

    async def test_start_and_stop(self, session, client, outbox, transports):
        await run(session, client, outbox, {"id": 1, "type": "live/start"})
        assert outbox[-1] == {
            "id": 1,
            "type": "result",
            "success": True,
            "result": {"started": True, "status": "LIVE"},
        }
        await run(session, client, outbox, {"id": 2, "type": "live/start"})
        assert outbox[-1]["error"]["code"] == "already_active"
        assert len(transports.created) == 1
        await run(session, client, outbox, {"id": 3, "type": "live/stop"})
        assert outbox[-1]["result"] == {"status": "IDLE"}

    async def test_start_with_handle_resumes(self, session, client, outbox, transports):
        await run(
            session, client, outbox, {"id": 1, "type": "live/start", "resumption_handle": "h9"}
        )
        assert transports.last.config.session_resumption.handle == "h9"

    async def test_failed_start_reports_idle(self, session, client, outbox, provisioner):
        provisioner.error = RuntimeError("denied")
        await run(session, client, outbox, {"id": 1, "type": "live/start"})
        assert outbox[-1]["result"] == {"started": False, "status": "IDLE"}

    async def test_toggles(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/toggle_mute"})
        assert outbox[-1]["result"] == {"muted": True}
        await run(session, client, outbox, {"id": 2, "type": "live/toggle_camera"})
        assert outbox[-1]["result"] == {"camera_on": True}
        await run(session, client, outbox, {"id": 3, "type": "live/toggle_camera"})
        assert outbox[-1]["result"] == {"camera_on": False}

    async def test_get_status(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/get_status"})
        status = outbox[-1]["result"]
        assert status["status"] == "IDLE"
        assert status["transcript"] == []
        assert status["use_ephemeral"] is True

    async def test_clear_transcript(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/clear_transcript"})
        assert outbox[-1]["result"] == {"ok": True}


class TestResumptionCommand:

    async def test_set_and_clear_handle(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/set_resumption", "handle": "h1"})
        assert outbox[-1]["result"] == {
            "ok": True,
            "enable": True,
            "handle_cleared": False,
            "has_resumption_handle": True,
        }
        await run(
            session, client, outbox, {"id": 2, "type": "live/set_resumption", "clear_handle": True, "handle": "h2"}
        )
        assert outbox[-1]["result"]["has_resumption_handle"] is False
        assert session.resumption_handle is None

    async def test_disable(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/set_resumption", "enable": False})
        assert session.config.enable_session_resumption is False
        assert outbox[-1]["result"]["enable"] is False


class TestSubscriptions:

    async def test_events_forwarded_until_unsubscribed(self, session, client, outbox):
        await run(
            session, client, outbox, {"id": 5, "type": "live/subscribe", "events": [EVENT_MUTE_CHANGED]}
        )
        assert outbox == [{"id": 5, "type": "result", "success": True, "result": None}]

        await run(session, client, outbox, {"id": 6, "type": "live/toggle_mute"})
        events = [m for m in outbox if m["type"] == "event"]
        assert events == [
            {"id": 5, "type": "event", "event": {"type": "mute_changed", "data": {"muted": True}}}
        ]

        await run(session, client, outbox, {"id": 7, "type": "live/unsubscribe", "subscription": 5})
        assert results(outbox)[-1]["success"] is True
        await run(session, client, outbox, {"id": 8, "type": "live/toggle_mute"})
        assert [m for m in outbox if m["type"] == "event"] == []

    async def test_default_subscribes_to_all_events(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/subscribe"})
        await run(session, client, outbox, {"id": 2, "type": "live/start"})
        forwarded = {m["event"]["type"] for m in outbox if m["type"] == "event"}
        assert {EVENT_STATUS_CHANGED, "session_started"} <= forwarded

    async def test_unknown_event_rejected(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/subscribe", "events": ["nope"]})
        assert outbox[0]["error"]["code"] == "invalid_format"

    async def test_unsubscribe_unknown(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/unsubscribe", "subscription": 42})
        assert outbox[0]["error"]["code"] == "not_found"

    async def test_close_drops_subscriptions(self, session, client, outbox):
        await run(session, client, outbox, {"id": 1, "type": "live/subscribe"})
        client.close()
        assert client.subscriptions == {}
        await run(session, client, outbox, {"id": 2, "type": "live/toggle_mute"})
        assert [m for m in outbox if m["type"] == "event"] == []
