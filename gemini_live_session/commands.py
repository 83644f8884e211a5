"""Command surface for UI clients.

A UI layer drives a ``LiveSession`` with small JSON messages of the form
``{"id": 1, "type": "live/start", ...}``. Each command is validated with a
voluptuous schema and answered with a result or error message; subscribers
receive session events as event messages tagged with their subscription id.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import voluptuous as vol

from .const import ALL_EVENTS, ERROR_INVALID_FORMAT, ERROR_UNKNOWN_COMMAND
from .exceptions import InvalidCommand
from .session import LiveSession, SessionStatus
from .tools import sanitize_for_json

_LOGGER = logging.getLogger(__name__)

TYPE_RESULT = "result"
TYPE_EVENT = "event"

CommandHandler = Callable[[LiveSession, "ControlConnection", dict[str, Any]], Awaitable[None]]

BASE_COMMAND_SCHEMA = vol.Schema(
    {vol.Required("id"): int, vol.Required("type"): str}, extra=vol.ALLOW_EXTRA
)

_COMMANDS: dict[str, tuple[CommandHandler, vol.Schema]] = {}


def result_message(msg_id: int, result: Any = None) -> dict[str, Any]:
    return {"id": msg_id, "type": TYPE_RESULT, "success": True, "result": result}


def error_message(msg_id: int | None, code: str, message: str) -> dict[str, Any]:
    return {
        "id": msg_id,
        "type": TYPE_RESULT,
        "success": False,
        "error": {"code": code, "message": message},
    }


def event_message(msg_id: int, event: dict[str, Any]) -> dict[str, Any]:
    return {"id": msg_id, "type": TYPE_EVENT, "event": event}


class ControlConnection:
    """One UI client attached to a session.

    Args:
        send_message: Callable delivering an outgoing message dict.
    """

    def __init__(self, send_message: Callable[[dict[str, Any]], Any]) -> None:
        self._send_message = send_message
        self.subscriptions: dict[int, Callable[[], None]] = {}

    def send_message(self, message: dict[str, Any]) -> None:
        self._send_message(message)

    def send_result(self, msg_id: int, result: Any = None) -> None:
        self.send_message(result_message(msg_id, result))

    def send_error(self, msg_id: int | None, code: str, message: str) -> None:
        self.send_message(error_message(msg_id, code, message))

    def send_event(self, msg_id: int, event: dict[str, Any]) -> None:
        self.send_message(event_message(msg_id, event))

    def close(self) -> None:
        """Drop every subscription held by this client."""
        for unsubscribe in list(self.subscriptions.values()):
            unsubscribe()
        self.subscriptions.clear()


def websocket_command(schema: dict[Any, Any]) -> Callable[[CommandHandler], CommandHandler]:
    """Register a command handler for the message ``type`` in ``schema``."""
    command_type = schema["type"]
    full_schema = vol.Schema({vol.Required("id"): int, **schema})

    def decorator(func: CommandHandler) -> CommandHandler:
        _COMMANDS[command_type] = (func, full_schema)
        return func

    return decorator


def registered_commands() -> list[str]:
    return sorted(_COMMANDS)


def validate_command(msg: dict[str, Any]) -> tuple[CommandHandler, dict[str, Any]]:
    """Look up and validate a command message.

    Raises:
        InvalidCommand: when the message is malformed or its type is unknown.
    """
    try:
        BASE_COMMAND_SCHEMA(msg)
    except vol.Invalid as err:
        raise InvalidCommand(ERROR_INVALID_FORMAT, f"Message incorrectly formatted: {err}") from err
    entry = _COMMANDS.get(msg["type"])
    if entry is None:
        raise InvalidCommand(ERROR_UNKNOWN_COMMAND, f"Unknown command: {msg['type']}")
    handler, schema = entry
    try:
        return handler, schema(msg)
    except vol.Invalid as err:
        raise InvalidCommand(ERROR_INVALID_FORMAT, f"Message incorrectly formatted: {err}") from err


async def async_handle_command(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    """Validate and run one command, answering on ``connection``."""
    msg_id = msg.get("id") if isinstance(msg, dict) else None
    try:
        handler, validated = validate_command(msg if isinstance(msg, dict) else {})
    except InvalidCommand as err:
        code, message = err.args
        _LOGGER.debug("Rejected command %s: %s", msg_id, message)
        connection.send_error(msg_id, code, message)
        return
    await handler(session, connection, validated)


@websocket_command(
    {
        vol.Required("type"): "live/start",
        vol.Optional("resumption_handle"): vol.Any(None, str),
    }
)
async def websocket_start(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    """Start (or resume) the live session."""
    if session.status is not SessionStatus.IDLE:
        connection.send_error(msg["id"], "already_active", f"Session is {session.status.value}")
        return
    if "resumption_handle" in msg:
        session.set_resumption_handle(msg["resumption_handle"])
    started = await session.start()
    connection.send_result(msg["id"], {"started": started, "status": session.status.value})


@websocket_command({vol.Required("type"): "live/stop"})
async def websocket_stop(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    """Stop the live session."""
    await session.stop()
    connection.send_result(msg["id"], {"status": session.status.value})


@websocket_command({vol.Required("type"): "live/toggle_mute"})
async def websocket_toggle_mute(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    muted = await session.toggle_mute()
    connection.send_result(msg["id"], {"muted": muted})


@websocket_command({vol.Required("type"): "live/toggle_camera"})
async def websocket_toggle_camera(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    camera_on = await session.toggle_camera()
    connection.send_result(msg["id"], {"camera_on": camera_on})


@websocket_command({vol.Required("type"): "live/get_status"})
async def websocket_get_status(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    """Return the session snapshot."""
    connection.send_result(msg["id"], sanitize_for_json(session.snapshot()))


@websocket_command({vol.Required("type"): "live/clear_transcript"})
async def websocket_clear_transcript(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    await session.clear_transcript()
    connection.send_result(msg["id"], {"ok": True})


@websocket_command(
    {
        vol.Required("type"): "live/set_resumption",
        vol.Optional("enable"): bool,
        vol.Optional("clear_handle", default=False): bool,
        vol.Optional("handle"): vol.Any(None, str),
    }
)
async def websocket_set_resumption(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    """Enable/disable session resumption and optionally set or clear the handle."""
    if "enable" in msg:
        session.config.enable_session_resumption = msg["enable"]
    if msg["clear_handle"]:
        session.set_resumption_handle(None)
    elif "handle" in msg:
        session.set_resumption_handle(msg["handle"])
    connection.send_result(
        msg["id"],
        {
            "ok": True,
            "enable": session.config.enable_session_resumption,
            "handle_cleared": msg["clear_handle"],
            "has_resumption_handle": session.has_resumption_handle,
        },
    )


@websocket_command(
    {
        vol.Required("type"): "live/subscribe",
        vol.Optional("events", default=list(ALL_EVENTS)): [vol.In(ALL_EVENTS)],
    }
)
async def websocket_subscribe(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    """Forward session events to this client until unsubscribed."""
    msg_id = msg["id"]
    handlers: dict[str, Callable[[dict[str, Any]], None]] = {}

    for event_type in msg["events"]:

        def forward(data: dict[str, Any], event_type: str = event_type) -> None:
            connection.send_event(
                msg_id, {"type": event_type, "data": sanitize_for_json(data)}
            )

        handlers[event_type] = forward
        session.on(event_type, forward)

    def unsubscribe() -> None:
        for event_type, handler in handlers.items():
            session.off(event_type, handler)

    connection.subscriptions[msg_id] = unsubscribe
    _LOGGER.debug("Subscription %s registered for %d events", msg_id, len(handlers))
    connection.send_result(msg_id)


@websocket_command(
    {
        vol.Required("type"): "live/unsubscribe",
        vol.Required("subscription"): int,
    }
)
async def websocket_unsubscribe(
    session: LiveSession, connection: ControlConnection, msg: dict[str, Any]
) -> None:
    unsubscribe = connection.subscriptions.pop(msg["subscription"], None)
    if unsubscribe is None:
        connection.send_error(msg["id"], "not_found", "Subscription not found")
        return
    unsubscribe()
    connection.send_result(msg["id"])
