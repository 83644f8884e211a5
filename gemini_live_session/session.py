"""Live session state machine.

A ``LiveSession`` walks IDLE -> PROVISIONING -> CONNECTING -> LIVE -> IDLE.
It owns every resource of a live conversation: the transport, the
microphone and camera, the playback scheduler, the credential countdown
and the go-away countdown. ``_teardown`` is the only place they are
released.

Every connect attempt carries a generation number. Callbacks and awaited
results that belong to a superseded attempt are dropped, so a ``stop()``
racing provisioning or the handshake always settles in a clean IDLE.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any

from google.genai import types

from .capture import CameraCapture, MicrophoneCapture
from .config import LiveSessionConfig
from .connection import LiveConnection, build_live_config, parse_time_left
from .const import (
    COUNTDOWN_TICK_SECONDS,
    ERROR_CONNECTION,
    ERROR_CREDENTIAL_EXPIRED,
    ERROR_DEVICE_ACCESS,
    ERROR_PROVISIONING,
    ERROR_TRANSPORT,
    EVENT_AUDIO_SCHEDULED,
    EVENT_CAMERA_CHANGED,
    EVENT_CREDENTIAL_COUNTDOWN,
    EVENT_ERROR,
    EVENT_FUNCTION_CALL,
    EVENT_GO_AWAY,
    EVENT_INPUT_LEVEL,
    EVENT_INPUT_TRANSCRIPTION,
    EVENT_INTERRUPTED,
    EVENT_MUTE_CHANGED,
    EVENT_OUTPUT_TRANSCRIPTION,
    EVENT_REASONING_UPDATED,
    EVENT_SESSION_CLOSED,
    EVENT_SESSION_RESUMED,
    EVENT_SESSION_RESUMPTION_UPDATE,
    EVENT_SESSION_STARTED,
    EVENT_STATUS_CHANGED,
    EVENT_TRANSCRIPT_UPDATED,
    EVENT_TURN_COMPLETE,
    PCM_MIME_TYPE,
    REASON_CONNECT_FAILED,
    REASON_CREDENTIAL_EXPIRED,
    REASON_DEVICE_ERROR,
    REASON_REMOTE_CLOSE,
    REASON_REMOTE_ERROR,
    REASON_USER,
    RESUMPTION_REJECTED_MARKERS,
    SEND_SAMPLE_RATE,
    VIDEO_FRAME_INTERVAL,
)
from .credentials import CredentialManager, GenaiTokenProvisioner, utcnow
from .exceptions import DecodeError, DeviceAccessError, ProvisioningError
from .interfaces import AudioSink, AudioSource, FrameSource, LiveTransport, TokenProvisioner
from .pcm import decode, encode, frame_level, rate_from_mime
from .playback import PlaybackScheduler, SoundDeviceSink
from .resumption import ResumptionTracker
from .tools import ToolCall, ToolRegistry, build_default_registry
from .transcript import ROLE_MODEL, ROLE_TOOL, ROLE_USER, Transcript, TranscriptEntry

_LOGGER = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """Lifecycle state of a live session."""

    IDLE = "IDLE"
    PROVISIONING = "PROVISIONING"
    CONNECTING = "CONNECTING"
    LIVE = "LIVE"


_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({SessionStatus.PROVISIONING, SessionStatus.CONNECTING}),
    SessionStatus.PROVISIONING: frozenset({SessionStatus.CONNECTING, SessionStatus.IDLE}),
    SessionStatus.CONNECTING: frozenset({SessionStatus.LIVE, SessionStatus.IDLE}),
    SessionStatus.LIVE: frozenset({SessionStatus.IDLE}),
}


def is_resumption_rejected(error: str) -> bool:
    """Return True when a connect error means the resumption handle is stale."""
    lowered = error.lower()
    return any(marker in lowered for marker in RESUMPTION_REJECTED_MARKERS)


class LiveSession:
    """A single real-time voice/video session with the Gemini Live API.

    All collaborators are injectable; the defaults talk to real hardware
    and the real service.
    """

    def __init__(
        self,
        config: LiveSessionConfig,
        *,
        transport_factory: Callable[[], LiveTransport] | None = None,
        microphone: AudioSource | None = None,
        camera: FrameSource | None = None,
        audio_sink: AudioSink | None = None,
        provisioner: TokenProvisioner | None = None,
        tool_registry: ToolRegistry | None = None,
        now: Callable[[], datetime] = utcnow,
        tick_interval: float = COUNTDOWN_TICK_SECONDS,
        video_interval: float = VIDEO_FRAME_INTERVAL,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory or partial(LiveConnection, config.api_key)
        self._microphone = microphone or MicrophoneCapture(device=config.microphone_device)
        self._camera = camera or CameraCapture(index=config.camera_index)
        self._sink = audio_sink or SoundDeviceSink()
        self._tools = tool_registry or build_default_registry()
        self._tick_interval = tick_interval
        self._video_interval = video_interval

        self._scheduler = PlaybackScheduler(self._sink)
        self._credentials = CredentialManager(
            provisioner or GenaiTokenProvisioner(config.api_key, now=now),
            now=now,
            tick_interval=tick_interval,
        )
        self._resumption = ResumptionTracker()
        self._transcript = Transcript()

        self._status = SessionStatus.IDLE
        self._attempt = 0
        self._transport: LiveTransport | None = None
        self._is_muted = False
        self._is_camera_on = False
        self._reasoning = ""
        self._input_level = 0.0
        self._go_away_time_left: int | None = None

        self._audio_task: asyncio.Task | None = None
        self._video_task: asyncio.Task | None = None
        self._go_away_task: asyncio.Task | None = None
        self._capture_future: asyncio.Future | None = None

        self._event_handlers: dict[str, list[Callable]] = {}

    # ------------------------------------------------------------------
    # Events

    def on(self, event_type: str, handler: Callable) -> None:
        """Register an event handler."""
        handlers = self._event_handlers.setdefault(event_type, [])
        # Avoid registering the same handler more than once
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: str, handler: Callable) -> None:
        """Remove an event handler."""
        if event_type in self._event_handlers:
            try:
                self._event_handlers[event_type].remove(handler)
            except ValueError:
                pass

    async def _emit(self, event_type: str, data: dict[str, Any]) -> None:
        """Emit an event to registered handlers."""
        handlers = list(self._event_handlers.get(event_type, []))
        _LOGGER.debug("Emitting event '%s' to %d handlers", event_type, len(handlers))
        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(data)
                else:
                    handler(data)
            except Exception as err:
                _LOGGER.error("Error in event handler for %s: %s", event_type, err)

    async def _emit_error(self, code: str, message: str) -> None:
        await self._emit(EVENT_ERROR, {"code": code, "message": message})

    # ------------------------------------------------------------------
    # Read-only surface

    @property
    def config(self) -> LiveSessionConfig:
        return self._config

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_muted(self) -> bool:
        return self._is_muted

    @property
    def is_camera_on(self) -> bool:
        return self._is_camera_on

    @property
    def transcript(self) -> list[TranscriptEntry]:
        return self._transcript.entries

    @property
    def reasoning(self) -> str:
        return self._reasoning

    @property
    def input_level(self) -> float:
        return self._input_level

    @property
    def credential_seconds_remaining(self) -> float:
        return self._credentials.remaining_seconds

    @property
    def has_resumption_handle(self) -> bool:
        return self._resumption.has_handle

    @property
    def resumption_handle(self) -> str | None:
        return self._resumption.handle

    @property
    def go_away_time_left(self) -> int | None:
        return self._go_away_time_left

    @property
    def scheduler(self) -> PlaybackScheduler:
        return self._scheduler

    @property
    def tool_registry(self) -> ToolRegistry:
        return self._tools

    @property
    def active_media_tracks(self) -> int:
        """Number of open capture devices."""
        return int(self._microphone.active) + int(self._camera.active)

    @property
    def pending_timers(self) -> int:
        """Number of running periodic timers (video, go-away, credential)."""
        count = self._credentials.pending_timers
        for task in (self._video_task, self._go_away_task):
            if task is not None and not task.done():
                count += 1
        return count

    def snapshot(self) -> dict[str, Any]:
        """Return the UI-facing state as a plain dict."""
        return {
            "status": self._status.value,
            "is_muted": self._is_muted,
            "is_camera_on": self._is_camera_on,
            "transcript": self._transcript.as_list(),
            "reasoning": self._reasoning,
            "input_level": self._input_level,
            "credential_seconds_remaining": self.credential_seconds_remaining,
            "has_resumption_handle": self.has_resumption_handle,
            "go_away_time_left": self._go_away_time_left,
            "use_ephemeral": self._config.use_ephemeral,
        }

    # ------------------------------------------------------------------
    # State machine

    async def _set_status(self, status: SessionStatus) -> bool:
        """Apply a transition; illegal transitions are logged and rejected."""
        previous = self._status
        if status not in _TRANSITIONS[previous]:
            _LOGGER.warning("Rejected status transition %s -> %s", previous.value, status.value)
            return False
        self._status = status
        _LOGGER.info("Session status %s -> %s", previous.value, status.value)
        await self._emit(
            EVENT_STATUS_CHANGED, {"status": status.value, "previous": previous.value}
        )
        return True

    def _is_current(self, attempt: int) -> bool:
        return attempt == self._attempt

    async def start(self) -> bool:
        """Start a session, resuming the previous one when a handle is held.

        Returns True when the session reached LIVE.
        """
        if self._status is not SessionStatus.IDLE:
            _LOGGER.warning("Ignoring start; session is %s", self._status.value)
            return False
        self._attempt += 1
        attempt = self._attempt
        self._go_away_time_left = None

        if not self._resumption.has_handle:
            self._transcript.clear()
            self._reasoning = ""
            await self._emit(EVENT_TRANSCRIPT_UPDATED, {"entries": []})

        auth_token = None
        if self._config.use_ephemeral:
            await self._set_status(SessionStatus.PROVISIONING)
            try:
                credential = await self._credentials.provision(self._config.credential_minutes)
            except ProvisioningError as err:
                if not self._is_current(attempt):
                    return False
                _LOGGER.error("Token provisioning failed: %s", err)
                await self._emit_error(ERROR_PROVISIONING, str(err))
                await self._teardown(REASON_CONNECT_FAILED)
                return False
            if not self._is_current(attempt):
                # stop() raced provisioning; the late credential is never installed
                _LOGGER.debug("Discarding credential provisioned for stale attempt %d", attempt)
                return False
            await self._credentials.install(credential)
            auth_token = self._credentials.consume()
            await self._credentials.start_countdown(
                partial(self._on_credential_expired, attempt), self._on_credential_tick
            )

        await self._set_status(SessionStatus.CONNECTING)

        handle = self._resumption.handle if self._config.enable_session_resumption else None
        resuming = bool(handle)
        live_config = build_live_config(self._config, self._tools, handle)
        transport = self._transport_factory()
        self._transport = transport
        try:
            await transport.open(
                self._config.model,
                live_config,
                on_open=partial(self._on_open, attempt, resuming),
                on_message=partial(self._on_message, attempt),
                on_error=partial(self._on_transport_error, attempt),
                on_close=partial(self._on_transport_close, attempt),
                auth_token=auth_token,
            )
        except Exception as err:
            if not self._is_current(attempt):
                await transport.close()
                return False
            err_str = str(err)
            _LOGGER.error("Failed to connect to Gemini Live API: %s", err_str)
            if resuming and is_resumption_rejected(err_str):
                # Retry once as a fresh session; the handle is gone so this cannot loop
                _LOGGER.warning(
                    "Resumption handle appears invalid; retrying connect without resumption handle"
                )
                await self._teardown(REASON_CONNECT_FAILED, clear_resumption=True)
                return await self.start()
            await self._emit_error(ERROR_CONNECTION, err_str)
            await self._teardown(REASON_CONNECT_FAILED)
            return False

        return self._is_current(attempt) and self._status is SessionStatus.LIVE

    async def stop(self) -> None:
        """End the session and discard the resumption handle.

        A no-op while IDLE.
        """
        if self._status is SessionStatus.IDLE:
            return
        _LOGGER.info("Stopping live session")
        await self._teardown(REASON_USER, clear_resumption=True)

    async def _teardown(self, reason: str, *, clear_resumption: bool = False) -> None:
        """Release every session resource and return to IDLE."""
        previous = self._status
        # Anything still in flight for the current attempt is now stale
        self._attempt += 1

        current = asyncio.current_task()
        tasks = (self._audio_task, self._video_task, self._go_away_task)
        self._audio_task = None
        self._video_task = None
        self._go_away_task = None
        for task in tasks:
            await _cancel_task(task, current)

        try:
            await self._microphone.stop()
        except Exception as err:
            _LOGGER.debug("Error stopping microphone: %s", err)
        camera_was_on = self._is_camera_on
        self._is_camera_on = False
        try:
            await self._stop_camera()
        except Exception as err:
            _LOGGER.debug("Error stopping camera: %s", err)

        self._scheduler.interrupt()
        self._sink.close()

        await self._credentials.release()

        transport = self._transport
        self._transport = None
        if transport is not None:
            await transport.close()

        self._go_away_time_left = None
        self._input_level = 0.0
        if clear_resumption:
            self._resumption.clear()

        if previous is not SessionStatus.IDLE:
            await self._set_status(SessionStatus.IDLE)
        if camera_was_on:
            await self._emit(EVENT_CAMERA_CHANGED, {"camera_on": False})
        if previous is SessionStatus.LIVE:
            _LOGGER.info("Live session closed (reason=%s)", reason)
            await self._emit(
                EVENT_SESSION_CLOSED,
                {"reason": reason, "has_resumption_handle": self._resumption.has_handle},
            )

    # ------------------------------------------------------------------
    # Transport callbacks

    async def _on_open(self, attempt: int, resuming: bool) -> None:
        if not self._is_current(attempt):
            return
        await self._set_status(SessionStatus.LIVE)
        self._scheduler.reset()
        try:
            self._sink.open()
            await self._microphone.start()
        except DeviceAccessError as err:
            _LOGGER.error("Microphone access failed: %s", err)
            await self._emit_error(ERROR_DEVICE_ACCESS, str(err))
            await self._teardown(REASON_DEVICE_ERROR)
            return
        self._audio_task = asyncio.create_task(self._pump_audio(attempt))

        if resuming:
            _LOGGER.info("Resumed Gemini Live API session")
            await self._emit(
                EVENT_SESSION_RESUMED, {"connected": True, "resumed_handle": self._resumption.handle}
            )
        else:
            _LOGGER.info("Started Gemini Live API session")
            await self._emit(EVENT_SESSION_STARTED, {"connected": True})

    async def _on_transport_error(self, attempt: int, err: Exception) -> None:
        if not self._is_current(attempt):
            return
        await self._emit_error(ERROR_TRANSPORT, str(err))
        await self._teardown(REASON_REMOTE_ERROR)

    async def _on_transport_close(self, attempt: int) -> None:
        if not self._is_current(attempt):
            return
        await self._teardown(REASON_REMOTE_CLOSE)

    async def _on_credential_expired(self, attempt: int) -> None:
        if not self._is_current(attempt):
            return
        _LOGGER.warning("Ephemeral credential expired; ending session")
        await self._emit_error(ERROR_CREDENTIAL_EXPIRED, "Ephemeral credential expired")
        await self._teardown(REASON_CREDENTIAL_EXPIRED, clear_resumption=True)

    async def _on_credential_tick(self, remaining: float) -> None:
        await self._emit(EVENT_CREDENTIAL_COUNTDOWN, {"seconds_remaining": remaining})

    async def _on_message(self, attempt: int, message: Any) -> None:
        """Handle one server message; stale or non-LIVE messages are dropped."""
        if not self._is_current(attempt) or self._status is not SessionStatus.LIVE:
            _LOGGER.debug("Dropping message for inactive attempt %d", attempt)
            return

        update = getattr(message, "session_resumption_update", None)
        if update:
            await self._handle_resumption_update(update)

        go_away = getattr(message, "go_away", None)
        if go_away:
            await self._handle_go_away(attempt, go_away)

        server_content = getattr(message, "server_content", None)
        parts = []
        if server_content:
            model_turn = getattr(server_content, "model_turn", None)
            parts = list(getattr(model_turn, "parts", None) or [])

        for part in parts:
            inline_data = getattr(part, "inline_data", None)
            if inline_data is not None and getattr(inline_data, "data", None):
                await self._handle_audio(inline_data)

        if server_content:
            input_transcription = getattr(server_content, "input_transcription", None)
            if input_transcription is not None and getattr(input_transcription, "text", None):
                await self._handle_transcription(ROLE_USER, input_transcription.text)
            output_transcription = getattr(server_content, "output_transcription", None)
            if output_transcription is not None and getattr(output_transcription, "text", None):
                await self._handle_transcription(ROLE_MODEL, output_transcription.text)

        tool_call = getattr(message, "tool_call", None)
        if tool_call:
            await self._handle_tool_call(attempt, tool_call)

        for part in parts:
            if getattr(part, "thought", False) and getattr(part, "text", None):
                self._reasoning += part.text
                await self._emit(EVENT_REASONING_UPDATED, {"reasoning": self._reasoning})

        if not server_content:
            return

        if getattr(server_content, "turn_complete", False):
            self._reasoning = ""
            await self._emit(EVENT_REASONING_UPDATED, {"reasoning": ""})
            await self._emit(EVENT_TURN_COMPLETE, {})

        if getattr(server_content, "interrupted", False):
            stopped = self._scheduler.interrupt()
            self._reasoning = ""
            _LOGGER.debug("Received interruption signal from API (stopped=%d)", stopped)
            await self._emit(EVENT_REASONING_UPDATED, {"reasoning": ""})
            await self._emit(EVENT_INTERRUPTED, {"interrupted": True})

    async def _handle_resumption_update(self, update: Any) -> None:
        new_handle = getattr(update, "new_handle", None)
        resumable = getattr(update, "resumable", None)
        if self._resumption.update(new_handle, resumable):
            await self._emit(
                EVENT_SESSION_RESUMPTION_UPDATE,
                {"handle": new_handle, "resumable": self._resumption.resumable},
            )

    async def _handle_go_away(self, attempt: int, go_away: Any) -> None:
        time_left = parse_time_left(getattr(go_away, "time_left", None))
        self._go_away_time_left = time_left
        _LOGGER.warning(
            "Received GoAway message - connection will terminate in %s seconds", time_left
        )
        await self._emit(
            EVENT_GO_AWAY,
            {
                "time_left": time_left,
                "has_resumption_handle": self._resumption.has_handle,
                "from_server": True,
            },
        )
        # Always restart the countdown from the newest value
        task = self._go_away_task
        self._go_away_task = None
        await _cancel_task(task, asyncio.current_task())
        if time_left is not None and time_left > 0:
            self._go_away_task = asyncio.create_task(self._go_away_countdown(attempt))

    async def _go_away_countdown(self, attempt: int) -> None:
        while self._is_current(attempt) and self._go_away_time_left and self._go_away_time_left > 0:
            await asyncio.sleep(self._tick_interval)
            if not self._is_current(attempt) or self._go_away_time_left is None:
                return
            self._go_away_time_left = max(0, self._go_away_time_left - 1)
            await self._emit(
                EVENT_GO_AWAY,
                {
                    "time_left": self._go_away_time_left,
                    "has_resumption_handle": self._resumption.has_handle,
                    "from_server": False,
                },
            )
        if self._is_current(attempt):
            self._go_away_time_left = None

    async def _handle_audio(self, inline_data: Any) -> None:
        data = inline_data.data
        rate = rate_from_mime(getattr(inline_data, "mime_type", None))
        try:
            if isinstance(data, str):
                data = base64.b64decode(data, validate=True)
            chunk = decode(data, sample_rate=rate)
        except (binascii.Error, DecodeError) as err:
            _LOGGER.warning("Dropping malformed audio chunk: %s", err)
            return
        start_time = self._scheduler.schedule(chunk)
        await self._emit(
            EVENT_AUDIO_SCHEDULED, {"start_time": start_time, "duration": chunk.duration}
        )

    async def _handle_transcription(self, role: str, text: str) -> None:
        self._transcript.append_delta(role, text)
        event = EVENT_INPUT_TRANSCRIPTION if role == ROLE_USER else EVENT_OUTPUT_TRANSCRIPTION
        await self._emit(event, {"text": text})
        await self._emit(EVENT_TRANSCRIPT_UPDATED, {"entries": self._transcript.as_list()})

    async def _handle_tool_call(self, attempt: int, tool_call: Any) -> None:
        """Dispatch a batch of calls and answer them with one tool response."""
        calls = [
            ToolCall.from_function_call(fc)
            for fc in (getattr(tool_call, "function_calls", None) or [])
        ]
        if not calls:
            return
        results = []
        for call in calls:
            _LOGGER.info("Function call: %s (id=%s)", call.name, call.id)
            self._transcript.add(ROLE_TOOL, f"Executing: {call.name}...")
            await self._emit(EVENT_FUNCTION_CALL, {"id": call.id, "name": call.name, "args": call.args})
            results.append(self._tools.dispatch(call))
        await self._emit(EVENT_TRANSCRIPT_UPDATED, {"entries": self._transcript.as_list()})

        transport = self._transport
        if not self._is_current(attempt) or transport is None:
            _LOGGER.debug("Session ended before tool results could be sent")
            return
        try:
            await transport.send_tool_response(
                [result.to_function_response() for result in results]
            )
        except Exception as err:
            _LOGGER.error("Failed to send tool response: %s", err)

    # ------------------------------------------------------------------
    # Capture

    async def _pump_audio(self, attempt: int) -> None:
        """Forward microphone frames while the session is LIVE."""
        mime_type = f"{PCM_MIME_TYPE};rate={SEND_SAMPLE_RATE}"
        async for frame in self._microphone.frames():
            if not self._is_current(attempt) or self._status is not SessionStatus.LIVE:
                return
            if self._is_muted:
                self._input_level = 0.0
                continue
            self._input_level = frame_level(frame)
            await self._emit(EVENT_INPUT_LEVEL, {"level": self._input_level})
            transport = self._transport
            if transport is None:
                return
            try:
                await transport.send_realtime_input(
                    audio=types.Blob(data=encode(frame), mime_type=mime_type)
                )
            except Exception as err:
                _LOGGER.debug("Failed to send audio frame: %s", err)

    async def _pump_video(self) -> None:
        """Send one camera frame per tick; ticks outside LIVE are skipped."""
        while self._is_camera_on:
            await asyncio.sleep(self._video_interval)
            transport = self._transport
            if self._status is not SessionStatus.LIVE or transport is None:
                continue
            # Cancelling the pump leaves the grab running; _stop_camera awaits it
            future = asyncio.get_running_loop().run_in_executor(None, self._camera.capture)
            self._capture_future = future
            try:
                frame = await asyncio.shield(future)
            except Exception as err:
                _LOGGER.debug("Camera capture failed: %s", err)
                continue
            if frame is None or transport is not self._transport:
                continue
            try:
                await transport.send_realtime_input(
                    media=types.Blob(data=frame.data, mime_type=frame.mime_type)
                )
            except Exception as err:
                _LOGGER.debug("Failed to send video frame: %s", err)

    async def _stop_camera(self) -> None:
        """Release the camera once any grab running in a worker thread is done."""
        future = self._capture_future
        self._capture_future = None
        if future is not None and not future.done():
            try:
                await future
            except Exception as err:
                _LOGGER.debug("Camera capture failed: %s", err)
        await self._camera.stop()

    # ------------------------------------------------------------------
    # Controls

    async def toggle_mute(self) -> bool:
        """Flip the mute flag and return the new value."""
        self._is_muted = not self._is_muted
        if self._is_muted:
            self._input_level = 0.0
        _LOGGER.debug("Microphone muted=%s", self._is_muted)
        await self._emit(EVENT_MUTE_CHANGED, {"muted": self._is_muted})
        return self._is_muted

    async def toggle_camera(self) -> bool:
        """Turn the camera on or off and return the new value.

        A camera that cannot be opened leaves the camera off.
        """
        if self._is_camera_on:
            self._is_camera_on = False
            task = self._video_task
            self._video_task = None
            await _cancel_task(task, asyncio.current_task())
            await self._stop_camera()
            await self._emit(EVENT_CAMERA_CHANGED, {"camera_on": False})
            return False

        try:
            await self._camera.start()
        except DeviceAccessError as err:
            _LOGGER.warning("Camera access failed: %s", err)
            await self._emit_error(ERROR_DEVICE_ACCESS, str(err))
            return False
        self._is_camera_on = True
        self._video_task = asyncio.create_task(self._pump_video())
        await self._emit(EVENT_CAMERA_CHANGED, {"camera_on": True})
        return True

    async def clear_transcript(self) -> None:
        self._transcript.clear()
        self._reasoning = ""
        await self._emit(EVENT_TRANSCRIPT_UPDATED, {"entries": []})
        await self._emit(EVENT_REASONING_UPDATED, {"reasoning": ""})

    def set_resumption_handle(self, handle: str | None) -> None:
        """Set the handle used by the next ``start()`` (None discards it)."""
        self._resumption.set(handle)


async def _cancel_task(task: asyncio.Task | None, current: asyncio.Task | None) -> None:
    if task is None or task.done() or task is current:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as err:
        _LOGGER.debug("Background task ended with error: %s", err)
