"""
Shared fixtures for the live session test suite.

Every collaborator that would touch hardware or the network is replaced by
an in-memory fake here.
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from gemini_live_session.capture import VideoFrame
from gemini_live_session.config import LiveSessionConfig
from gemini_live_session.session import LiveSession


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeProvisioner:
    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.calls: list[float] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        # Per-call gates, consumed in call order; they take precedence over ``gate``
        self.gates: list[asyncio.Event] = []

    async def create_token(self, duration_minutes: float):
        self.calls.append(duration_minutes)
        token = f"auth_tokens/token-{len(self.calls)}"
        gate = self.gates.pop(0) if self.gates else self.gate
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        return token, self._clock() + timedelta(minutes=duration_minutes)


class FakeTransport:
    """In-memory LiveTransport; tests push server messages with ``deliver``."""

    def __init__(self, error: Exception | None = None, gate: asyncio.Event | None = None) -> None:
        self.error = error
        self.gate = gate
        self.connected = False
        self.closed = False
        self.model = None
        self.config = None
        self.auth_token = None
        self.callbacks: dict = {}
        self.realtime: list[dict] = []
        self.tool_responses: list[list] = []

    async def open(self, model, config, *, on_open, on_message, on_error, on_close, auth_token=None):
        self.model = model
        self.config = config
        self.auth_token = auth_token
        self.callbacks = {
            "on_open": on_open,
            "on_message": on_message,
            "on_error": on_error,
            "on_close": on_close,
        }
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.closed:
            return
        self.connected = True
        await on_open()

    async def deliver(self, message) -> None:
        await self.callbacks["on_message"](message)

    async def fail(self, err: Exception) -> None:
        self.connected = False
        await self.callbacks["on_error"](err)

    async def remote_close(self) -> None:
        self.connected = False
        await self.callbacks["on_close"]()

    async def send_realtime_input(self, **kwargs) -> None:
        self.realtime.append(kwargs)

    async def send_tool_response(self, function_responses) -> None:
        self.tool_responses.append(list(function_responses))

    async def close(self) -> None:
        self.connected = False
        self.closed = True


class TransportFactory:
    """Creates FakeTransports; queued errors apply to the next connects."""

    def __init__(self) -> None:
        self.created: list[FakeTransport] = []
        self.errors: list[Exception | None] = []
        self.gate: asyncio.Event | None = None

    def __call__(self) -> FakeTransport:
        error = self.errors.pop(0) if self.errors else None
        transport = FakeTransport(error=error, gate=self.gate)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class FakeMicrophone:
    def __init__(self) -> None:
        self.error: Exception | None = None
        self._active = False
        self._queue: asyncio.Queue | None = None
        self.starts = 0

    @property
    def active(self) -> bool:
        return self._active

    async def start(self) -> None:
        if self.error is not None:
            raise self.error
        self._active = True
        self._queue = asyncio.Queue()
        self.starts += 1

    async def frames(self):
        queue = self._queue
        if queue is None:
            return
        while True:
            frame = await queue.get()
            if frame is None:
                return
            yield frame

    def push(self, frame) -> None:
        self._queue.put_nowait(frame)

    async def stop(self) -> None:
        self._active = False
        if self._queue is not None:
            self._queue.put_nowait(None)
        self._queue = None


class FakeCamera:
    def __init__(self) -> None:
        self.error: Exception | None = None
        self._active = False
        self.captures = 0
        # Seconds each grab blocks its worker thread
        self.delay = 0.0
        self.reading = False
        self.stopped_while_reading = False

    @property
    def active(self) -> bool:
        return self._active

    async def start(self) -> None:
        if self.error is not None:
            raise self.error
        self._active = True

    def capture(self):
        if not self._active:
            return None
        self.reading = True
        try:
            if self.delay:
                time.sleep(self.delay)
            self.captures += 1
            return VideoFrame(data=b"\xff\xd8jpeg\xff\xd9")
        finally:
            self.reading = False

    async def stop(self) -> None:
        if self.reading:
            self.stopped_while_reading = True
        self._active = False


class FakeHandle:
    def __init__(self, sink: "FakeSink", chunk, start_time: float, on_ended) -> None:
        self.sink = sink
        self.chunk = chunk
        self.start_time = start_time
        self.on_ended = on_ended
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True

    def finish(self) -> None:
        self.on_ended(self)


class FakeSink:
    """AudioSink with a manually advanced playback clock."""

    def __init__(self) -> None:
        self.current_time = 0.0
        self.played: list[FakeHandle] = []
        self.opened = 0
        self.closed = 0
        self.is_open = False

    def open(self) -> None:
        self.opened += 1
        self.is_open = True

    def play(self, chunk, start_time, on_ended) -> FakeHandle:
        handle = FakeHandle(self, chunk, start_time, on_ended)
        self.played.append(handle)
        return handle

    def close(self) -> None:
        self.closed += 1
        self.is_open = False


# ---------------------------------------------------------------------------
# Server message builders
# ---------------------------------------------------------------------------
def server_message(**kwargs) -> SimpleNamespace:
    fields = {
        "session_resumption_update": None,
        "go_away": None,
        "server_content": None,
        "tool_call": None,
    }
    fields.update(kwargs)
    return SimpleNamespace(**fields)


def server_content(parts=None, **kwargs) -> SimpleNamespace:
    fields = {
        "model_turn": SimpleNamespace(parts=parts) if parts is not None else None,
        "input_transcription": None,
        "output_transcription": None,
        "turn_complete": False,
        "interrupted": False,
    }
    fields.update(kwargs)
    return SimpleNamespace(**fields)


def audio_part(data: bytes, mime_type: str = "audio/pcm;rate=24000") -> SimpleNamespace:
    return SimpleNamespace(
        inline_data=SimpleNamespace(data=data, mime_type=mime_type), thought=None, text=None
    )


def thought_part(text: str) -> SimpleNamespace:
    return SimpleNamespace(inline_data=None, thought=True, text=text)


def transcription(text: str) -> SimpleNamespace:
    return SimpleNamespace(text=text)


def function_call(call_id: str, name: str, args: dict | None = None) -> SimpleNamespace:
    return SimpleNamespace(id=call_id, name=name, args=args or {})


def tool_call(*calls) -> SimpleNamespace:
    return SimpleNamespace(function_calls=list(calls))


async def wait_for(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provisioner(clock):
    return FakeProvisioner(clock)


@pytest.fixture
def transports():
    return TransportFactory()


@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def config():
    return LiveSessionConfig(api_key="test-key")


@pytest.fixture
def make_session(config, transports, microphone, camera, sink, provisioner, clock):
    """Factory building a LiveSession wired to the fakes."""

    def _make(**overrides) -> LiveSession:
        cfg = config
        if overrides:
            cfg.update(**overrides)
        return LiveSession(
            cfg,
            transport_factory=transports,
            microphone=microphone,
            camera=camera,
            audio_sink=sink,
            provisioner=provisioner,
            now=clock,
            tick_interval=0.01,
            video_interval=0.01,
        )

    return _make


@pytest.fixture
async def session(make_session):
    live = make_session()
    yield live
    await live.stop()
    if live.is_camera_on:
        await live.toggle_camera()


@pytest.fixture
def events(session):
    """Record every event the session emits as (type, data) tuples."""
    from gemini_live_session.const import ALL_EVENTS

    recorded: list[tuple[str, dict]] = []
    for event_type in ALL_EVENTS:
        session.on(event_type, lambda data, event_type=event_type: recorded.append((event_type, data)))
    return recorded


def event_types(recorded, event_type: str) -> list[dict]:
    return [data for kind, data in recorded if kind == event_type]
