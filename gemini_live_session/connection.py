"""Transport to the Gemini Live API over the google-genai SDK.

``LiveConnection`` owns one ``client.aio.live.connect`` context and turns the
SDK's pull-style ``session.receive()`` into the callback surface the session
state machine consumes: ``on_open``, ``on_message``, ``on_error`` and
``on_close``.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from google import genai
from google.genai import types

from .config import LiveSessionConfig
from .const import API_VERSION_DEFAULT, API_VERSION_EPHEMERAL, CLOSE_CODES
from .tools import ToolRegistry

_LOGGER = logging.getLogger(__name__)

# Set google_genai loggers to DEBUG to avoid warning spam about non-data parts
logging.getLogger("google_genai.types").setLevel(logging.DEBUG)
logging.getLogger("google_genai").setLevel(logging.DEBUG)

# Clean closures end the receive loop through on_close; anything else is an error
_NORMAL_CLOSE_CODES = ("1000", "1001")


def build_live_config(
    config: LiveSessionConfig,
    registry: ToolRegistry | None = None,
    resumption_handle: str | None = None,
) -> types.LiveConnectConfig:
    """Build LiveConnectConfig for a session."""
    speech_config = types.SpeechConfig(
        voice_config=types.VoiceConfig(
            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=config.voice)
        )
    )

    config_kwargs: dict[str, Any] = {
        "response_modalities": ["AUDIO"],
        "speech_config": speech_config,
        "thinking_config": types.ThinkingConfig(
            thinking_budget=config.effective_thinking_budget,
            include_thoughts=config.include_thoughts and config.thinking,
        ),
    }

    if config.system_instruction:
        config_kwargs["system_instruction"] = types.Content(
            parts=[types.Part.from_text(text=config.system_instruction)],
            role="user",
        )

    tools: list[types.Tool] = []
    if config.use_google_search:
        tools.append(types.Tool(google_search=types.GoogleSearch()))
    if registry is not None and config.active_tools:
        declarations = registry.function_declarations(config.active_tools)
        if declarations:
            tools.append(types.Tool(function_declarations=declarations))
    if tools:
        config_kwargs["tools"] = tools

    if config.transcription:
        config_kwargs["input_audio_transcription"] = types.AudioTranscriptionConfig()
        config_kwargs["output_audio_transcription"] = types.AudioTranscriptionConfig()

    # Session resumption for long-running sessions
    if config.enable_session_resumption:
        if resumption_handle:
            config_kwargs["session_resumption"] = types.SessionResumptionConfig(
                handle=resumption_handle
            )
        else:
            config_kwargs["session_resumption"] = types.SessionResumptionConfig()

    return types.LiveConnectConfig(**config_kwargs)


def parse_time_left(value: Any) -> int | None:
    """Parse a go-away ``time_left`` into whole seconds.

    Handles Duration-like objects, numbers and strings such as ``"50s"``.
    """
    if value is None:
        return None
    if hasattr(value, "total_seconds"):
        return int(value.total_seconds())
    if hasattr(value, "seconds"):
        return int(value.seconds)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        # Remove common suffixes like 's' for seconds
        cleaned = value.strip().rstrip("smSM").strip()
        try:
            return int(float(cleaned))
        except ValueError:
            _LOGGER.debug("Could not parse time_left: %s", value)
    return None


def is_normal_close(err: BaseException) -> bool:
    error_str = str(err)
    return any(code in error_str for code in _NORMAL_CLOSE_CODES)


def is_close_error(err: BaseException) -> bool:
    """Return True when ``err`` reports a closed websocket."""
    error_str = str(err)
    return any(code in error_str for code in CLOSE_CODES) or "closed" in error_str.lower()


class LiveConnection:
    """One live websocket session with callback delivery.

    Args:
        api_key: Gemini API key; an ephemeral token passed to ``open`` takes
            its place.
        client_factory: Optional factory ``(api_key, api_version) -> Client``.
    """

    def __init__(
        self,
        api_key: str,
        *,
        client_factory: Callable[[str, str], Any] | None = None,
    ) -> None:
        self._api_key = api_key
        self._client_factory = client_factory or _create_client
        self._client: Any = None
        self._session: Any = None
        self._session_context: Any = None
        self._receive_task: asyncio.Task | None = None
        self._connected = False
        self._closed = False

    @property
    def connected(self) -> bool:
        """Return connection status."""
        return self._connected

    async def open(
        self,
        model: str,
        config: Any,
        *,
        on_open: Callable[[], Awaitable[None]],
        on_message: Callable[[Any], Awaitable[None]],
        on_error: Callable[[Exception], Awaitable[None]],
        on_close: Callable[[], Awaitable[None]],
        auth_token: str | None = None,
    ) -> None:
        """Connect and start the receive loop.

        Errors raised by the handshake propagate to the caller.
        """
        if self._connected or self._closed:
            raise RuntimeError("Connection already used")

        # Ephemeral tokens are only accepted on v1alpha
        api_version = API_VERSION_EPHEMERAL if auth_token else API_VERSION_DEFAULT
        auth_key = auth_token or self._api_key

        # Create client in executor to avoid blocking SSL operations
        loop = asyncio.get_running_loop()
        self._client = await loop.run_in_executor(
            None, self._client_factory, auth_key, api_version
        )

        context = self._client.aio.live.connect(model=model, config=config)
        session = await context.__aenter__()
        if self._closed:
            # close() was called during the handshake
            _LOGGER.debug("Connection closed during handshake; dropping session")
            try:
                await context.__aexit__(None, None, None)
            except Exception as err:
                _LOGGER.debug("Error closing session context: %s", err)
            return
        self._session_context = context
        self._session = session
        self._connected = True
        _LOGGER.info("Connected to Gemini Live API (model=%s api_version=%s)", model, api_version)

        await on_open()

        # on_open may have torn the connection down already
        if self._connected:
            self._receive_task = asyncio.create_task(
                self._receive_loop(on_message, on_error, on_close)
            )

    async def _receive_loop(
        self,
        on_message: Callable[[Any], Awaitable[None]],
        on_error: Callable[[Exception], Awaitable[None]],
        on_close: Callable[[], Awaitable[None]],
    ) -> None:
        """Deliver server messages until the socket closes.

        ``session.receive()`` finishes at every turn boundary, so it is
        re-entered for as long as the connection is up.
        """
        while self._connected and self._session is not None:
            try:
                async for message in self._session.receive():
                    try:
                        await on_message(message)
                    except Exception:
                        _LOGGER.exception("Error handling server message")
            except asyncio.CancelledError:
                break
            except Exception as err:
                error_str = str(err)
                if "1007" in error_str or "invalid frame" in error_str.lower():
                    _LOGGER.error("WebSocket closed due to invalid frame payload (1007): %s", error_str)
                elif "1008" in error_str or "policy violation" in error_str.lower():
                    _LOGGER.error("Policy error in receive loop; closing session: %s", error_str)
                elif "1011" in error_str:
                    _LOGGER.info("WebSocket connection terminated (deadline expired)")
                elif is_close_error(err):
                    _LOGGER.info("WebSocket connection closed: %s", error_str)
                else:
                    _LOGGER.error("Error in receive loop: %s", error_str)
                _LOGGER.debug("Receive loop exception", exc_info=True)

                self._receive_task = None
                await self._close_context(err)
                if is_normal_close(err):
                    await on_close()
                else:
                    await on_error(err)
                return

    async def send_realtime_input(self, **kwargs: Any) -> None:
        """Send audio or media with ``session.send_realtime_input``."""
        session = self._session
        if not self._connected or session is None:
            return
        await session.send_realtime_input(**kwargs)

    async def send_tool_response(self, function_responses: list[Any]) -> None:
        """Send one batch of function responses."""
        session = self._session
        if not self._connected or session is None:
            return
        _LOGGER.debug("Sending %d function responses", len(function_responses))
        await session.send_tool_response(function_responses=function_responses)

    async def close(self) -> None:
        """Disconnect from the Gemini Live API. Safe to call repeatedly."""
        self._closed = True
        task = self._receive_task
        self._receive_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            self._connected = False
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._session_context is None and not self._connected:
            return
        await self._close_context(None)
        _LOGGER.info("Disconnected from Gemini Live API")

    async def _close_context(self, err: BaseException | None) -> None:
        self._connected = False
        context = self._session_context
        self._session_context = None
        self._session = None
        if context is None:
            return
        try:
            if err is None:
                await context.__aexit__(None, None, None)
            else:
                await context.__aexit__(type(err), err, err.__traceback__)
        except Exception as cerr:
            _LOGGER.debug("Error closing session context: %s", cerr)


def _create_client(api_key: str, api_version: str) -> genai.Client:
    return genai.Client(http_options={"api_version": api_version}, api_key=api_key)
