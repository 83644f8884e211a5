"""Protocol interfaces for the session's external collaborators.

The session only talks to devices, the playback clock, the token backend
and the streaming service through these protocols so each can be swapped
for a fake in tests.
"""
from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime
from typing import Any, Protocol

import numpy as np

from .pcm import AudioChunk


class AudioSource(Protocol):
    """Microphone producing fixed-size float32 frames."""

    @property
    def active(self) -> bool:
        """Return True while the input device is open."""

    async def start(self) -> None:
        """Open the device. Raises DeviceAccessError on failure."""

    def frames(self) -> AsyncIterator[np.ndarray]:
        """Yield captured frames until the source is stopped."""

    async def stop(self) -> None:
        """Close the device and end the frame iterator."""


class FrameSource(Protocol):
    """Camera producing still JPEG frames on demand."""

    @property
    def active(self) -> bool:
        """Return True while the camera is open."""

    async def start(self) -> None:
        """Open the camera. Raises DeviceAccessError on failure."""

    def capture(self) -> Any:
        """Grab one frame (blocking); returns a VideoFrame or None."""

    async def stop(self) -> None:
        """Release the camera."""


class PlaybackHandle(Protocol):
    """One scheduled chunk on the playback timeline."""

    def stop(self) -> None:
        """Stop playback immediately."""


class AudioSink(Protocol):
    """Playback clock and output device."""

    @property
    def current_time(self) -> float:
        """Current position of the playback clock in seconds."""

    def open(self) -> None:
        """Open the output device."""

    def play(
        self,
        chunk: AudioChunk,
        start_time: float,
        on_ended: Callable[[PlaybackHandle], None],
    ) -> PlaybackHandle:
        """Schedule a chunk to start at ``start_time`` on the playback clock."""

    def close(self) -> None:
        """Stop all output and release the device."""


class TokenProvisioner(Protocol):
    """Backend issuing short-lived, single-use access tokens."""

    async def create_token(self, duration_minutes: float) -> tuple[str, datetime]:
        """Return ``(token, expires_at)``."""


class LiveTransport(Protocol):
    """Bidirectional stream to the remote live service."""

    @property
    def connected(self) -> bool:
        """Return connection status."""

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
        """Perform the handshake and start delivering callbacks."""

    async def send_realtime_input(self, **kwargs: Any) -> None:
        """Send one audio or media payload."""

    async def send_tool_response(self, function_responses: list[Any]) -> None:
        """Send a batch of function responses."""

    async def close(self) -> None:
        """Close the stream."""
