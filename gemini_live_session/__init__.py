"""Real-time streaming session core for the Gemini Live API.

Captures microphone audio and camera frames, streams them to the Live API,
plays back the model's audio gaplessly, and keeps transcripts, ephemeral
credentials, resumption handles and tool calls in step with one session
state machine.
"""
from __future__ import annotations

from .config import LiveSessionConfig
from .exceptions import (
    DecodeError,
    DeviceAccessError,
    InvalidCommand,
    LiveSessionError,
    ProvisioningError,
)
from .session import LiveSession, SessionStatus

__all__ = [
    "DecodeError",
    "DeviceAccessError",
    "InvalidCommand",
    "LiveSession",
    "LiveSessionConfig",
    "LiveSessionError",
    "ProvisioningError",
    "SessionStatus",
]
