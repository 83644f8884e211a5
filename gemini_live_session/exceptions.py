"""Exceptions raised by the live session core."""
from __future__ import annotations


class LiveSessionError(Exception):
    """Base class for live session errors."""


class DeviceAccessError(LiveSessionError):
    """Raised when the microphone or camera is denied or unavailable."""


class ProvisioningError(LiveSessionError):
    """Raised when an ephemeral credential cannot be issued or reused."""


class DecodeError(LiveSessionError):
    """Raised when an inbound PCM payload is malformed."""


class InvalidCommand(LiveSessionError):
    """Raised when a control message does not match its schema."""
