"""Session resumption handle tracking."""
from __future__ import annotations

import logging

_LOGGER = logging.getLogger(__name__)


class ResumptionTracker:
    """Holds the newest resumption handle issued by the server.

    The handle is supplied verbatim on the next connect. While a handle is
    held the transcript is kept across reconnects; a fresh session (no
    handle) starts with an empty transcript.
    """

    def __init__(self, handle: str | None = None) -> None:
        self._handle: str | None = handle
        self._resumable: bool = bool(handle)

    @property
    def handle(self) -> str | None:
        """Get the current session resumption handle."""
        return self._handle

    @property
    def has_handle(self) -> bool:
        return bool(self._handle)

    @property
    def resumable(self) -> bool:
        return self._resumable

    def update(self, new_handle: str | None, resumable: bool | None) -> bool:
        """Apply a server resumption update.

        Only updates marked resumable and carrying a handle replace the
        stored one. Returns True when the handle changed.
        """
        if not resumable or not new_handle:
            _LOGGER.debug(
                "Ignoring resumption update (resumable=%s has_handle=%s)",
                resumable,
                bool(new_handle),
            )
            return False
        changed = new_handle != self._handle
        self._handle = new_handle
        self._resumable = True
        _LOGGER.debug("Session resumption handle updated (changed=%s)", changed)
        return changed

    def set(self, handle: str | None) -> None:
        """Set the handle for the next connection (e.g. restored by the caller)."""
        self._handle = handle or None
        self._resumable = bool(self._handle)

    def clear(self) -> None:
        """Discard the handle on explicit session reset."""
        if self._handle:
            _LOGGER.debug("Discarding session resumption handle")
        self._handle = None
        self._resumable = False
