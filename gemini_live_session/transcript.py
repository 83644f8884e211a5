"""Interaction transcript with per-turn delta coalescing."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal

Role = Literal["user", "model", "tool"]

ROLE_USER: Role = "user"
ROLE_MODEL: Role = "model"
ROLE_TOOL: Role = "tool"


@dataclass
class TranscriptEntry:
    """One line of the transcript."""

    role: Role
    text: str = ""

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class Transcript:
    """Ordered, append-only list of transcript entries.

    Consecutive deltas from the same role grow the most recent entry; a
    delta from another role starts a new one.
    """

    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[TranscriptEntry]:
        return list(self._entries)

    @property
    def last(self) -> TranscriptEntry | None:
        return self._entries[-1] if self._entries else None

    def append_delta(self, role: Role, text: str) -> TranscriptEntry:
        """Append an incremental delta for ``role``."""
        last = self.last
        if last is not None and last.role == role:
            last.text += text
            return last
        entry = TranscriptEntry(role=role, text=text)
        self._entries.append(entry)
        return entry

    def add(self, role: Role, text: str) -> TranscriptEntry:
        """Always start a new entry (used for tool invocations)."""
        entry = TranscriptEntry(role=role, text=text)
        self._entries.append(entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def as_list(self) -> list[dict[str, Any]]:
        return [entry.as_dict() for entry in self._entries]
