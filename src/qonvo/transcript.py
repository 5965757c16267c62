"""Append-only transcript with interim/final reconciliation per role."""

from __future__ import annotations

import time
from typing import Callable
from uuid import uuid4

from .models import Role, TranscriptEntry


class TranscriptStore:
    """Keeps spoken turns in insertion order.

    At most one interim entry exists per role; recording a final entry for a
    role drops that role's interim entry.
    """

    def __init__(self, on_change: Callable[[], None] | None = None) -> None:
        self._entries: list[TranscriptEntry] = []
        self._on_change = on_change

    def add_interim(self, role: Role | str, text: str) -> TranscriptEntry:
        role = Role(role)
        for index, entry in enumerate(self._entries):
            if entry.role is role and not entry.final:
                updated = TranscriptEntry(id=entry.id, role=role, text=text, timestamp=time.time(), final=False)
                self._entries[index] = updated
                break
        else:
            updated = TranscriptEntry(id=uuid4().hex, role=role, text=text, timestamp=time.time(), final=False)
            self._entries.append(updated)
        self._changed()
        return updated

    def add_final(self, role: Role | str, text: str) -> TranscriptEntry:
        role = Role(role)
        self._entries = [entry for entry in self._entries if entry.final or entry.role is not role]
        entry = TranscriptEntry(id=uuid4().hex, role=role, text=text, timestamp=time.time(), final=True)
        self._entries.append(entry)
        self._changed()
        return entry

    def clear(self) -> None:
        self._entries = []
        self._changed()

    def get_caption(self) -> str | None:
        """Text of the most recently added interim entry across both roles."""
        interim = [entry for entry in self._entries if not entry.final]
        return interim[-1].text if interim else None

    def get_entries(self) -> list[TranscriptEntry]:
        return [entry for entry in self._entries if entry.final]

    def __len__(self) -> int:
        return len(self._entries)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
