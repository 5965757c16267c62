"""Contracts for speech recognition and synthesis engines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from .cancellation import CancellationToken
from .errors import VoiceError
from .models import Availability, VoiceInfo


@dataclass(slots=True)
class RecognitionCallbacks:
    """Handlers an engine invokes while a recognition session runs."""

    on_final: Callable[[str, float | None], None]
    on_error: Callable[[VoiceError], None]
    cancellation_token: CancellationToken
    on_partial: Callable[[str], None] | None = None


@dataclass(slots=True)
class SynthesisRequest:
    """Voice parameters for one synthesis call."""

    cancellation_token: CancellationToken
    rate: float | None = None
    pitch: float | None = None
    voice_id: str | None = None
    language_tag: str | None = None


class RecognitionEngine(Protocol):
    """Converts live audio into text and reports results through callbacks."""

    @property
    def is_active(self) -> bool:
        """Whether the engine is currently listening."""

    async def availability(self) -> Availability:
        """Report which capabilities this engine supports on the current host."""

    async def start(self, callbacks: RecognitionCallbacks) -> None:
        """Begin listening; results arrive through ``callbacks``."""

    async def stop(self) -> None:
        """Stop listening and release audio resources."""


class SynthesisEngine(Protocol):
    """Speaks text aloud."""

    @property
    def is_active(self) -> bool:
        """Whether the engine is currently speaking."""

    @property
    def is_paused(self) -> bool:
        """Whether playback is paused."""

    async def availability(self) -> Availability:
        """Report which capabilities this engine supports on the current host."""

    async def start(self, text: str, request: SynthesisRequest) -> None:
        """Speak ``text``; returns once playback has finished or been cancelled."""

    async def pause(self) -> None: ...

    async def resume(self) -> None: ...

    async def stop(self) -> None: ...

    async def list_voices(self) -> Sequence[VoiceInfo]:
        """Return the voices this engine can speak with."""
