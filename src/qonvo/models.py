"""Data records and snapshot types shared across qonvo."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .cancellation import CancellationToken

if TYPE_CHECKING:
    from .controller import RecognitionController
    from .errors import VoiceError


class Role(str, Enum):
    """Speaker of a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"


class RecognitionMethod(str, Enum):
    """Recognition lifetimes supported by controllers and conversations."""

    ONCE = "once"
    CONTINUOUS = "continuous"


class SessionKind(str, Enum):
    ONE_SHOT = "one-shot"
    CONTINUOUS = "continuous"


@dataclass(frozen=True, slots=True)
class TranscriptEntry:
    """One spoken turn, either provisional (interim) or settled (final)."""

    id: str
    role: Role
    text: str
    timestamp: float
    final: bool


@dataclass(frozen=True, slots=True)
class Availability:
    recognition_supported: bool = False
    synthesis_supported: bool = False
    details: str | None = None


@dataclass(frozen=True, slots=True)
class VoiceInfo:
    id: str
    name: str
    language_tag: str


@dataclass(frozen=True, slots=True)
class LanguageInfo:
    code: str
    name: str
    voice_count: int


@dataclass(frozen=True, slots=True)
class RecognitionResult:
    """Final text produced by a recognition session."""

    text: str
    at: float
    confidence: float | None = None
    phrase: str | None = None


@dataclass(slots=True)
class RecognizeOptions:
    method: RecognitionMethod = RecognitionMethod.CONTINUOUS
    caption: bool = False
    cancellation_token: CancellationToken | None = None
    on_error: Callable[[VoiceError], None] | None = None


@dataclass(slots=True)
class SynthesizeOptions:
    rate: float | None = None
    pitch: float | None = None
    voice_id: str | None = None
    language_tag: str | None = None
    cancellation_token: CancellationToken | None = None
    on_error: Callable[[VoiceError], None] | None = None


@dataclass(slots=True)
class ConversationOptions:
    method: RecognitionMethod = RecognitionMethod.CONTINUOUS
    caption: bool | None = None


@dataclass(slots=True)
class RecognitionSession:
    kind: SessionKind
    cancellation_token: CancellationToken
    started_at: float
    controller: RecognitionController | None = None


@dataclass(slots=True)
class SynthesisSession:
    text: str
    cancellation_token: CancellationToken
    started_at: float
    paused_at: float | None = None

    @property
    def paused(self) -> bool:
        return self.paused_at is not None


@dataclass(slots=True)
class ConversationLoop:
    cancellation_token: CancellationToken
    is_running: bool = True


# ---- Snapshots ----


@dataclass(frozen=True, slots=True)
class RecognitionSnapshot:
    is_active: bool = False
    is_available: bool = False


@dataclass(frozen=True, slots=True)
class SynthesisSnapshot:
    is_active: bool = False
    is_paused: bool = False
    is_available: bool = False


@dataclass(frozen=True, slots=True)
class TranscriptSnapshot:
    entries: tuple[TranscriptEntry, ...] = field(default_factory=tuple)
    caption: str | None = None


@dataclass(frozen=True, slots=True)
class ConversationSnapshot:
    is_active: bool = False
    is_available: bool = False


@dataclass(frozen=True, slots=True)
class ReadinessSnapshot:
    is_ready: bool = False
    error: VoiceError | None = None


# Defaults usable before any engine is bound.
INITIAL_RECOGNITION_SNAPSHOT = RecognitionSnapshot()
INITIAL_SYNTHESIS_SNAPSHOT = SynthesisSnapshot()
INITIAL_TRANSCRIPT_SNAPSHOT = TranscriptSnapshot()
INITIAL_CONVERSATION_SNAPSHOT = ConversationSnapshot()
INITIAL_READINESS_SNAPSHOT = ReadinessSnapshot()
