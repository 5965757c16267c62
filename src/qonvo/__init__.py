"""Qonvo: one process-wide voice orchestrator over pluggable recognition and synthesis engines."""

from .cancellation import CancellationToken
from .config import Settings, settings
from .controller import RecognitionController, RecognitionFuture
from .conversation import ConversationChain
from .errors import ErrorMapper, VoiceError, VoiceErrorCode, is_system_error, is_voice_error
from .interfaces import RecognitionCallbacks, RecognitionEngine, SynthesisEngine, SynthesisRequest
from .models import (
    Availability,
    ConversationOptions,
    LanguageInfo,
    RecognitionMethod,
    RecognitionResult,
    RecognizeOptions,
    Role,
    SynthesizeOptions,
    TranscriptEntry,
    VoiceInfo,
)
from .orchestrator import Domain, VoiceOrchestrator, subscribe_all

__all__ = [
    "Availability",
    "CancellationToken",
    "ConversationChain",
    "ConversationOptions",
    "Domain",
    "ErrorMapper",
    "LanguageInfo",
    "RecognitionCallbacks",
    "RecognitionController",
    "RecognitionEngine",
    "RecognitionFuture",
    "RecognitionMethod",
    "RecognitionResult",
    "RecognizeOptions",
    "Role",
    "Settings",
    "SynthesisEngine",
    "SynthesisRequest",
    "SynthesizeOptions",
    "TranscriptEntry",
    "VoiceError",
    "VoiceErrorCode",
    "VoiceInfo",
    "VoiceOrchestrator",
    "is_system_error",
    "is_voice_error",
    "settings",
    "subscribe_all",
]
