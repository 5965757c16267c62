"""Process-wide voice orchestrator owning engines, sessions and snapshots."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable

from .config import Settings, settings as default_settings
from .controller import RecognitionController
from .conversation import ConversationChain, ConversationOrchestrator, Sleeper
from .errors import ErrorCallback, ErrorPipeline, VoiceError, VoiceErrorCode, safe_cleanup, to_voice_error
from .interfaces import RecognitionEngine, SynthesisEngine
from .languages import LabelResolver, group_languages
from .models import (
    INITIAL_CONVERSATION_SNAPSHOT,
    INITIAL_READINESS_SNAPSHOT,
    INITIAL_RECOGNITION_SNAPSHOT,
    INITIAL_SYNTHESIS_SNAPSHOT,
    INITIAL_TRANSCRIPT_SNAPSHOT,
    Availability,
    ConversationOptions,
    ConversationSnapshot,
    LanguageInfo,
    ReadinessSnapshot,
    RecognitionResult,
    RecognitionSnapshot,
    RecognizeOptions,
    SynthesisSnapshot,
    SynthesizeOptions,
    TranscriptSnapshot,
    VoiceInfo,
)
from .notify import Listener, ObservableCell, Unsubscribe
from .recognition import RecognitionSessionManager
from .synthesis import SynthesisSessionManager
from .telemetry.logging import Telemetry
from .transcript import TranscriptStore


class Domain(str, Enum):
    """Observable state domains, each with its own listeners and snapshot cache."""

    RECOGNITION = "recognition"
    SYNTHESIS = "synthesis"
    TRANSCRIPT = "transcript"
    CONVERSATION = "conversation"
    READINESS = "readiness"


INITIAL_SNAPSHOTS: dict[Domain, Any] = {
    Domain.RECOGNITION: INITIAL_RECOGNITION_SNAPSHOT,
    Domain.SYNTHESIS: INITIAL_SYNTHESIS_SNAPSHOT,
    Domain.TRANSCRIPT: INITIAL_TRANSCRIPT_SNAPSHOT,
    Domain.CONVERSATION: INITIAL_CONVERSATION_SNAPSHOT,
    Domain.READINESS: INITIAL_READINESS_SNAPSHOT,
}


class VoiceOrchestrator:
    """Binds one recognition engine and one synthesis engine into a session model.

    Construct exactly one per process with :meth:`create`, call :meth:`bind`
    once the platform engines exist, and :meth:`dispose` on shutdown.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        telemetry: Telemetry | None = None,
        sleep: Sleeper | None = None,
        language_resolver: LabelResolver | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings or default_settings
        self._language_resolver = language_resolver
        self._logger = logger or logging.getLogger("qonvo.orchestrator")

        self._recognition_engine: RecognitionEngine | None = None
        self._synthesis_engine: SynthesisEngine | None = None
        self._ready = False
        self._recognition_available = False
        self._synthesis_available = False
        self._disposed = False

        self._cells: dict[Domain, ObservableCell[Any]] = {
            Domain.RECOGNITION: ObservableCell("recognition", self._compute_recognition),
            Domain.SYNTHESIS: ObservableCell("synthesis", self._compute_synthesis),
            Domain.TRANSCRIPT: ObservableCell("transcript", self._compute_transcript),
            Domain.CONVERSATION: ObservableCell("conversation", self._compute_conversation),
            Domain.READINESS: ObservableCell("readiness", self._compute_readiness),
        }

        self.errors = ErrorPipeline(
            on_last_error_changed=self._cells[Domain.READINESS].invalidate,
            logging_enabled=self._settings.error_logging,
        )
        self.transcript = TranscriptStore(on_change=self._cells[Domain.TRANSCRIPT].invalidate)
        self.recognition = RecognitionSessionManager(
            engine=lambda: self._recognition_engine,
            transcript=self.transcript,
            errors=self.errors,
            on_change=self._cells[Domain.RECOGNITION].invalidate,
            telemetry=telemetry,
        )
        self.synthesis = SynthesisSessionManager(
            engine=lambda: self._synthesis_engine,
            transcript=self.transcript,
            errors=self.errors,
            on_change=self._cells[Domain.SYNTHESIS].invalidate,
            telemetry=telemetry,
        )
        self.conversation = ConversationOrchestrator(
            recognition=self.recognition,
            synthesis=self.synthesis,
            errors=self.errors,
            on_change=self._cells[Domain.CONVERSATION].invalidate,
            settings=self._settings,
            telemetry=telemetry,
            sleep=sleep,
        )

    @classmethod
    def create(cls, **kwargs: Any) -> VoiceOrchestrator:
        return cls(**kwargs)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def recognition_engine(self) -> RecognitionEngine | None:
        return self._recognition_engine

    @property
    def synthesis_engine(self) -> SynthesisEngine | None:
        return self._synthesis_engine

    @property
    def is_ready(self) -> bool:
        return self._ready

    # ---- lifecycle ----

    async def bind(
        self,
        recognition_engine: RecognitionEngine | None,
        synthesis_engine: SynthesisEngine | None,
    ) -> None:
        """Install the platform engines and republish availability."""
        if self._disposed:
            raise VoiceError(VoiceErrorCode.INVALID_STATE, "Voice orchestrator has been disposed")
        self._recognition_engine = recognition_engine
        self._synthesis_engine = synthesis_engine
        self._logger.info(
            "engines_bound",
            extra={
                "recognition_engine": type(recognition_engine).__name__ if recognition_engine else None,
                "synthesis_engine": type(synthesis_engine).__name__ if synthesis_engine else None,
            },
        )
        await self.refresh_availability()

    async def refresh_availability(self) -> None:
        recognition = await self._query_availability(self._recognition_engine, "recognition")
        synthesis = await self._query_availability(self._synthesis_engine, "synthesis")
        self._ready = True
        self._recognition_available = recognition.recognition_supported
        self._synthesis_available = synthesis.synthesis_supported
        for domain in (Domain.RECOGNITION, Domain.SYNTHESIS, Domain.CONVERSATION, Domain.READINESS):
            self._cells[domain].invalidate()

    async def dispose(self) -> None:
        """Stop every session and the conversation loop, then drop engines and listeners."""
        if self._disposed:
            return
        logging_enabled = self.errors.logging_enabled
        await safe_cleanup(self.conversation.aclose, "conversation", logging_enabled=logging_enabled)
        await safe_cleanup(self.recognition.aclose, "recognition", logging_enabled=logging_enabled)
        await safe_cleanup(self.synthesis.stop, "synthesis", logging_enabled=logging_enabled)
        self._recognition_engine = None
        self._synthesis_engine = None
        self._disposed = True
        for cell in self._cells.values():
            cell.clear_listeners()
        self._logger.info("orchestrator_disposed")

    # ---- recognition ----

    async def start_recognition(self, options: RecognizeOptions | None = None) -> RecognitionController:
        controller = RecognitionController(self.recognition, options)
        return await controller.start()

    async def recognize_once(self, *, caption: bool = False) -> RecognitionResult:
        return await self.recognition.recognize_once(caption=caption)

    async def stop_recognition(self) -> None:
        await self.recognition.stop()

    # ---- synthesis ----

    async def speak(self, text: str, options: SynthesizeOptions | None = None) -> None:
        await self.synthesis.start(text, options)

    async def pause_synthesis(self) -> None:
        await self.synthesis.pause()

    async def resume_synthesis(self) -> None:
        await self.synthesis.resume()

    async def stop_synthesis(self) -> None:
        await self.synthesis.stop()

    # ---- conversation ----

    def start_conversation(self, options: ConversationOptions | None = None) -> ConversationChain:
        return self.conversation.start(options)

    def stop_conversation(self) -> None:
        self.conversation.stop()

    # ---- transcript and errors ----

    def clear_transcript(self) -> None:
        self.transcript.clear()

    @property
    def last_error(self) -> VoiceError | None:
        return self.errors.last_error

    def clear_error(self) -> None:
        self.errors.clear()

    def set_global_on_error(self, callback: ErrorCallback | None) -> None:
        self.errors.global_on_error = callback

    # ---- notifications ----

    def subscribe(self, domain: Domain | str, listener: Listener) -> Unsubscribe:
        return self._cells[Domain(domain)].subscribe(listener)

    def get_snapshot(self, domain: Domain | str) -> Any:
        return self._cells[Domain(domain)].get_snapshot()

    @staticmethod
    def initial_snapshot(domain: Domain | str) -> Any:
        return INITIAL_SNAPSHOTS[Domain(domain)]

    # ---- utilities ----

    async def list_voices(self) -> list[VoiceInfo]:
        if self._synthesis_engine is None:
            return []
        return list(await self._synthesis_engine.list_voices())

    async def list_languages(self) -> list[LanguageInfo]:
        return group_languages(await self.list_voices(), self._language_resolver)

    # ---- snapshot computation ----

    def _compute_recognition(self) -> RecognitionSnapshot:
        return RecognitionSnapshot(is_active=self.recognition.is_active, is_available=self._recognition_available)

    def _compute_synthesis(self) -> SynthesisSnapshot:
        return SynthesisSnapshot(
            is_active=self.synthesis.is_active,
            is_paused=self.synthesis.is_paused,
            is_available=self._synthesis_available,
        )

    def _compute_transcript(self) -> TranscriptSnapshot:
        return TranscriptSnapshot(entries=tuple(self.transcript.get_entries()), caption=self.transcript.get_caption())

    def _compute_conversation(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            is_active=self.conversation.is_active,
            is_available=self._recognition_available and self._synthesis_available,
        )

    def _compute_readiness(self) -> ReadinessSnapshot:
        return ReadinessSnapshot(is_ready=self._ready, error=self.errors.last_error)

    async def _query_availability(self, engine: Any, label: str) -> Availability:
        if engine is None:
            return Availability()
        try:
            return await engine.availability()
        except Exception as exc:  # noqa: BLE001 - an engine that cannot answer is unavailable.
            code = VoiceErrorCode.STT_NOT_AVAILABLE if label == "recognition" else VoiceErrorCode.TTS_NOT_AVAILABLE
            self.errors.log(to_voice_error(exc, code), f"{label}_availability")
            return Availability(details=str(exc))


def subscribe_all(orchestrator: VoiceOrchestrator, listener: Callable[[Domain], None]) -> Unsubscribe:
    """Subscribe ``listener`` to every domain; it receives the domain that changed."""
    removers = [orchestrator.subscribe(domain, lambda domain=domain: listener(domain)) for domain in Domain]

    def _unsubscribe() -> None:
        for remove in removers:
            remove()

    return _unsubscribe
