"""Synthesis session lifecycle on top of a bound synthesis engine."""

from __future__ import annotations

import logging
import time
from typing import Callable

from .cancellation import CancellationToken
from .errors import ErrorPipeline, VoiceError, VoiceErrorCode, raise_unless_aborted, to_voice_error
from .interfaces import SynthesisEngine, SynthesisRequest
from .models import Role, SynthesisSession, SynthesizeOptions
from .telemetry.logging import Telemetry
from .transcript import TranscriptStore


class SynthesisSessionManager:
    """Owns the single synthesis session.

    The spoken text is recorded as a final assistant transcript entry as soon
    as the session starts, since it is known before playback begins.
    """

    def __init__(
        self,
        *,
        engine: Callable[[], SynthesisEngine | None],
        transcript: TranscriptStore,
        errors: ErrorPipeline,
        on_change: Callable[[], None],
        telemetry: Telemetry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._engine = engine
        self._transcript = transcript
        self._errors = errors
        self._on_change = on_change
        self._telemetry = telemetry
        self._logger = logger or logging.getLogger("qonvo.synthesis")
        self._session: SynthesisSession | None = None

    @property
    def session(self) -> SynthesisSession | None:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None

    @property
    def is_paused(self) -> bool:
        return self._session is not None and self._session.paused

    async def start(self, text: str, options: SynthesizeOptions | None = None) -> None:
        """Speak ``text``, returning once playback ends.

        Engine failures are normalized, recorded and re-raised; a cancelled
        session returns normally.
        """
        options = options or SynthesizeOptions()
        engine = self._engine()
        if engine is None:
            self._errors.process(
                VoiceError(VoiceErrorCode.TTS_NOT_AVAILABLE, "Text-to-speech not available"),
                "start_synthesis",
                on_error=options.on_error,
            )

        # A concurrent start may publish while the engine stop is awaited.
        while self._session is not None:
            await self.stop()

        session = SynthesisSession(text=text, cancellation_token=CancellationToken(), started_at=time.time())
        self._publish(session)
        self._errors.clear()
        self._transcript.add_final(Role.ASSISTANT, text)

        unlink = None
        if options.cancellation_token is not None:
            unlink = options.cancellation_token.add_callback(session.cancellation_token.cancel)

        request = SynthesisRequest(
            cancellation_token=session.cancellation_token,
            rate=options.rate,
            pitch=options.pitch,
            voice_id=options.voice_id,
            language_tag=options.language_tag,
        )
        self._logger.info("synthesis_started", extra={"chars": len(text), "voice_id": options.voice_id})
        self._emit("session_started", {"category": "synthesis", "chars": len(text)})
        try:
            await engine.start(text, request)
        except Exception as exc:  # noqa: BLE001 - routed through the error pipeline.
            self._errors.process(
                exc,
                "start_synthesis",
                default_code=VoiceErrorCode.TTS_FAILED,
                on_error=options.on_error,
            )
        finally:
            if unlink is not None:
                unlink()
            if self._session is session:
                self._publish(None)
                self._emit("session_stopped", {"category": "synthesis"})

    async def pause(self) -> None:
        session = self._session
        engine = self._engine()
        if engine is None or session is None or session.paused:
            return
        try:
            await engine.pause()
        except Exception as exc:  # noqa: BLE001 - logged then raised.
            self._raise_control_error(exc, "pause")
            return
        if self._session is session:
            session.paused_at = time.time()
            self._publish(session)

    async def resume(self) -> None:
        session = self._session
        engine = self._engine()
        if engine is None or session is None or not session.paused:
            return
        try:
            await engine.resume()
        except Exception as exc:  # noqa: BLE001 - logged then raised.
            self._raise_control_error(exc, "resume")
            return
        if self._session is session:
            session.paused_at = None
            self._publish(session)

    async def stop(self) -> None:
        """Stop the active session; engine failures are logged and never raised."""
        session = self._session
        if session is None:
            return
        self._publish(None)
        session.cancellation_token.cancel()

        engine = self._engine()
        if engine is None:
            return
        try:
            await engine.stop()
        except Exception as exc:  # noqa: BLE001 - stop always succeeds for the caller.
            self._errors.log(to_voice_error(exc, VoiceErrorCode.TTS_FAILED), "stop_synthesis")
        self._logger.info("synthesis_stopped")
        self._emit("session_stopped", {"category": "synthesis"})

    def _raise_control_error(self, exc: Exception, context: str) -> None:
        error = to_voice_error(exc, VoiceErrorCode.TTS_FAILED)
        self._errors.log(error, context)
        raise_unless_aborted(error)

    def _publish(self, session: SynthesisSession | None) -> None:
        self._session = session
        self._on_change()

    def _emit(self, event_name: str, payload: dict) -> None:
        if self._telemetry is not None:
            self._telemetry.emit(event_name, payload)
