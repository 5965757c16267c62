"""Recognition session lifecycle on top of a bound recognition engine."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from .cancellation import CancellationToken
from .errors import ErrorPipeline, VoiceError, VoiceErrorCode, raise_unless_aborted, to_voice_error
from .interfaces import RecognitionCallbacks, RecognitionEngine
from .models import (
    RecognitionMethod,
    RecognitionResult,
    RecognitionSession,
    RecognizeOptions,
    Role,
    SessionKind,
)
from .telemetry.logging import Telemetry
from .transcript import TranscriptStore


@dataclass(slots=True)
class SessionHooks:
    """Observers attached to one recognition session."""

    on_final: Callable[[RecognitionResult], None] | None = None
    on_partial: Callable[[str], None] | None = None
    on_error: Callable[[VoiceError], None] | None = None
    on_end: Callable[[], None] | None = None


class RecognitionSessionManager:
    """Owns the single recognition session and its engine calls.

    Session bookkeeping always happens before the engine call it guards, so
    :attr:`is_active` is consistent for code running between two awaits.
    """

    def __init__(
        self,
        *,
        engine: Callable[[], RecognitionEngine | None],
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
        self._logger = logger or logging.getLogger("qonvo.recognition")

        self._session: RecognitionSession | None = None
        self._hooks: SessionHooks | None = None
        self._unlink: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def session(self) -> RecognitionSession | None:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None

    async def start(
        self,
        options: RecognizeOptions | None = None,
        *,
        hooks: SessionHooks | None = None,
        controller: Any = None,
    ) -> RecognitionSession:
        """Start a new session, retiring any session that is already running."""
        options = options or RecognizeOptions()
        engine = self._engine()
        if engine is None:
            self._errors.process(
                VoiceError(VoiceErrorCode.STT_NOT_AVAILABLE, "Speech recognition not available"),
                "start_recognition",
                on_error=options.on_error,
            )

        # A concurrent start may publish while the engine stop is awaited.
        while self._session is not None:
            await self.stop()

        kind = SessionKind.ONE_SHOT if options.method is RecognitionMethod.ONCE else SessionKind.CONTINUOUS
        session = RecognitionSession(
            kind=kind,
            cancellation_token=CancellationToken(),
            started_at=time.time(),
            controller=controller,
        )
        hooks = hooks or SessionHooks()
        self._publish(session, hooks)
        self._errors.clear()
        if options.cancellation_token is not None:
            self._unlink = options.cancellation_token.add_callback(lambda: self.schedule(self.stop_session(session)))

        callbacks = RecognitionCallbacks(
            on_final=lambda text, confidence=None: self._handle_final(session, text, confidence),
            on_error=lambda error: self._handle_error(session, error, options),
            cancellation_token=session.cancellation_token,
            on_partial=(lambda text: self._handle_partial(session, text, options.caption)),
        )
        self._logger.info("recognition_started", extra={"kind": kind.value, "caption": options.caption})
        self._emit("session_started", {"category": "recognition", "kind": kind.value})

        try:
            await engine.start(callbacks)
        except Exception as exc:  # noqa: BLE001 - normalized and re-raised below.
            error = self._errors.process(
                exc,
                "start_recognition",
                default_code=VoiceErrorCode.STT_FAILED,
                on_error=options.on_error,
                raise_error=False,
            )
            if self._session is session:
                self._retire(session, error)
            raise_unless_aborted(error)
        return session

    async def stop(self) -> None:
        """Stop the active session; engine failures are logged and never raised."""
        session = self._session
        if session is None:
            return
        self._retire(session)

        engine = self._engine()
        if engine is None:
            return
        try:
            await engine.stop()
        except Exception as exc:  # noqa: BLE001 - stop always succeeds for the caller.
            self._errors.log(to_voice_error(exc, VoiceErrorCode.STT_FAILED), "stop_recognition")
        self._logger.info("recognition_stopped", extra={"kind": session.kind.value})
        self._emit("session_stopped", {"category": "recognition", "kind": session.kind.value})

    async def stop_session(self, session: RecognitionSession) -> None:
        """Stop ``session`` only if it is still the active one."""
        if self._session is session:
            await self.stop()

    async def recognize_once(
        self,
        *,
        caption: bool = False,
        cancellation_token: CancellationToken | None = None,
    ) -> RecognitionResult:
        """Listen for a single final result without a controller.

        Silent failures (``ABORTED``, ``NO_SPEECH``) are raised to the caller so
        that loops built on top can decide how to continue.
        """
        outcome: asyncio.Future[RecognitionResult] = asyncio.get_running_loop().create_future()
        outcome.add_done_callback(lambda fut: fut.cancelled() or fut.exception())

        def _settle(value: RecognitionResult | None = None, error: VoiceError | None = None) -> None:
            if outcome.done():
                return
            if error is not None:
                outcome.set_exception(error)
            else:
                outcome.set_result(value)  # type: ignore[arg-type]

        hooks = SessionHooks(
            on_final=lambda result: _settle(result),
            on_error=lambda error: _settle(error=error),
            on_end=lambda: _settle(error=VoiceError(VoiceErrorCode.ABORTED, "Recognition stopped")),
        )
        options = RecognizeOptions(
            method=RecognitionMethod.ONCE,
            caption=caption,
            cancellation_token=cancellation_token,
        )
        session = await self.start(options, hooks=hooks)
        try:
            return await outcome
        finally:
            await self.stop_session(session)

    async def aclose(self) -> None:
        await self.stop()
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ---- engine callbacks ----

    def _handle_partial(self, session: RecognitionSession, text: str, caption: bool) -> None:
        if not self._accepts(session):
            return
        if caption:
            self._transcript.add_interim(Role.USER, text)
        hooks = self._hooks
        if hooks and hooks.on_partial:
            hooks.on_partial(text)

    def _handle_final(self, session: RecognitionSession, text: str, confidence: float | None) -> None:
        if not self._accepts(session):
            return
        self._transcript.add_final(Role.USER, text)
        self._logger.debug("recognition_final", extra={"text": text, "confidence": confidence})
        hooks = self._hooks
        if hooks and hooks.on_final:
            hooks.on_final(RecognitionResult(text=text, at=time.time(), confidence=confidence))

    def _handle_error(self, session: RecognitionSession, raw: object, options: RecognizeOptions) -> None:
        if not self._accepts(session):
            return
        error = to_voice_error(raw, VoiceErrorCode.STT_FAILED)
        hooks = self._hooks

        if error.code is VoiceErrorCode.NO_SPEECH and session.kind is SessionKind.CONTINUOUS:
            if hooks and hooks.on_error:
                hooks.on_error(error)
            return

        if not error.silent:
            self._errors.process(
                error,
                "recognition",
                default_code=VoiceErrorCode.STT_FAILED,
                on_error=options.on_error,
                raise_error=False,
            )
        if hooks and hooks.on_error:
            hooks.on_error(error)
        if self._session is session:
            self.schedule(self.stop())

    # ---- internals ----

    def _accepts(self, session: RecognitionSession) -> bool:
        return self._session is session and not session.cancellation_token.cancelled

    def _publish(self, session: RecognitionSession | None, hooks: SessionHooks | None) -> None:
        self._session = session
        self._hooks = hooks
        self._on_change()

    def _retire(self, session: RecognitionSession, error: VoiceError | None = None) -> None:
        """Clear state first so observers see the session end, then signal cancellation."""
        hooks = self._hooks if self._session is session else None
        if self._session is session:
            self._publish(None, None)
            if self._unlink is not None:
                self._unlink()
                self._unlink = None
        session.cancellation_token.cancel()
        if hooks is None:
            return
        if error is not None and hooks.on_error:
            hooks.on_error(error)
        if hooks.on_end:
            hooks.on_end()

    def schedule(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _emit(self, event_name: str, payload: dict) -> None:
        if self._telemetry is not None:
            self._telemetry.emit(event_name, payload)
