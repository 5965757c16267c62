"""Listen, respond and speak loop built from the two session managers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Awaitable, Callable, Union

from .cancellation import CancellationToken
from .config import Settings
from .errors import ErrorPipeline, VoiceError, VoiceErrorCode, is_system_error
from .models import ConversationLoop, ConversationOptions, RecognitionMethod, RecognitionResult, SynthesizeOptions
from .recognition import RecognitionSessionManager
from .synthesis import SynthesisSessionManager
from .telemetry.logging import Telemetry

ResponseCallback = Callable[[RecognitionResult], Union[str, Awaitable[str]]]
Sleeper = Callable[[CancellationToken, float], Awaitable[bool]]


class TurnOutcome(str, Enum):
    """What the loop does after a turn."""

    SILENCE = "silence"
    RETRY = "retry"
    TERMINATE = "terminate"


async def _token_sleep(token: CancellationToken, seconds: float) -> bool:
    return await token.sleep(seconds)


class ConversationChain:
    """Returned by :meth:`ConversationOrchestrator.start`; attaches the responder."""

    def __init__(self, orchestrator: ConversationOrchestrator, loop: ConversationLoop, options: ConversationOptions) -> None:
        self._orchestrator = orchestrator
        self._loop = loop
        self._options = options
        self.pause_ms: int | None = None

    def on_recognition(self, callback: ResponseCallback, *, pause_ms: int | None = None) -> asyncio.Task[None]:
        """Run the loop in the background, answering each utterance with ``callback``.

        ``pause_ms`` is the delay after each spoken response before listening
        again; it is never shorter than the configured anti-feedback floor.
        """
        self.pause_ms = self._orchestrator.effective_pause_ms(pause_ms)
        return self._orchestrator._launch(self._loop, callback, self._options, self.pause_ms)


class ConversationOrchestrator:
    """Owns the single conversation loop and its background task."""

    def __init__(
        self,
        *,
        recognition: RecognitionSessionManager,
        synthesis: SynthesisSessionManager,
        errors: ErrorPipeline,
        on_change: Callable[[], None],
        settings: Settings,
        telemetry: Telemetry | None = None,
        sleep: Sleeper | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._recognition = recognition
        self._synthesis = synthesis
        self._errors = errors
        self._on_change = on_change
        self._settings = settings
        self._telemetry = telemetry
        self._sleep = sleep or _token_sleep
        self._logger = logger or logging.getLogger("qonvo.conversation")

        self._loop: ConversationLoop | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def loop(self) -> ConversationLoop | None:
        return self._loop

    @property
    def is_active(self) -> bool:
        return self._loop is not None

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def effective_pause_ms(self, requested_ms: int | None) -> int:
        requested = self._settings.conversation_pause_ms if requested_ms is None else requested_ms
        return max(requested, self._settings.conversation_min_pause_ms)

    def start(self, options: ConversationOptions | None = None) -> ConversationChain:
        """Replace any running loop with a new one and publish it as active."""
        options = options or ConversationOptions()
        if self._loop is not None:
            self.stop()
        loop = ConversationLoop(cancellation_token=CancellationToken())
        self._loop = loop
        self._on_change()
        self._logger.info("conversation_started", extra={"method": options.method.value})
        return ConversationChain(self, loop, options)

    def stop(self) -> None:
        """Stop the loop and any sessions it left running. Safe to call repeatedly."""
        loop = self._loop
        if loop is not None:
            loop.is_running = False
            loop.cancellation_token.cancel()
            self._loop = None
            self._on_change()
            self._logger.info("conversation_stopped")
        if self._recognition.is_active:
            self._recognition.schedule(self._recognition.stop())
        if self._synthesis.is_active:
            self._recognition.schedule(self._synthesis.stop())

    async def join(self) -> None:
        """Wait for the background task to finish on its own."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def aclose(self) -> None:
        """Stop and force-join the background task, then retire both sessions."""
        self.stop()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._task = None
        await self._recognition.stop()
        await self._synthesis.stop()

    def _launch(
        self,
        loop: ConversationLoop,
        callback: ResponseCallback,
        options: ConversationOptions,
        pause_ms: int,
    ) -> asyncio.Task[None]:
        caption = self._settings.conversation_caption if options.caption is None else options.caption
        task = asyncio.get_running_loop().create_task(
            self._run(loop, callback, options.method, caption, pause_ms / 1000),
            name="conversation-loop",
        )
        self._task = task
        return task

    async def _run(
        self,
        loop: ConversationLoop,
        callback: ResponseCallback,
        method: RecognitionMethod,
        caption: bool,
        pause_seconds: float,
    ) -> None:
        token = loop.cancellation_token
        turns = 0
        try:
            while loop.is_running:
                outcome = await self._turn(loop, callback, caption, pause_seconds)
                turns += 1
                if outcome is TurnOutcome.TERMINATE or method is RecognitionMethod.ONCE:
                    break
                if outcome is TurnOutcome.RETRY:
                    await self._sleep(token, self._settings.conversation_retry_delay_ms / 1000)
                elif outcome is TurnOutcome.SILENCE and self._settings.no_speech_pause_ms:
                    await self._sleep(token, self._settings.no_speech_pause_ms / 1000)
        finally:
            loop.is_running = False
            if self._loop is loop:
                self._loop = None
                self._on_change()
            self._logger.info("conversation_loop_finished", extra={"turns": turns})

    async def _turn(
        self,
        loop: ConversationLoop,
        callback: ResponseCallback,
        caption: bool,
        pause_seconds: float,
    ) -> TurnOutcome | None:
        token = loop.cancellation_token
        try:
            result = await self._recognition.recognize_once(caption=caption, cancellation_token=token)
            if not loop.is_running:
                return TurnOutcome.TERMINATE

            response = await self._respond(callback, result)
            if not loop.is_running:
                return TurnOutcome.TERMINATE

            await self._synthesis.start(response, SynthesizeOptions(cancellation_token=token))
            self._emit("conversation_turn", {"heard": result.text, "response": response})

            # Pacing floor keeps the recognizer from hearing the synthesized reply.
            if loop.is_running:
                await self._sleep(token, pause_seconds)
            return None
        except VoiceError as error:
            return self._classify(loop, error)

    async def _respond(self, callback: ResponseCallback, result: RecognitionResult) -> str:
        try:
            response = callback(result)
            if inspect.isawaitable(response):
                response = await response
        except VoiceError:
            raise
        except Exception as exc:  # noqa: BLE001 - responder failures become conversation errors.
            raise self._errors.process(
                exc,
                "conversation_response",
                default_code=VoiceErrorCode.CONVERSATION_ERROR,
                raise_error=False,
            ) from exc
        return str(response)

    def _classify(self, loop: ConversationLoop, error: VoiceError) -> TurnOutcome:
        """Decide whether the loop continues, retries or terminates after ``error``.

        Errors raised by the session managers have already been logged by the
        error pipeline; decisions here are logged as loop events only.
        """
        if error.code is VoiceErrorCode.ABORTED or not loop.is_running:
            return TurnOutcome.TERMINATE
        if error.code is VoiceErrorCode.NO_SPEECH:
            return TurnOutcome.SILENCE
        if is_system_error(error):
            self._logger.info("conversation_terminated", extra={"code": error.code.value, "reason": "system"})
            return TurnOutcome.TERMINATE
        if not error.recoverable:
            self._logger.info("conversation_terminated", extra={"code": error.code.value, "reason": "fatal"})
            return TurnOutcome.TERMINATE
        self._logger.info("conversation_retry", extra={"code": error.code.value})
        return TurnOutcome.RETRY

    def _emit(self, event_name: str, payload: dict) -> None:
        if self._telemetry is not None:
            self._telemetry.emit(event_name, payload)
