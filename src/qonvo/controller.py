"""Cancellable recognition handles with phrase-triggered callbacks."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Generator

from .errors import VoiceError, VoiceErrorCode
from .models import RecognitionMethod, RecognitionResult, RecognitionSession, RecognizeOptions
from .recognition import RecognitionSessionManager, SessionHooks

_logger = logging.getLogger("qonvo.controller")

_WHITESPACE = re.compile(r"\s+")

EVENTS = ("partial", "final", "error")

TriggerCallback = Callable[["RecognitionController"], Any]


def normalize_phrase(text: str) -> str:
    return _WHITESPACE.sub(" ", text.strip().lower())


def match_phrase(text: str, phrase: str) -> bool:
    """Case-insensitive, whitespace-normalized substring containment."""
    return normalize_phrase(phrase) in normalize_phrase(text)


@dataclass(slots=True)
class PhraseTrigger:
    phrase: str
    callback: TriggerCallback


class RecognitionFuture:
    """Awaitable result of one recognition command.

    Resolves to the first final result in ``once`` mode, or to ``None`` when the
    session ends without one (explicit stop, cancellation, silence). Non-silent
    recognition failures are raised from ``await``.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[RecognitionResult | None] = asyncio.get_running_loop().create_future()
        self._future.add_done_callback(lambda fut: fut.cancelled() or fut.exception())

    def __await__(self) -> Generator[Any, None, RecognitionResult | None]:
        return self._future.__await__()

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> RecognitionResult | None:
        return self._future.result()

    def _resolve(self, value: RecognitionResult | None) -> None:
        if not self._future.done():
            self._future.set_result(value)

    def _fail(self, error: VoiceError) -> None:
        if not self._future.done():
            self._future.set_exception(error)


class _TriggerChain:
    def __init__(self, controller: RecognitionController, phrase: str) -> None:
        self._controller = controller
        self._phrase = phrase

    def then(self, callback: TriggerCallback) -> RecognitionController:
        return self._controller._add_trigger(self._phrase, callback)


class RecognitionController:
    """Live handle over one recognition session.

    Usage::

        controller = await voice.start_recognition()
        controller.when("next").then(lambda ctl: go_next()).when("stop").then(lambda ctl: ctl.stop())
        await controller.future
    """

    def __init__(self, manager: RecognitionSessionManager, options: RecognizeOptions | None = None) -> None:
        self._manager = manager
        self._options = options or RecognizeOptions()
        self._triggers: dict[str, PhraseTrigger] = {}
        self._listeners: dict[str, list[Callable[[Any], Any]]] = {event: [] for event in EVENTS}
        self._session: RecognitionSession | None = None
        self.future = RecognitionFuture()

    @property
    def method(self) -> RecognitionMethod:
        return self._options.method

    @property
    def session(self) -> RecognitionSession | None:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._manager.session is self._session

    @property
    def phrases(self) -> list[str]:
        return list(self._triggers)

    async def start(self) -> RecognitionController:
        if self._session is not None:
            raise VoiceError(VoiceErrorCode.INVALID_STATE, "Recognition controller already started")
        hooks = SessionHooks(
            on_final=self._handle_final,
            on_partial=lambda text: self._dispatch("partial", text),
            on_error=self._handle_error,
            on_end=lambda: self.future._resolve(None),
        )
        try:
            self._session = await self._manager.start(self._options, hooks=hooks, controller=self)
        except VoiceError as error:
            self.future._fail(error)
            raise
        return self

    def when(self, phrase: str) -> _TriggerChain:
        return _TriggerChain(self, phrase)

    def on(self, event: str, callback: Callable[[Any], Any]) -> RecognitionController:
        if event not in self._listeners:
            raise ValueError(f"Unknown recognition event {event!r}; expected one of {', '.join(EVENTS)}")
        self._listeners[event].append(callback)
        return self

    async def stop(self) -> None:
        if self._session is not None:
            await self._manager.stop_session(self._session)
        self.future._resolve(None)

    def _own_session(self) -> RecognitionSession | None:
        if self._session is not None:
            return self._session
        current = self._manager.session
        return current if current is not None and current.controller is self else None

    def _add_trigger(self, phrase: str, callback: TriggerCallback) -> RecognitionController:
        self._triggers[phrase] = PhraseTrigger(phrase=phrase, callback=callback)
        return self

    def _handle_final(self, result: RecognitionResult) -> None:
        matched = [trigger for trigger in self._triggers.values() if match_phrase(result.text, trigger.phrase)]
        if matched:
            result = RecognitionResult(
                text=result.text,
                at=result.at,
                confidence=result.confidence,
                phrase=matched[0].phrase,
            )
        self._dispatch("final", result)
        for trigger in matched:
            self._run_trigger(trigger)

        if self.method is RecognitionMethod.ONCE:
            self.future._resolve(result)
            session = self._own_session()
            if session is not None:
                self._manager.schedule(self._manager.stop_session(session))

    def _handle_error(self, error: VoiceError) -> None:
        if error.code is VoiceErrorCode.NO_SPEECH and self.method is RecognitionMethod.CONTINUOUS:
            return
        self._dispatch("error", error)
        if error.silent:
            self.future._resolve(None)
        else:
            self.future._fail(error)

    def _run_trigger(self, trigger: PhraseTrigger) -> None:
        try:
            outcome = trigger.callback(self)
            if asyncio.iscoroutine(outcome):
                self._manager.schedule(outcome)
        except Exception:  # noqa: BLE001 - one trigger must not block the rest.
            _logger.exception("phrase_trigger_failed", extra={"phrase": trigger.phrase})

    def _dispatch(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception:  # noqa: BLE001 - listener failures are isolated.
                _logger.exception("recognition_listener_failed", extra={"event": event})
