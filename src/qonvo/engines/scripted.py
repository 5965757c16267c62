"""In-memory engines that replay scripted utterances; no audio hardware needed."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

from ..errors import VoiceError, VoiceErrorCode
from ..interfaces import RecognitionCallbacks, SynthesisRequest
from ..models import Availability, VoiceInfo


@dataclass(slots=True)
class ScriptedUtterance:
    """One scripted recognition outcome: interim captions, then a final text or an error."""

    text: str = ""
    partials: tuple[str, ...] = ()
    confidence: float | None = 0.9
    error: VoiceError | None = None


Script = Iterable[Union[ScriptedUtterance, str]]


class ScriptedRecognitionEngine:
    """Delivers one scripted utterance per ``start`` call.

    Once the script runs out the engine reports ``ABORTED``, which ends any
    conversation loop built on top of it.
    """

    def __init__(self, script: Script = (), *, delay: float = 0.0, available: bool = True) -> None:
        self._script: deque[ScriptedUtterance] = deque(
            item if isinstance(item, ScriptedUtterance) else ScriptedUtterance(text=item) for item in script
        )
        self._delay = delay
        self._available = available
        self._active = False
        self._task: asyncio.Task[None] | None = None
        self.start_count = 0
        self.stop_count = 0

    @property
    def is_active(self) -> bool:
        return self._active

    def extend(self, script: Script) -> None:
        for item in script:
            self._script.append(item if isinstance(item, ScriptedUtterance) else ScriptedUtterance(text=item))

    async def availability(self) -> Availability:
        return Availability(
            recognition_supported=self._available,
            details=None if self._available else "Scripted recognition disabled",
        )

    async def start(self, callbacks: RecognitionCallbacks) -> None:
        self.start_count += 1
        if callbacks.cancellation_token.cancelled:
            return
        self._active = True
        self._task = asyncio.get_running_loop().create_task(self._deliver(callbacks))

    async def stop(self) -> None:
        self.stop_count += 1
        self._active = False
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _deliver(self, callbacks: RecognitionCallbacks) -> None:
        await asyncio.sleep(self._delay)
        token = callbacks.cancellation_token
        if token.cancelled:
            return
        if not self._script:
            self._active = False
            callbacks.on_error(VoiceError(VoiceErrorCode.ABORTED, "Recognition script exhausted"))
            return

        utterance = self._script.popleft()
        for partial in utterance.partials:
            if token.cancelled:
                return
            if callbacks.on_partial is not None:
                callbacks.on_partial(partial)
            await asyncio.sleep(0)
        if token.cancelled:
            return
        if utterance.error is not None:
            callbacks.on_error(utterance.error)
            return
        callbacks.on_final(utterance.text, utterance.confidence)


class ScriptedSynthesisEngine:
    """Records every spoken text and simulates playback time."""

    def __init__(
        self,
        *,
        voices: Sequence[VoiceInfo] = (),
        duration: float = 0.0,
        available: bool = True,
    ) -> None:
        self._voices = list(voices)
        self._duration = duration
        self._available = available
        self._active = False
        self._paused = False
        self.spoken: list[str] = []
        self.requests: list[SynthesisRequest] = []
        self.stop_count = 0

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_paused(self) -> bool:
        return self._paused

    async def availability(self) -> Availability:
        return Availability(
            synthesis_supported=self._available,
            details=None if self._available else "Scripted synthesis disabled",
        )

    async def start(self, text: str, request: SynthesisRequest) -> None:
        self.spoken.append(text)
        self.requests.append(request)
        self._active = True
        self._paused = False
        try:
            if await request.cancellation_token.sleep(self._duration):
                raise VoiceError(VoiceErrorCode.ABORTED, "Speech was aborted")
        finally:
            self._active = False
            self._paused = False

    async def pause(self) -> None:
        if self._active:
            self._paused = True

    async def resume(self) -> None:
        if self._paused:
            self._paused = False

    async def stop(self) -> None:
        self.stop_count += 1
        self._active = False
        self._paused = False

    async def list_voices(self) -> list[VoiceInfo]:
        return list(self._voices)


DEFAULT_DEMO_VOICES: tuple[VoiceInfo, ...] = (
    VoiceInfo(id="demo-en-us-1", name="Ava", language_tag="en-US"),
    VoiceInfo(id="demo-en-us-2", name="Sam", language_tag="en-US"),
    VoiceInfo(id="demo-en-gb-1", name="Oliver", language_tag="en-GB"),
    VoiceInfo(id="demo-fr-fr-1", name="Amélie", language_tag="fr-FR"),
)
