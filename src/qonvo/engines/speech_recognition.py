"""Speech-to-text engine powered by ``speech_recognition``."""

from __future__ import annotations

import asyncio
import logging

from ..errors import ErrorMapper, VoiceError, VoiceErrorCode
from ..interfaces import RecognitionCallbacks
from ..models import Availability

map_speech_recognition_error = ErrorMapper(
    {
        "timeout": VoiceErrorCode.NO_SPEECH,
        "unknown-value": VoiceErrorCode.NO_SPEECH,
        "request": VoiceErrorCode.NETWORK_ERROR,
        "microphone": VoiceErrorCode.AUDIO_CAPTURE_FAILED,
        "permission": VoiceErrorCode.PERMISSION_DENIED,
        "aborted": VoiceErrorCode.ABORTED,
    },
    VoiceErrorCode.STT_FAILED,
)


class SpeechRecognitionEngine:
    """Listen on the default microphone and transcribe with Google's web recognizer.

    Each captured phrase is delivered as a final result; listening continues
    until :meth:`stop` is called or the cancellation token is set.
    """

    def __init__(
        self,
        *,
        language: str = "en-US",
        phrase_time_limit: float = 5.0,
        timeout: float | None = 5.0,
        sample_rate: int = 16_000,
        chunk_size: int = 1024,
        adjust_noise_seconds: float = 0.2,
        logger: logging.Logger | None = None,
    ) -> None:
        try:
            import speech_recognition as sr
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "Voice STT backend unavailable. Install extras with: pip install 'qonvo[voice]'"
            ) from exc
        self._sr = sr
        self._recognizer = sr.Recognizer()
        self._language = language
        self._phrase_time_limit = phrase_time_limit
        self._timeout = timeout
        self._sample_rate = sample_rate
        self._chunk_size = chunk_size
        self._adjust_noise_seconds = max(0.0, adjust_noise_seconds)
        self._logger = logger or logging.getLogger("qonvo.engines.speech_recognition")
        self._task: asyncio.Task[None] | None = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def availability(self) -> Availability:
        try:
            names = await asyncio.to_thread(self._sr.Microphone.list_microphone_names)
        except (AttributeError, OSError) as exc:
            return Availability(details=f"No microphone backend: {exc}")
        if not names:
            return Availability(details="No microphone detected")
        return Availability(recognition_supported=True)

    async def start(self, callbacks: RecognitionCallbacks) -> None:
        if callbacks.cancellation_token.cancelled:
            return
        if self.is_active:
            await self.stop()
        try:
            microphone = self._sr.Microphone(sample_rate=self._sample_rate, chunk_size=self._chunk_size)
        except (AttributeError, OSError) as exc:
            raise map_speech_recognition_error("microphone", f"Microphone unavailable: {exc}", cause=exc) from exc
        self._task = asyncio.get_running_loop().create_task(
            self._listen_loop(microphone, callbacks),
            name="speech-recognition-listen",
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _listen_loop(self, microphone, callbacks: RecognitionCallbacks) -> None:
        token = callbacks.cancellation_token
        while not token.cancelled:
            try:
                audio = await asyncio.to_thread(self._capture, microphone)
                if token.cancelled:
                    return
                text = await asyncio.to_thread(self._transcribe, audio)
            except VoiceError as error:
                if token.cancelled:
                    return
                callbacks.on_error(error)
                if error.code is not VoiceErrorCode.NO_SPEECH:
                    return
                continue
            except Exception as exc:  # noqa: BLE001 - reported to the session, never left on the task.
                if token.cancelled:
                    return
                callbacks.on_error(map_speech_recognition_error("unexpected", f"Speech recognition failed: {exc}", cause=exc))
                return
            if token.cancelled:
                return
            self._logger.debug("phrase_recognized", extra={"chars": len(text)})
            callbacks.on_final(text, None)

    def _capture(self, microphone):
        try:
            with microphone as source:
                if self._adjust_noise_seconds > 0:
                    self._recognizer.adjust_for_ambient_noise(source, duration=self._adjust_noise_seconds)
                return self._recognizer.listen(
                    source,
                    timeout=self._timeout,
                    phrase_time_limit=self._phrase_time_limit,
                )
        except self._sr.WaitTimeoutError as exc:
            raise map_speech_recognition_error("timeout", "No speech detected", cause=exc) from exc
        except OSError as exc:
            raise map_speech_recognition_error("microphone", f"Audio capture failed: {exc}", cause=exc) from exc

    def _transcribe(self, audio) -> str:
        try:
            return self._recognizer.recognize_google(audio, language=self._language)
        except self._sr.UnknownValueError as exc:
            raise map_speech_recognition_error("unknown-value", "Speech was not understood", cause=exc) from exc
        except self._sr.RequestError as exc:
            raise map_speech_recognition_error(
                "request",
                "Speech recognition service request failed. Check internet access or switch STT backend.",
                cause=exc,
            ) from exc
