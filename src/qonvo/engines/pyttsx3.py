"""Text-to-speech engine powered by ``pyttsx3``."""

from __future__ import annotations

import asyncio
import logging

from ..errors import VoiceError, VoiceErrorCode
from ..interfaces import SynthesisRequest
from ..models import Availability, VoiceInfo

_BASE_RATE_WPM = 200


def _language_tag(raw_languages) -> str:
    for raw in raw_languages or ():
        value = raw.decode("utf-8", errors="ignore") if isinstance(raw, bytes) else str(raw)
        value = value.strip().lstrip("\x05").replace("_", "-")
        if value:
            return value
    return "und"


class Pyttsx3SynthesisEngine:
    """Speaker playback through a local pyttsx3 engine instance."""

    def __init__(self, *, voice_id: str | None = None, volume: float | None = None, logger: logging.Logger | None = None) -> None:
        try:
            import pyttsx3
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "Voice TTS backend unavailable. Install extras with: pip install 'qonvo[voice]'"
            ) from exc

        self._engine = pyttsx3.init()
        self._default_voice = voice_id
        if voice_id:
            self._engine.setProperty("voice", voice_id)
        if volume is not None:
            self._engine.setProperty("volume", max(0.0, min(1.0, volume)))
        self._logger = logger or logging.getLogger("qonvo.engines.pyttsx3")
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_paused(self) -> bool:
        return False

    async def availability(self) -> Availability:
        return Availability(synthesis_supported=True)

    async def start(self, text: str, request: SynthesisRequest) -> None:
        token = request.cancellation_token
        token.raise_if_cancelled()
        self._configure(request)
        self._active = True
        remove = token.add_callback(self._engine.stop)
        try:
            await asyncio.to_thread(self._speak, text)
        except RuntimeError as exc:
            raise VoiceError(VoiceErrorCode.TTS_FAILED, f"Speech synthesis error: {exc}", cause=exc) from exc
        finally:
            remove()
            self._active = False
        if token.cancelled:
            raise VoiceError(VoiceErrorCode.ABORTED, "Speech was aborted")

    async def pause(self) -> None:
        raise VoiceError(VoiceErrorCode.NOT_SUPPORTED, "pyttsx3 cannot pause playback")

    async def resume(self) -> None:
        raise VoiceError(VoiceErrorCode.NOT_SUPPORTED, "pyttsx3 cannot resume playback")

    async def stop(self) -> None:
        self._engine.stop()
        self._active = False

    async def list_voices(self) -> list[VoiceInfo]:
        voices = self._engine.getProperty("voices") or []
        return [
            VoiceInfo(id=voice.id, name=voice.name, language_tag=_language_tag(getattr(voice, "languages", None)))
            for voice in voices
        ]

    def _configure(self, request: SynthesisRequest) -> None:
        if request.voice_id:
            self._engine.setProperty("voice", request.voice_id)
        elif request.language_tag:
            for voice in self._engine.getProperty("voices") or []:
                if _language_tag(getattr(voice, "languages", None)).lower() == request.language_tag.lower():
                    self._engine.setProperty("voice", voice.id)
                    break
        elif self._default_voice:
            self._engine.setProperty("voice", self._default_voice)
        rate = request.rate if request.rate is not None else 1.0
        self._engine.setProperty("rate", int(_BASE_RATE_WPM * max(0.1, rate)))
        if request.pitch is not None:
            self._logger.debug("pitch_not_supported", extra={"pitch": request.pitch})

    def _speak(self, text: str) -> None:
        self._engine.say(text)
        self._engine.runAndWait()
