from __future__ import annotations

import asyncio
import sys
import time
import types

import pytest

from qonvo.cancellation import CancellationToken
from qonvo.config import Settings
from qonvo.errors import VoiceError, VoiceErrorCode
from qonvo.interfaces import SynthesisRequest
from qonvo.orchestrator import VoiceOrchestrator


class _FakeVoice:
    def __init__(self, voice_id: str, name: str, languages) -> None:
        self.id = voice_id
        self.name = name
        self.languages = languages


class _FakeDriver:
    def __init__(self) -> None:
        self.properties: dict[str, object] = {
            "voices": [
                _FakeVoice("v1", "Zira", [b"\x05en_US"]),
                _FakeVoice("v2", "Hortense", ["fr_FR"]),
                _FakeVoice("v3", "Robot", []),
            ]
        }
        self.said: list[str] = []
        self.stopped = 0

    def getProperty(self, name):
        return self.properties.get(name)

    def setProperty(self, name, value) -> None:
        self.properties[name] = value

    def say(self, text: str) -> None:
        self.said.append(text)

    def runAndWait(self) -> None:
        return None

    def stop(self) -> None:
        self.stopped += 1


@pytest.fixture
def fake_pyttsx3(monkeypatch) -> _FakeDriver:
    driver = _FakeDriver()
    module = types.ModuleType("pyttsx3")
    module.init = lambda: driver
    monkeypatch.setitem(sys.modules, "pyttsx3", module)
    return driver


def _fake_speech_recognition(listen_outcomes: list, transcribe_outcomes: list) -> types.ModuleType:
    module = types.ModuleType("speech_recognition")

    class WaitTimeoutError(Exception):
        pass

    class UnknownValueError(Exception):
        pass

    class RequestError(Exception):
        pass

    class Microphone:
        def __init__(self, sample_rate=None, chunk_size=None) -> None:
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc_info) -> bool:
            return False

        @staticmethod
        def list_microphone_names() -> list[str]:
            return ["Built-in Microphone"]

    class Recognizer:
        def adjust_for_ambient_noise(self, source, duration=0.0) -> None:
            pass

        def listen(self, source, timeout=None, phrase_time_limit=None):
            if not listen_outcomes:
                time.sleep(0.01)
                raise WaitTimeoutError()
            outcome = listen_outcomes.pop(0)
            if isinstance(outcome, type):
                raise outcome()
            return outcome

        def recognize_google(self, audio, language="en-US") -> str:
            outcome = transcribe_outcomes.pop(0)
            if isinstance(outcome, type):
                raise outcome("service down")
            return outcome

    module.WaitTimeoutError = WaitTimeoutError
    module.UnknownValueError = UnknownValueError
    module.RequestError = RequestError
    module.Microphone = Microphone
    module.Recognizer = Recognizer
    return module


def test_pyttsx3_engine_lists_voices_with_normalized_tags(fake_pyttsx3) -> None:
    from qonvo.engines.pyttsx3 import Pyttsx3SynthesisEngine

    async def _run():
        voice = VoiceOrchestrator(settings=Settings())
        await voice.bind(None, Pyttsx3SynthesisEngine())
        return await voice.list_voices(), await voice.list_languages()

    voices, languages = asyncio.run(_run())

    assert [(info.id, info.language_tag) for info in voices] == [("v1", "en-US"), ("v2", "fr-FR"), ("v3", "und")]
    assert [(info.code, info.name) for info in languages] == [
        ("en-US", "English (United States)"),
        ("fr-FR", "French (France)"),
        ("und", "und"),
    ]


def test_pyttsx3_engine_speaks_with_requested_voice_and_rate(fake_pyttsx3) -> None:
    from qonvo.engines.pyttsx3 import Pyttsx3SynthesisEngine

    async def _run():
        engine = Pyttsx3SynthesisEngine()
        await engine.start("Bonjour", SynthesisRequest(cancellation_token=CancellationToken(), rate=1.5, language_tag="fr-FR"))
        return engine

    engine = asyncio.run(_run())

    assert fake_pyttsx3.said == ["Bonjour"]
    assert fake_pyttsx3.properties["voice"] == "v2"
    assert fake_pyttsx3.properties["rate"] == 300
    assert engine.is_active is False


def test_pyttsx3_engine_cannot_pause(fake_pyttsx3) -> None:
    from qonvo.engines.pyttsx3 import Pyttsx3SynthesisEngine

    engine = Pyttsx3SynthesisEngine()

    with pytest.raises(VoiceError) as raised:
        asyncio.run(engine.pause())

    assert raised.value.code is VoiceErrorCode.NOT_SUPPORTED


def test_speech_recognition_engine_skips_silence_until_a_phrase_arrives(monkeypatch) -> None:
    captures: list = []
    fake = _fake_speech_recognition(captures, ["lights on"])
    captures.extend([fake.WaitTimeoutError, "audio"])
    monkeypatch.setitem(sys.modules, "speech_recognition", fake)
    from qonvo.engines.speech_recognition import SpeechRecognitionEngine

    async def _run():
        voice = VoiceOrchestrator(settings=Settings())
        await voice.bind(SpeechRecognitionEngine(adjust_noise_seconds=0), None)
        heard = asyncio.Event()
        finals = []
        controller = await voice.start_recognition()
        controller.on("final", finals.append)
        controller.on("final", lambda result: heard.set())
        await asyncio.wait_for(heard.wait(), timeout=2)
        available = voice.get_snapshot("recognition").is_available
        await controller.stop()
        return voice, finals, available

    voice, finals, available = asyncio.run(_run())

    assert [result.text for result in finals] == ["lights on"]
    assert voice.last_error is None
    assert available is True


def test_speech_recognition_request_error_maps_to_network_error(monkeypatch) -> None:
    transcriptions: list = []
    fake = _fake_speech_recognition(["audio"], transcriptions)
    transcriptions.append(fake.RequestError)
    monkeypatch.setitem(sys.modules, "speech_recognition", fake)
    from qonvo.engines.speech_recognition import SpeechRecognitionEngine

    async def _run():
        voice = VoiceOrchestrator(settings=Settings())
        await voice.bind(SpeechRecognitionEngine(adjust_noise_seconds=0), None)
        controller = await voice.start_recognition()
        with pytest.raises(VoiceError) as raised:
            await asyncio.wait_for(controller.future, timeout=2)
        return voice, raised.value

    voice, error = asyncio.run(_run())

    assert error.code is VoiceErrorCode.NETWORK_ERROR
    assert error.context == {"platform_code": "request"}
    assert voice.last_error is error


def test_speech_recognition_unexpected_failure_ends_the_session(monkeypatch) -> None:
    fake = _fake_speech_recognition(["audio"], [ConnectionResetError])
    monkeypatch.setitem(sys.modules, "speech_recognition", fake)
    from qonvo.engines.speech_recognition import SpeechRecognitionEngine

    async def _run():
        voice = VoiceOrchestrator(settings=Settings())
        await voice.bind(SpeechRecognitionEngine(adjust_noise_seconds=0), None)
        controller = await voice.start_recognition()
        with pytest.raises(VoiceError) as raised:
            await asyncio.wait_for(controller.future, timeout=2)
        await asyncio.sleep(0.01)
        return voice, raised.value

    voice, error = asyncio.run(_run())

    assert error.code is VoiceErrorCode.STT_FAILED
    assert error.context == {"platform_code": "unexpected"}
    assert isinstance(error.cause, ConnectionResetError)
    assert voice.last_error is error
    assert voice.recognition.is_active is False
