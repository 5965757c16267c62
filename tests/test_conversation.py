from __future__ import annotations

import asyncio
import logging

from qonvo.config import Settings
from qonvo.engines.scripted import ScriptedRecognitionEngine, ScriptedSynthesisEngine, ScriptedUtterance
from qonvo.errors import VoiceError, VoiceErrorCode
from qonvo.models import ConversationOptions, RecognitionMethod, Role
from qonvo.orchestrator import Domain, VoiceOrchestrator


class RecordingSleeper:
    """Returns immediately, remembering every requested delay."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, token, seconds: float) -> bool:
        self.calls.append(seconds)
        await asyncio.sleep(0)
        return token.cancelled


def _settings(**overrides) -> Settings:
    values = {
        "conversation_pause_ms": 1000,
        "conversation_min_pause_ms": 500,
        "conversation_retry_delay_ms": 250,
        "no_speech_pause_ms": 0,
    }
    values.update(overrides)
    return Settings(**values)


async def _bound(script, settings: Settings | None = None, **engine_kwargs):
    sleeper = RecordingSleeper()
    recognition = ScriptedRecognitionEngine(script, **engine_kwargs)
    synthesis = ScriptedSynthesisEngine()
    voice = VoiceOrchestrator(settings=settings or _settings(), sleep=sleeper)
    await voice.bind(recognition, synthesis)
    return voice, synthesis, sleeper


def _echo(result) -> str:
    return f"echo: {result.text}"


def test_echo_turn_speaks_reply_then_pauses() -> None:
    async def _run():
        voice, synthesis, sleeper = await _bound(["ping"])
        chain = voice.start_conversation()
        active = voice.get_snapshot(Domain.CONVERSATION).is_active
        await asyncio.wait_for(chain.on_recognition(_echo), timeout=1)
        return voice, synthesis, sleeper, chain, active

    voice, synthesis, sleeper, chain, active = asyncio.run(_run())

    assert active is True
    assert synthesis.spoken == ["echo: ping"]
    assert chain.pause_ms == 1000
    assert sleeper.calls == [1.0]
    assert [(entry.role, entry.text) for entry in voice.transcript.get_entries()] == [
        (Role.USER, "ping"),
        (Role.ASSISTANT, "echo: ping"),
    ]
    assert voice.get_snapshot(Domain.CONVERSATION).is_active is False


def test_requested_pause_is_clamped_to_the_floor() -> None:
    async def _run():
        voice, _, sleeper = await _bound(["one", "two"])
        chain = voice.start_conversation()
        await asyncio.wait_for(chain.on_recognition(_echo, pause_ms=100), timeout=1)
        return chain, sleeper

    chain, sleeper = asyncio.run(_run())

    assert chain.pause_ms == 500
    assert sleeper.calls == [0.5, 0.5]


def test_async_responder_is_awaited() -> None:
    async def _reply(result) -> str:
        await asyncio.sleep(0)
        return result.text.upper()

    async def _run():
        voice, synthesis, _ = await _bound(["quiet please"])
        await asyncio.wait_for(voice.start_conversation().on_recognition(_reply), timeout=1)
        return synthesis

    synthesis = asyncio.run(_run())

    assert synthesis.spoken == ["QUIET PLEASE"]


def test_once_mode_answers_a_single_utterance() -> None:
    async def _run():
        voice, synthesis, sleeper = await _bound(["first", "second"])
        chain = voice.start_conversation(ConversationOptions(method=RecognitionMethod.ONCE))
        await asyncio.wait_for(chain.on_recognition(_echo), timeout=1)
        return synthesis, sleeper

    synthesis, sleeper = asyncio.run(_run())

    assert synthesis.spoken == ["echo: first"]
    assert sleeper.calls == [1.0]


def test_silence_keeps_the_loop_running_without_recording_errors() -> None:
    async def _run():
        script = [ScriptedUtterance(error=VoiceError(VoiceErrorCode.NO_SPEECH, "quiet")), "ping"]
        voice, synthesis, sleeper = await _bound(script, settings=_settings(no_speech_pause_ms=200))
        await asyncio.wait_for(voice.start_conversation().on_recognition(_echo), timeout=1)
        return voice, synthesis, sleeper

    voice, synthesis, sleeper = asyncio.run(_run())

    assert synthesis.spoken == ["echo: ping"]
    assert sleeper.calls == [0.2, 1.0]
    assert voice.last_error is None


def test_recoverable_error_waits_then_retries() -> None:
    async def _run():
        script = [ScriptedUtterance(error=VoiceError(VoiceErrorCode.NETWORK_ERROR, "offline")), "ping"]
        voice, synthesis, sleeper = await _bound(script)
        await asyncio.wait_for(voice.start_conversation().on_recognition(_echo), timeout=1)
        return synthesis, sleeper

    synthesis, sleeper = asyncio.run(_run())

    assert synthesis.spoken == ["echo: ping"]
    assert sleeper.calls == [0.25, 1.0]


def test_permission_denied_terminates_and_is_logged_once(caplog) -> None:
    caplog.set_level(logging.INFO, logger="qonvo")

    async def _run():
        script = [ScriptedUtterance(error=VoiceError(VoiceErrorCode.PERMISSION_DENIED, "Microphone blocked")), "ping"]
        voice, synthesis, sleeper = await _bound(script)
        await asyncio.wait_for(voice.start_conversation().on_recognition(_echo), timeout=1)
        return voice, synthesis, sleeper

    voice, synthesis, sleeper = asyncio.run(_run())

    assert synthesis.spoken == []
    assert sleeper.calls == []
    assert voice.last_error is not None and voice.last_error.code is VoiceErrorCode.PERMISSION_DENIED
    error_records = [record for record in caplog.records if record.name == "qonvo.errors"]
    assert [record.code for record in error_records] == ["PERMISSION_DENIED"]
    decisions = [record for record in caplog.records if record.getMessage() == "conversation_terminated"]
    assert [(record.code, record.reason) for record in decisions] == [("PERMISSION_DENIED", "system")]
    assert [record.name for record in caplog.records if record.levelno >= logging.WARNING] == ["qonvo.errors"]


def test_responder_failure_becomes_conversation_error_and_retries() -> None:
    def _explode(result) -> str:
        raise KeyError(result.text)

    async def _run():
        voice, synthesis, sleeper = await _bound(["ping"])
        seen: list[VoiceErrorCode] = []
        voice.set_global_on_error(lambda error: seen.append(error.code))
        await asyncio.wait_for(voice.start_conversation().on_recognition(_explode), timeout=1)
        return synthesis, sleeper, seen

    synthesis, sleeper, seen = asyncio.run(_run())

    assert synthesis.spoken == []
    assert seen == [VoiceErrorCode.CONVERSATION_ERROR]
    assert sleeper.calls == [0.25]


def test_stop_is_idempotent_and_ends_the_listening_turn() -> None:
    async def _run():
        voice, synthesis, _ = await _bound(["never heard"], delay=10)
        changes: list[bool] = []
        voice.subscribe(Domain.CONVERSATION, lambda: changes.append(voice.get_snapshot(Domain.CONVERSATION).is_active))
        task = voice.start_conversation().on_recognition(_echo)
        await asyncio.sleep(0.01)
        listening = voice.recognition.is_active
        voice.stop_conversation()
        voice.stop_conversation()
        await asyncio.wait_for(task, timeout=1)
        await asyncio.sleep(0.01)
        return voice, synthesis, listening, changes

    voice, synthesis, listening, changes = asyncio.run(_run())

    assert listening is True
    assert changes == [True, False]
    assert voice.recognition.is_active is False
    assert voice.conversation.is_active is False
    assert synthesis.spoken == []


def test_starting_a_new_conversation_replaces_the_old_one() -> None:
    async def _run():
        voice, synthesis, _ = await _bound(["hello"], delay=0.05)
        first = voice.start_conversation().on_recognition(_echo)
        await asyncio.sleep(0.01)
        second = voice.start_conversation(ConversationOptions(method=RecognitionMethod.ONCE)).on_recognition(_echo)
        await asyncio.wait_for(asyncio.gather(first, second), timeout=1)
        return synthesis

    synthesis = asyncio.run(_run())

    assert synthesis.spoken == ["echo: hello"]
