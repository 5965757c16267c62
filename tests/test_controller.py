from __future__ import annotations

import asyncio
import logging

import pytest

from qonvo.config import Settings
from qonvo.controller import RecognitionController, match_phrase, normalize_phrase
from qonvo.engines.scripted import ScriptedRecognitionEngine, ScriptedSynthesisEngine, ScriptedUtterance
from qonvo.errors import VoiceError, VoiceErrorCode
from qonvo.models import RecognitionMethod, RecognizeOptions
from qonvo.orchestrator import VoiceOrchestrator


async def _bound(script, **engine_kwargs) -> tuple[VoiceOrchestrator, ScriptedRecognitionEngine]:
    engine = ScriptedRecognitionEngine(script, **engine_kwargs)
    voice = VoiceOrchestrator(settings=Settings())
    await voice.bind(engine, ScriptedSynthesisEngine())
    return voice, engine


def test_phrase_matching_is_case_and_whitespace_insensitive() -> None:
    assert normalize_phrase("  Yes \n PLEASE ") == "yes please"
    assert match_phrase("Well, YES   please do", "yes please")
    assert not match_phrase("no thanks", "yes")


def test_once_mode_resolves_with_first_final_and_stops() -> None:
    async def _run():
        voice, engine = await _bound(["turn on the lights", "ignored"])
        controller = await voice.start_recognition(RecognizeOptions(method=RecognitionMethod.ONCE))
        result = await asyncio.wait_for(controller.future, timeout=1)
        await asyncio.sleep(0.01)
        return voice, engine, controller, result

    voice, engine, controller, result = asyncio.run(_run())

    assert result.text == "turn on the lights"
    assert result.phrase is None
    assert controller.is_active is False
    assert voice.recognition.is_active is False
    assert engine.stop_count == 1


def test_all_matching_triggers_fire_in_registration_order() -> None:
    async def _run():
        voice, _ = await _bound(["Yes   please"])
        fired: list[str] = []
        finals = []
        controller = await voice.start_recognition(RecognizeOptions(method=RecognitionMethod.ONCE))
        controller.when("yes").then(lambda ctl: fired.append("yes")).when("yes please").then(
            lambda ctl: fired.append("yes please")
        ).when("no").then(lambda ctl: fired.append("no"))
        controller.on("final", finals.append)
        result = await asyncio.wait_for(controller.future, timeout=1)
        return controller, fired, finals, result

    controller, fired, finals, result = asyncio.run(_run())

    assert fired == ["yes", "yes please"]
    assert result.phrase == "yes"
    assert finals == [result]
    assert controller.phrases == ["yes", "yes please", "no"]


def test_trigger_can_stop_a_continuous_session() -> None:
    async def _run():
        voice, _ = await _bound(["please stop now"])
        controller = await voice.start_recognition()
        controller.when("stop").then(lambda ctl: ctl.stop())
        result = await asyncio.wait_for(controller.future, timeout=1)
        return voice, controller, result

    voice, controller, result = asyncio.run(_run())

    assert result is None
    assert controller.is_active is False
    assert voice.recognition.is_active is False


def test_failing_trigger_does_not_block_later_triggers(caplog) -> None:
    caplog.set_level(logging.ERROR, logger="qonvo.controller")

    async def _run():
        voice, _ = await _bound(["next slide"])
        fired: list[str] = []

        def _broken(ctl: RecognitionController) -> None:
            raise RuntimeError("handler bug")

        controller = await voice.start_recognition(RecognizeOptions(method=RecognitionMethod.ONCE))
        controller.when("next").then(_broken).when("slide").then(lambda ctl: fired.append("slide"))
        await asyncio.wait_for(controller.future, timeout=1)
        return fired

    fired = asyncio.run(_run())

    assert fired == ["slide"]
    assert [record.phrase for record in caplog.records if record.getMessage() == "phrase_trigger_failed"] == ["next"]


def test_continuous_mode_ignores_silence() -> None:
    async def _run():
        voice, engine = await _bound([ScriptedUtterance(error=VoiceError(VoiceErrorCode.NO_SPEECH, "quiet"))])
        errors = []
        controller = await voice.start_recognition()
        controller.on("error", errors.append)
        await asyncio.sleep(0.01)
        state = (controller.is_active, controller.future.done())
        await controller.stop()
        return state, errors

    state, errors = asyncio.run(_run())

    assert state == (True, False)
    assert errors == []


def test_controller_rejects_unknown_events_and_double_start() -> None:
    async def _run():
        voice, _ = await _bound(["hello"], delay=10)
        controller = await voice.start_recognition()
        with pytest.raises(ValueError):
            controller.on("finished", lambda payload: None)
        with pytest.raises(VoiceError) as raised:
            await controller.start()
        await controller.stop()
        return raised.value

    error = asyncio.run(_run())

    assert error.code is VoiceErrorCode.INVALID_STATE
