"""CLI startup entrypoint for Qonvo."""

from __future__ import annotations

import asyncio
from typing import List

import typer
from rich import print

from qonvo.config import settings
from qonvo.controller import match_phrase
from qonvo.engines import DEFAULT_DEMO_VOICES, ScriptedRecognitionEngine, ScriptedSynthesisEngine
from qonvo.errors import VoiceError
from qonvo.models import ConversationOptions, RecognitionMethod, RecognitionResult, RecognizeOptions, SynthesizeOptions
from qonvo.orchestrator import VoiceOrchestrator
from qonvo.telemetry import configure_logging
from qonvo.telemetry.logging import LoggingTelemetry

app = typer.Typer(help="Qonvo voice session orchestrator")

STOP_PHRASE = "stop listening"


def _voice_extras_missing() -> None:
    print({"error": "Voice extras are missing. Install with: pip install 'qonvo[voice]'"})
    raise typer.Exit(code=1)


def _build_recognition_engine():
    try:
        from qonvo.engines.speech_recognition import SpeechRecognitionEngine
    except ImportError:
        _voice_extras_missing()
    try:
        return SpeechRecognitionEngine(language=settings.language, phrase_time_limit=settings.phrase_time_limit)
    except RuntimeError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)


def _build_synthesis_engine():
    try:
        from qonvo.engines.pyttsx3 import Pyttsx3SynthesisEngine
    except ImportError:
        _voice_extras_missing()
    try:
        return Pyttsx3SynthesisEngine()
    except RuntimeError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)


def _build_orchestrator() -> VoiceOrchestrator:
    configure_logging(settings.log_level)
    return VoiceOrchestrator.create(settings=settings, telemetry=LoggingTelemetry())


def _run_or_exit(coro) -> object:
    try:
        return asyncio.run(coro)
    except VoiceError as exc:
        print({"error": exc.code.value, "message": exc.message})
        raise typer.Exit(code=1)


def _echo_responder(voice: VoiceOrchestrator):
    def _respond(result: RecognitionResult) -> str:
        if match_phrase(result.text, STOP_PHRASE):
            voice.stop_conversation()
            return ""
        response = f"You said: {result.text}"
        print({"heard": result.text, "response": response})
        return response

    return _respond


async def _converse(voice: VoiceOrchestrator, *, once: bool, pause_ms: int | None) -> None:
    method = RecognitionMethod.ONCE if once else RecognitionMethod.CONTINUOUS
    chain = voice.start_conversation(ConversationOptions(method=method))
    chain.on_recognition(_echo_responder(voice), pause_ms=pause_ms)
    try:
        await voice.conversation.join()
    finally:
        await voice.dispose()


@app.command()
def status() -> None:
    """Show runtime configuration."""
    print(
        {
            "app_name": settings.app_name,
            "language": settings.language,
            "error_logging": settings.error_logging,
            "conversation_pause_ms": settings.conversation_pause_ms,
            "conversation_min_pause_ms": settings.conversation_min_pause_ms,
            "conversation_retry_delay_ms": settings.conversation_retry_delay_ms,
        }
    )


@app.command()
def voices() -> None:
    """List the voices of the local synthesis backend."""
    engine = _build_synthesis_engine()

    async def _run():
        voice = _build_orchestrator()
        await voice.bind(None, engine)
        try:
            return await voice.list_voices()
        finally:
            await voice.dispose()

    for info in _run_or_exit(_run()):
        print({"id": info.id, "name": info.name, "language": info.language_tag})


@app.command()
def languages() -> None:
    """List the languages the local synthesis backend can speak."""
    engine = _build_synthesis_engine()

    async def _run():
        voice = _build_orchestrator()
        await voice.bind(None, engine)
        try:
            return await voice.list_languages()
        finally:
            await voice.dispose()

    for info in _run_or_exit(_run()):
        print({"code": info.code, "name": info.name, "voices": info.voice_count})


@app.command()
def listen(
    once: bool = typer.Option(False, "--once/--continuous", help="Stop after the first final result"),
    caption: bool = typer.Option(False, help="Record interim captions in the transcript"),
) -> None:
    """Print recognized speech until 'stop listening' is heard (or once with --once)."""
    engine = _build_recognition_engine()

    async def _run():
        voice = _build_orchestrator()
        await voice.bind(engine, None)
        method = RecognitionMethod.ONCE if once else RecognitionMethod.CONTINUOUS
        controller = await voice.start_recognition(RecognizeOptions(method=method, caption=caption))
        controller.on("final", lambda result: print({"heard": result.text, "confidence": result.confidence}))
        controller.on("error", lambda error: print({"error": error.code.value, "message": error.message}))
        controller.when(STOP_PHRASE).then(lambda ctl: ctl.stop())
        print({"listen": "started", "method": method.value, "hint": f"Say '{STOP_PHRASE}' to exit."})
        try:
            return await controller.future
        finally:
            await voice.dispose()

    try:
        _run_or_exit(_run())
    except KeyboardInterrupt:
        pass
    print({"listen": "stopped"})


@app.command()
def say(
    text: str,
    rate: float = typer.Option(None, help="Relative speaking rate, 1.0 is normal"),
    voice_id: str = typer.Option(None, help="Voice id from `qonvo voices`"),
    language: str = typer.Option(None, help="Language tag used to pick a voice"),
) -> None:
    """Speak TEXT with the local synthesis backend."""
    engine = _build_synthesis_engine()

    async def _run():
        voice = _build_orchestrator()
        await voice.bind(None, engine)
        try:
            await voice.speak(text, SynthesizeOptions(rate=rate, voice_id=voice_id, language_tag=language))
        finally:
            await voice.dispose()

    _run_or_exit(_run())
    print({"spoken": text})


@app.command()
def converse(
    once: bool = typer.Option(False, help="Answer a single utterance, then exit"),
    pause_ms: int = typer.Option(None, help="Pause after each reply before listening again"),
) -> None:
    """Run an echo conversation with the local STT/TTS backends."""
    recognition = _build_recognition_engine()
    synthesis = _build_synthesis_engine()

    async def _run():
        voice = _build_orchestrator()
        await voice.bind(recognition, synthesis)
        await _converse(voice, once=once, pause_ms=pause_ms)

    print({"conversation": "started", "hint": f"Say '{STOP_PHRASE}' to exit."})
    try:
        _run_or_exit(_run())
    except KeyboardInterrupt:
        pass
    print({"conversation": "stopped"})


@app.command()
def demo(
    utterance: List[str] = typer.Option(
        ["hello there", "what can you do", STOP_PHRASE],
        help="Scripted utterance; repeat the option to add more",
    ),
    pause_ms: int = typer.Option(None, help="Pause after each reply before listening again"),
) -> None:
    """Run an echo conversation against scripted in-memory engines."""
    synthesis = ScriptedSynthesisEngine(voices=DEFAULT_DEMO_VOICES)

    async def _run():
        voice = _build_orchestrator()
        await voice.bind(ScriptedRecognitionEngine(utterance), synthesis)
        transcript = voice.transcript
        await _converse(voice, once=False, pause_ms=pause_ms)
        return transcript.get_entries()

    for entry in _run_or_exit(_run()):
        print({"role": entry.role.value, "text": entry.text})
    print({"spoken": synthesis.spoken})


if __name__ == "__main__":
    app()
