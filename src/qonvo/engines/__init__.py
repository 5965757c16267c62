"""Engine bindings. The local-audio backends need the ``voice`` extra and are imported lazily."""

from .scripted import DEFAULT_DEMO_VOICES, ScriptedRecognitionEngine, ScriptedSynthesisEngine, ScriptedUtterance

__all__ = [
    "DEFAULT_DEMO_VOICES",
    "ScriptedRecognitionEngine",
    "ScriptedSynthesisEngine",
    "ScriptedUtterance",
]
