"""Voice error taxonomy and the shared error-processing pipeline."""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

_logger = logging.getLogger("qonvo.errors")


class VoiceErrorCode(str, Enum):
    """Failure categories reported by engines and sessions."""

    ABORTED = "ABORTED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_SUPPORTED = "NOT_SUPPORTED"
    TTS_NOT_AVAILABLE = "TTS_NOT_AVAILABLE"
    STT_NOT_AVAILABLE = "STT_NOT_AVAILABLE"
    NO_SPEECH = "NO_SPEECH"
    AUDIO_CAPTURE_FAILED = "AUDIO_CAPTURE_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TTS_FAILED = "TTS_FAILED"
    STT_FAILED = "STT_FAILED"
    CONVERSATION_ERROR = "CONVERSATION_ERROR"
    INVALID_STATE = "INVALID_STATE"


SILENT_CODES = frozenset({VoiceErrorCode.ABORTED, VoiceErrorCode.NO_SPEECH})

SYSTEM_CODES = frozenset(
    {
        VoiceErrorCode.PERMISSION_DENIED,
        VoiceErrorCode.NOT_SUPPORTED,
        VoiceErrorCode.TTS_NOT_AVAILABLE,
        VoiceErrorCode.STT_NOT_AVAILABLE,
    }
)

# code -> (user_action, recoverable, needs_permission)
_ENRICHMENT: dict[VoiceErrorCode, tuple[bool | None, bool | None, bool | None]] = {
    VoiceErrorCode.ABORTED: (True, False, None),
    VoiceErrorCode.NO_SPEECH: (False, True, None),
    VoiceErrorCode.PERMISSION_DENIED: (None, True, True),
    VoiceErrorCode.NOT_SUPPORTED: (None, True, True),
    VoiceErrorCode.TTS_NOT_AVAILABLE: (None, True, True),
    VoiceErrorCode.STT_NOT_AVAILABLE: (None, True, True),
    VoiceErrorCode.TTS_FAILED: (None, True, None),
    VoiceErrorCode.STT_FAILED: (None, True, None),
    VoiceErrorCode.AUDIO_CAPTURE_FAILED: (None, True, None),
    VoiceErrorCode.CONVERSATION_ERROR: (None, True, None),
    VoiceErrorCode.NETWORK_ERROR: (None, True, None),
    VoiceErrorCode.INVALID_STATE: (None, False, None),
}


class VoiceError(Exception):
    """Structured voice failure whose metadata is derived from its code."""

    code: VoiceErrorCode
    message: str
    cause: BaseException | None
    context: Mapping[str, Any] | None
    user_action: bool | None
    recoverable: bool | None
    needs_permission: bool | None

    def __init__(
        self,
        code: VoiceErrorCode | str,
        message: str,
        *,
        cause: BaseException | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        code = VoiceErrorCode(code)
        user_action, recoverable, needs_permission = _ENRICHMENT[code]
        values = {
            "code": code,
            "message": message,
            "cause": cause,
            "context": dict(context) if context else None,
            "user_action": user_action,
            "recoverable": recoverable,
            "needs_permission": needs_permission,
        }
        for name, value in values.items():
            object.__setattr__(self, name, value)
        if cause is not None:
            self.__cause__ = cause

    def __setattr__(self, name: str, value: Any) -> None:
        # Exception machinery still needs to write traceback/context dunders.
        if name.startswith("__"):
            object.__setattr__(self, name, value)
            return
        raise AttributeError(f"VoiceError is immutable; cannot set {name!r}")

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"VoiceError({self.code.value}, {self.message!r})"

    @property
    def silent(self) -> bool:
        return self.code in SILENT_CODES


def is_voice_error(error: object) -> bool:
    return isinstance(error, VoiceError)


def is_system_error(error: VoiceError) -> bool:
    """Permission/support failures invalidate the feature, not just one operation."""
    return error.code in SYSTEM_CODES


def should_log_error(error: VoiceError) -> bool:
    return error.code not in SILENT_CODES


def to_voice_error(error: object, default_code: VoiceErrorCode = VoiceErrorCode.TTS_FAILED) -> VoiceError:
    """Normalize any raised value into a ``VoiceError``."""
    if isinstance(error, VoiceError):
        return error
    if isinstance(error, asyncio.CancelledError):
        return VoiceError(VoiceErrorCode.ABORTED, "Operation was aborted", cause=error)
    if isinstance(error, BaseException):
        return VoiceError(default_code, str(error) or type(error).__name__, cause=error)
    return VoiceError(default_code, str(error))


def raise_unless_aborted(error: VoiceError) -> None:
    """Raise ``error`` unless it is a cancellation, which is expected control flow."""
    if error.code is VoiceErrorCode.ABORTED:
        return
    raise error


def log_voice_error(error: BaseException, context: str | None = None, *, enabled: bool = True) -> None:
    """Log a failure unless logging is disabled or the failure is silent."""
    if not enabled:
        return
    if isinstance(error, VoiceError):
        if not should_log_error(error):
            return
        _logger.error(
            "voice_error [%s] %s: %s",
            context or "qonvo",
            error.code.value,
            error.message,
            extra={
                "context": context,
                "code": error.code.value,
                "error_message": error.message,
                "cause": repr(error.cause) if error.cause else None,
                "error_context": error.context,
            },
        )
        return
    _logger.error("voice_error [%s] %r", context or "qonvo", error, extra={"context": context})


class ErrorMapper:
    """Translates platform-specific error codes into ``VoiceError`` values.

    Engine bindings build one from a lookup table, for example::

        mapper = ErrorMapper({"no-speech": VoiceErrorCode.NO_SPEECH}, VoiceErrorCode.STT_FAILED)
        error = mapper("no-speech", "Nothing was heard")
    """

    def __init__(
        self,
        table: Mapping[str, VoiceErrorCode],
        default_code: VoiceErrorCode,
    ) -> None:
        self._table = dict(table)
        self._default_code = default_code

    def __call__(
        self,
        platform_code: str,
        message: str,
        *,
        cause: BaseException | None = None,
    ) -> VoiceError:
        code = self._table.get(platform_code, self._default_code)
        return VoiceError(code, message, cause=cause, context={"platform_code": platform_code})


ErrorCallback = Callable[[VoiceError], None]


class ErrorPipeline:
    """Normalizes, records, reports and optionally re-raises failures.

    Exactly one last error is kept. Silent codes never become the last error
    and are never logged, but per-call and global callbacks still see them.
    """

    def __init__(
        self,
        *,
        on_last_error_changed: Callable[[], None] | None = None,
        logging_enabled: bool = True,
    ) -> None:
        self._last_error: VoiceError | None = None
        self._on_last_error_changed = on_last_error_changed
        self.global_on_error: ErrorCallback | None = None
        self.logging_enabled = logging_enabled

    @property
    def last_error(self) -> VoiceError | None:
        return self._last_error

    def set_last_error(self, error: VoiceError | None) -> None:
        if error is not None and error.silent:
            return
        if error is None and self._last_error is None:
            return
        self._last_error = error
        if self._on_last_error_changed is not None:
            self._on_last_error_changed()

    def clear(self) -> None:
        self.set_last_error(None)

    def report(self, error: VoiceError, on_error: ErrorCallback | None = None) -> None:
        """Record ``error`` and fan it out to the per-call and global callbacks."""
        self.set_last_error(error)
        for callback, name in ((on_error, "on_error"), (self.global_on_error, "global_on_error")):
            if callback is None:
                continue
            try:
                callback(error)
            except Exception:  # noqa: BLE001 - callbacks must not break the pipeline.
                _logger.exception("error_callback_failed", extra={"callback": name, "code": error.code.value})

    def log(self, error: BaseException, context: str | None = None) -> None:
        log_voice_error(error, context, enabled=self.logging_enabled)

    def process(
        self,
        error: object,
        context: str,
        *,
        default_code: VoiceErrorCode = VoiceErrorCode.TTS_FAILED,
        on_error: ErrorCallback | None = None,
        raise_error: bool = True,
    ) -> VoiceError:
        voice_error = to_voice_error(error, default_code)
        self.report(voice_error, on_error)
        self.log(voice_error, context)
        if raise_error:
            raise_unless_aborted(voice_error)
        return voice_error


async def safe_cleanup(
    fn: Callable[[], Awaitable[Any] | Any],
    context: str,
    *,
    logging_enabled: bool = True,
) -> None:
    """Run a cleanup step, logging rather than raising any failure."""
    try:
        result = fn()
        if inspect.isawaitable(result):
            await result
    except Exception as exc:  # noqa: BLE001 - cleanup never propagates.
        log_voice_error(
            to_voice_error(exc, VoiceErrorCode.INVALID_STATE),
            f"{context} cleanup",
            enabled=logging_enabled,
        )
