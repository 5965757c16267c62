"""Cooperative cancellation tokens handed to engines."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .errors import VoiceError, VoiceErrorCode

_logger = logging.getLogger("qonvo.cancellation")


class CancellationToken:
    """A signal that can be set once to request that an operation halt.

    Callbacks registered with :meth:`add_callback` run synchronously the first
    time :meth:`cancel` is called, or immediately if the token is already set.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:  # noqa: BLE001 - one callback must not block the others.
                _logger.exception("cancellation_callback_failed")

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    async def wait(self) -> None:
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise VoiceError(VoiceErrorCode.ABORTED, "Operation was aborted")

    async def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; returns ``True`` if cancelled before the delay elapsed."""
        if seconds <= 0:
            return self._cancelled
        try:
            await asyncio.wait_for(self.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
