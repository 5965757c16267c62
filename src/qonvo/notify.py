"""Cached-snapshot change notification for one observable domain."""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

Listener = Callable[[], None]
Unsubscribe = Callable[[], None]


class ObservableCell(Generic[T]):
    """Holds a lazily computed snapshot plus the listeners that observe it.

    The cached value keeps its identity until :meth:`invalidate` is called, so
    consumers may compare snapshots by reference to detect change.
    """

    def __init__(self, name: str, compute: Callable[[], T], *, logger: logging.Logger | None = None) -> None:
        self._name = name
        self._compute = compute
        self._listeners: list[Listener] = []
        self._cached: T | None = None
        self._dirty = True
        self._logger = logger or logging.getLogger("qonvo.notify")

    @property
    def name(self) -> str:
        return self._name

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def get_snapshot(self) -> T:
        if self._dirty:
            self._cached = self._compute()
            self._dirty = False
        return self._cached  # type: ignore[return-value]

    def invalidate(self) -> None:
        """Drop the cached snapshot and synchronously notify every listener."""
        self._dirty = True
        self._cached = None
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # noqa: BLE001 - listener failures are isolated.
                self._logger.exception("listener_failed", extra={"domain": self._name})

    def clear_listeners(self) -> None:
        self._listeners.clear()
