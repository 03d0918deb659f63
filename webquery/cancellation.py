"""Cooperative cancellation shared by every stage of a traversal."""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable

from .errors import QueryCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """A thread-safe, one-way cancellation signal.

    Stages call `raise_if_cancelled()` at each point where they wait on the
    network. Callbacks registered with `register()` run once, on the thread
    that calls `cancel()`; the session uses them to close the response that
    is in flight so a blocked body read returns promptly.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._keys = itertools.count()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise QueryCancelledError("Query was cancelled")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run `callback` on cancellation; returns a function that unregisters it.

        If the token is already cancelled the callback runs immediately.
        """

        with self._lock:
            if not self._event.is_set():
                key = next(self._keys)
                self._callbacks[key] = callback
                return lambda: self._unregister(key)

        callback()
        return lambda: None

    def _unregister(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or `timeout` elapses; True when cancelled."""

        return self._event.wait(timeout)


__all__ = ["CancellationToken"]
