"""Single-flight memoization cell."""
from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future
from typing import Callable, Generic, Optional, Tuple, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CacheState(enum.Enum):
    EMPTY = "empty"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class OnceCache(Generic[T]):
    """Run ``loader`` at most once per successful value.

    Callers arriving while a load is in flight wait on the same future
    instead of starting a second load. A failed load is reported to every
    waiter and leaves the cell in ``FAILED``; the next ``get`` retries.
    """

    def __init__(self, loader: Callable[[], T]) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._state = CacheState.EMPTY
        self._future: Optional[Future] = None

    @property
    def state(self) -> CacheState:
        return self._state

    def _start(self) -> Tuple[Future, bool]:
        """Return (future, owner) where owner must run the loader."""

        with self._lock:
            if self._state in {CacheState.PENDING, CacheState.READY} and self._future is not None:
                return self._future, False
            future: Future = Future()
            self._future = future
            self._state = CacheState.PENDING
            return future, True

    def _run(self, future: Future) -> None:
        try:
            value = self._loader()
        except BaseException as exc:
            with self._lock:
                self._state = CacheState.FAILED
                self._future = None
            future.set_exception(exc)
            return
        with self._lock:
            self._state = CacheState.READY
        future.set_result(value)

    def get(self, timeout: Optional[float] = None) -> T:
        future, owner = self._start()
        if owner:
            self._run(future)
        return future.result(timeout=timeout)

    def prefetch(self) -> None:
        """Start loading in the background; errors are logged, not raised."""

        future, owner = self._start()
        if not owner:
            return

        def _background() -> None:
            self._run(future)
            exc = future.exception()
            if exc is not None:
                LOGGER.warning("Prefetch failed: %s", exc)

        threading.Thread(target=_background, daemon=True).start()

    def reset(self) -> None:
        with self._lock:
            if self._state is CacheState.PENDING:
                return
            self._state = CacheState.EMPTY
            self._future = None
