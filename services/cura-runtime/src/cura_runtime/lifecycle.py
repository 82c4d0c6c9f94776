"""Ownership of the process-wide engine handle.

Rules:
    * ``initialize`` creates the handle once; calling it again while the
      handle exists raises ``AlreadyInitialized``.
    * Every other operation needs the handle and raises ``NotInitialized``
      without it.
    * ``shutdown`` disposes the handle; ``initialize`` may then run again.
    * Work on the handle happens inside ``lease()``, which admits one holder
      at a time in arrival order.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from common.logging import get_logger

from .engine import Engine, EngineFactory, create_engine
from .errors import AlreadyInitialized, NotInitialized

LOGGER = get_logger(__name__)


class FifoLock:
    """Ticket lock: waiters acquire in the order they arrived."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._next_ticket = 0
        self._now_serving = 0

    def acquire(self) -> None:
        with self._condition:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._now_serving:
                self._condition.wait()

    def release(self) -> None:
        with self._condition:
            self._now_serving += 1
            self._condition.notify_all()

    @property
    def waiting(self) -> int:
        """Holders plus waiters."""
        with self._condition:
            return self._next_ticket - self._now_serving

    def __enter__(self) -> FifoLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class EngineLifecycle:
    """Owns the single engine handle."""

    def __init__(self, factory: Optional[EngineFactory] = None):
        self._factory: EngineFactory = factory or create_engine
        self._engine: Optional[Engine] = None
        self._state_lock = threading.Lock()
        self._lease_lock = FifoLock()

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def initialize(self, verbose: bool = False) -> Engine:
        """Create the engine handle.

        Args:
            verbose: Forward the engine's native output to the log

        Raises:
            AlreadyInitialized: If a handle already exists
        """
        with self._state_lock:
            if self._engine is not None:
                raise AlreadyInitialized("Cura Engine is already initialized")
            self._engine = self._factory(verbose)

        LOGGER.info("Cura Engine initialized", verbose=verbose)
        return self._engine

    def require(self, action: str = "use Cura Engine") -> Engine:
        """Return the handle or raise ``NotInitialized``."""
        engine = self._engine
        if engine is None:
            raise NotInitialized(f"Attempting to {action} before initialization!")
        return engine

    @contextmanager
    def lease(self, action: str = "use Cura Engine") -> Iterator[Engine]:
        """Hold the engine exclusively for the duration of the block."""
        self.require(action)
        with self._lease_lock:
            # Shutdown may have run while this caller was queued
            yield self.require(action)

    def shutdown(self) -> None:
        """Dispose the handle. No-op when not initialized."""
        with self._lease_lock:
            with self._state_lock:
                engine, self._engine = self._engine, None
            if engine is None:
                return
            engine.dispose()
        LOGGER.info("Cura Engine shut down")


__all__ = ["EngineLifecycle", "FifoLock"]
