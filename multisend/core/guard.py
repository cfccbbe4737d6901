"""
multisend/core/guard.py

Reentrancy guard for engine entry points.

The guard is a lock held for the duration of one guarded call. It is
acquired without blocking: if it is already held, the caller is inside
the engine already (a recipient hook calling back in) and the new call
is rejected with ReentrantCallError.

Calls from other threads never reach the guard concurrently: the world
state serialises whole calls before the guard is consulted.
"""

import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator

from multisend.core.exceptions import ReentrantCallError


class GuardState(Enum):
    NOT_ENTERED = "not_entered"
    ENTERED     = "entered"


class ReentrancyGuard:

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def state(self) -> GuardState:
        return GuardState.ENTERED if self._lock.locked() else GuardState.NOT_ENTERED

    @contextmanager
    def entered(self, operation: str = "") -> Iterator[None]:
        """
        Hold the guard for the body of a guarded operation.

        Released on every exit path, including exceptions.
        """
        if not self._lock.acquire(blocking=False):
            raise ReentrantCallError(
                "Reentrant call rejected",
                {"operation": operation} if operation else None,
            )
        try:
            yield
        finally:
            self._lock.release()
