"""
Snapshot/restore interface for state that lives outside WorldState.

The engine's configuration and in-memory token ledgers implement it so a
failed call rolls them back together with native balances.
"""

from abc import ABC, abstractmethod
from typing import Any


class Participant(ABC):

    @abstractmethod
    def snapshot(self) -> Any:
        """Return an opaque copy of current state."""

    @abstractmethod
    def restore(self, state: Any) -> None:
        """Put back a state previously returned by snapshot()."""
