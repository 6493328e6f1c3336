"""
Observable value holder.

Stands in for the host's reactive primitive: the engine publishes each resolved
record with set(), subscribers are called with the new value.
"""

from typing import Callable, Generic, List, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Observable(Generic[T]):
    """Single value with change subscriptions."""

    def __init__(self, value: T):
        self._value = value
        self._callbacks: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Replace the value and notify subscribers (best-effort)."""
        self._value = value
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception as e:
                logger.warning(f"Error in observable subscriber: {e}")

    def subscribe(self, callback: Callable[[T], None]) -> None:
        """Subscribe to value replacements."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: Callable[[T], None]) -> None:
        """Unsubscribe from value replacements."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)
