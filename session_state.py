"""
Session state for one replay session.

An explicit, injectable stand-in for a process-wide reactive store. It holds
the read-only configuration handed over by the host application and
publishes the engine's two outputs:
- the current sample index (for detail tables that highlight a row)
- the current viewport state (for camera status displays)
"""

import logging
from types import MappingProxyType
from typing import Any, Callable, Generic, List, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observable(Generic[T]):
    """A value with change subscribers.

    Publishing an unchanged value does not notify. A subscriber that raises
    is logged and skipped; the remaining subscribers are still notified.
    """

    def __init__(self, name: str, initial: Optional[T] = None):
        self.name = name
        self._value = initial
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> Optional[T]:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a subscriber; returns a callable that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> bool:
        """Set the value and notify subscribers if it changed."""
        if value == self._value:
            return False
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                logger.exception("Subscriber to %s failed", self.name)
        return True

    def __len__(self) -> int:
        return len(self._subscribers)


class ReplaySessionState:
    """
    State container owned by one replay session.

    Args:
        store: Key/value configuration supplied by the host application
    """

    def __init__(self, store: Optional[Mapping[str, Any]] = None):
        self._store = MappingProxyType(dict(store or {}))
        self.current_index: Observable[Optional[int]] = Observable("current_index")
        self.viewport: Observable[Any] = Observable("viewport")

    @property
    def store(self) -> Mapping[str, Any]:
        """Read-only view of the host configuration."""
        return self._store

    def get(self, key: str, default: Any = None) -> Any:
        return self._store.get(key, default)

    def subscribe_index(self, callback: Callable[[Optional[int]], None]) -> Callable[[], None]:
        return self.current_index.subscribe(callback)

    def subscribe_viewport(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        return self.viewport.subscribe(callback)

    def publish_index(self, index: Optional[int]) -> bool:
        return self.current_index.publish(index)

    def publish_viewport(self, state: Any) -> bool:
        return self.viewport.publish(state)
