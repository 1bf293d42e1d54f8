"""
Named-event registry.

Callbacks are stored per event in registration order. Removing a callback
leaves a tombstone in its slot, so the handle returned by ``on`` stays valid
no matter which other callbacks are removed.
"""

from typing import Any, Callable, Dict, List, Optional


Listener = Callable[..., Any]


def _key(event: Any) -> str:
    # Enum members and their plain string values share one slot
    return getattr(event, "value", event)


class Observable:
    """Minimal synchronous pub/sub used for client lifecycle events."""

    def __init__(self):
        self._listeners: Dict[str, List[Optional[Listener]]] = {}

    def on(self, event: str, callback: Listener) -> int:
        """
        Register a callback for an event.

        Args:
            event: Event name
            callback: Called with the payload passed to ``fire``

        Returns:
            Handle to pass to ``off``
        """
        callbacks = self._listeners.setdefault(_key(event), [])
        callbacks.append(callback)
        return len(callbacks) - 1

    def once(self, event: str, callback: Listener) -> int:
        """Register a callback that deregisters itself after the first call."""
        handle = -1

        def wrapper(*payload: Any) -> None:
            self.off(event, handle)
            callback(*payload)

        handle = self.on(event, wrapper)
        return handle

    def off(self, event: str, handle: int) -> None:
        callbacks = self._listeners.get(_key(event))
        if not callbacks or handle < 0 or handle >= len(callbacks):
            return
        callbacks[handle] = None

    def all_off(self, event: str) -> None:
        self._listeners.pop(_key(event), None)

    def fire(self, event: str, *payload: Any) -> None:
        """Invoke every live callback for the event, in registration order."""
        callbacks = self._listeners.get(_key(event))
        if not callbacks:
            return

        # Callbacks registered while firing wait for the next fire
        for index in range(len(callbacks)):
            callback = callbacks[index]
            if callback is None:
                continue
            callback(*payload)
