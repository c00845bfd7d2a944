"""Synchronous change fan-out to registered listeners."""

import logging
from collections.abc import Callable

from docgraph.models.events import ChangeEvent

logger = logging.getLogger(__name__)

Listener = Callable[[ChangeEvent], None]


class ChangeNotifier:
    """Delivers each ChangeEvent to every listener in subscription order.

    A listener that raises is logged and skipped; the remaining listeners
    still run. No queuing, no retry.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: ChangeEvent) -> int:
        """Deliver *event*. Returns how many listeners completed without error."""
        delivered = 0
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Change listener %r failed on %s/%s", listener, event.kind.value, event.phase.value,
                )
                continue
            delivered += 1
        return delivered

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
