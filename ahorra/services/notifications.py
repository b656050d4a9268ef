"""
Change Notification

Each service owns a ChangeNotifier. Screens subscribe to refresh after a
write. Listeners take no arguments and are called only after the write
has succeeded.

Removing a listener is idempotent and safe from inside a notification:
notify() iterates over a snapshot of the listener list.
"""

from typing import Callable

import structlog


Listener = Callable[[], None]

logger = structlog.get_logger(__name__)


class ChangeNotifier:
    """Ordered list of change listeners for one service."""

    def __init__(self, source: str):
        self._source = source
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A function that unsubscribes this listener
        """
        if listener not in self._listeners:
            self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._listeners)

    def notify(self) -> None:
        """
        Call every listener.

        A failing listener is logged and does not stop the others;
        the write that triggered the notification has already succeeded.
        """
        for listener in tuple(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(
                    "listener_failed",
                    source=self._source,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    error=str(e),
                    exc_info=True,
                )
