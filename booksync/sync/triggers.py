"""
Lifecycle trigger sources for the sync session.

Each source is a tiny in-process pub/sub channel. Subscribing returns a
callable that removes the subscription again.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, List

from booksync.utils.logging import get_logger

logger = get_logger(__name__)

Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class AuthSession:
    """A signed-in identity."""
    user_id: str
    access_token: str


class EventSource:
    """Channel with any number of callbacks."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._callbacks: List[Callable[..., None]] = []

    def subscribe(self, callback: Callable[..., None]) -> Unsubscribe:
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, *args: Any) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(*args)
            except Exception as e:
                logger.error("Trigger handler failed", source=self.name, error=str(e))

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks)


class SyncTriggers:
    """
    The three lifecycle signals the sync session reacts to.

    - network: emits ``bool`` (online)
    - foreground: emits nothing
    - auth: emits ``AuthSession`` or ``None`` when signed out
    """

    def __init__(self):
        self.network = EventSource("network")
        self.foreground = EventSource("foreground")
        self.auth = EventSource("auth")

    def on_network_change(self, callback: Callable[[bool], None]) -> Unsubscribe:
        return self.network.subscribe(callback)

    def on_foreground(self, callback: Callable[[], None]) -> Unsubscribe:
        return self.foreground.subscribe(callback)

    def on_auth_change(self, callback: Callable[..., None]) -> Unsubscribe:
        return self.auth.subscribe(callback)
