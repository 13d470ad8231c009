"""
Push notifications to consumers.

Listeners receive :data:`~analytics_xray.models.messages.Notification`
models synchronously on the publishing thread.  A failing listener is
logged and skipped so that it cannot break the capture pipeline.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence

from analytics_xray.models.messages import (
    DomainChangedMessage,
    EventsCapturedMessage,
    Notification,
    ReloadDetectedMessage,
)
from analytics_xray.models.segment import NormalizedEvent
from analytics_xray.utils import errors, logger

log = logger.create_logger("Notify")

Listener = Callable[[Notification], None]


class Notifier:
    """Fan-out of notifications to registered listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, message: Notification) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(message)
            except Exception as exc:
                log.warn(
                    "Notification listener failed",
                    {"type": message.type, "tabId": message.tab_id, "error": errors.get_error_message(exc)},
                )

    # ── Convenience publishers ──────────────────────────────────

    def events_captured(self, tab_id: int, events: Sequence[NormalizedEvent]) -> None:
        self.publish(EventsCapturedMessage(tab_id=tab_id, events=list(events)))

    def domain_changed(self, tab_id: int, domain: str | None) -> None:
        self.publish(DomainChangedMessage(tab_id=tab_id, domain=domain))

    def reload_detected(self, tab_id: int, timestamp: int) -> None:
        self.publish(ReloadDetectedMessage(tab_id=tab_id, timestamp=timestamp))
