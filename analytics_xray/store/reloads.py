"""Detect same-page reloads and keep a capped history per tab."""

from __future__ import annotations

import threading
from collections.abc import Callable

from analytics_xray.store.persistence import StorageBackend, tab_key
from analytics_xray.utils import logger
from analytics_xray.utils.errors import PersistenceError
from analytics_xray.utils.serialization import epoch_ms
from analytics_xray.utils.url import normalize_page_url

log = logger.create_logger("Reloads")

ReloadCallback = Callable[[int, int], None]


class ReloadTracker:
    """Compare each ``loading`` URL with the last one seen for the tab."""

    def __init__(
        self,
        storage: StorageBackend,
        history_limit: int = 100,
        on_reload: ReloadCallback | None = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._storage = storage
        self._history_limit = max(1, history_limit)
        self._on_reload = on_reload
        self._clock = clock
        self._lock = threading.Lock()
        self._last_urls: dict[int, str] = {}

    def on_loading(self, tab_id: int, url: str) -> int | None:
        """Record navigation to *url*; returns the reload timestamp if any."""
        normalized = normalize_page_url(url)
        with self._lock:
            previous = self._last_urls.get(tab_id)
            self._last_urls[tab_id] = normalized
        if previous is None or previous != normalized:
            return None

        timestamp = self._clock()
        self._record(tab_id, timestamp)
        log.info("Reload detected", {"tabId": tab_id, "url": normalized})
        if self._on_reload is not None:
            self._on_reload(tab_id, timestamp)
        return timestamp

    def _record(self, tab_id: int, timestamp: int) -> None:
        key = tab_key(tab_id, "reloads")
        try:
            history = self._storage.get(key)
            if not isinstance(history, list):
                history = []
            history.append(timestamp)
            self._storage.set(key, history[-self._history_limit :])
            self._storage.set(tab_key(tab_id, "meta"), {"lastUpdated": timestamp})
        except PersistenceError as exc:
            log.error("Failed to store reload", {"tabId": tab_id, "error": exc.reason})

    def get_reloads(self, tab_id: int) -> list[int]:
        try:
            history = self._storage.get(tab_key(tab_id, "reloads"))
        except PersistenceError as exc:
            log.warn("Failed to read reloads", {"tabId": tab_id, "error": exc.reason})
            return []
        if not isinstance(history, list):
            return []
        return [t for t in history if isinstance(t, int) and not isinstance(t, bool)]

    def forget_tab(self, tab_id: int) -> None:
        with self._lock:
            self._last_urls.pop(tab_id, None)
