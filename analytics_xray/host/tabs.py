"""
Open-tab directory.

The policy engine needs to know which tabs are open and what URL each
one shows.  Hosts provide that through :class:`TabDirectory`; the
in-memory implementation is driven by tab lifecycle callbacks.
"""

from __future__ import annotations

import threading
from typing import Protocol


class TabDirectory(Protocol):
    """Read access to the host's open tabs."""

    def list_tabs(self) -> list[tuple[int, str]]:
        """Return ``(tab_id, url)`` for every open tab."""
        ...

    def get_tab_url(self, tab_id: int) -> str | None:
        """Return the tab's current URL, or ``None`` if it is not open."""
        ...


class InMemoryTabDirectory:
    """Tab directory maintained from lifecycle events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._urls: dict[int, str] = {}

    def set_url(self, tab_id: int, url: str) -> None:
        with self._lock:
            self._urls[tab_id] = url

    def remove(self, tab_id: int) -> None:
        with self._lock:
            self._urls.pop(tab_id, None)

    def list_tabs(self) -> list[tuple[int, str]]:
        with self._lock:
            return list(self._urls.items())

    def get_tab_url(self, tab_id: int) -> str | None:
        with self._lock:
            return self._urls.get(tab_id)
