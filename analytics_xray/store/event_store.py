"""
Bounded per-tab event store with a durable mirror.

Events are held newest first.  Every mutation updates the in-memory
sequence synchronously and then mirrors the whole ``events`` map to
storage; persistence failures are logged and the store keeps serving
from memory.

Per-tab lifecycle::

    Absent -> Hydrating -> Active -> (Trimmed | Cleared) -> Absent

A tab enters ``Hydrating`` only on first access without an in-memory
sequence; the durable copy is read once and kept (even when empty).
While the durable map cannot be read, mirror writes are deferred and
new events are merged with the stored history once a read succeeds.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from typing import Any

import pydantic

from analytics_xray.models.policy import DEFAULT_MAX_EVENTS, clamp_max_events
from analytics_xray.models.segment import NormalizedEvent
from analytics_xray.store import monitoring
from analytics_xray.store.persistence import EVENTS_KEY, StorageBackend, WriteBehindStorage, tab_key
from analytics_xray.utils import logger
from analytics_xray.utils.errors import PersistenceError
from analytics_xray.utils.serialization import epoch_ms

log = logger.create_logger("EventStore")

# Log storage usage every N-th persisted event count.
_SIZE_LOG_EVERY = 10


def _parse_events(tab_id: int, raw: Any) -> list[NormalizedEvent]:
    """Validate a persisted sequence, dropping malformed records."""
    if not isinstance(raw, list):
        log.warn("Ignoring malformed persisted events", {"tabId": tab_id, "type": type(raw).__name__})
        return []
    events: list[NormalizedEvent] = []
    dropped = 0
    for item in raw:
        try:
            events.append(NormalizedEvent.model_validate(item))
        except pydantic.ValidationError:
            dropped += 1
    if dropped:
        log.warn("Dropped malformed persisted events", {"tabId": tab_id, "dropped": dropped})
    return events


class BoundedEventStore:
    """Owns the ``tab_id -> [NormalizedEvent]`` map."""

    def __init__(
        self,
        storage: StorageBackend,
        max_events: int = DEFAULT_MAX_EVENTS,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._storage = storage
        self._max_events = clamp_max_events(max_events)
        self._clock = clock
        self._lock = threading.RLock()
        self._events: dict[int, list[NormalizedEvent]] = {}
        # Wire form of the durable ``events`` map; None until a read succeeds.
        self._mirror: dict[str, list[dict[str, Any]]] | None = None
        # Tabs started or cleared while the durable map was unreadable,
        # reconciled on the first successful read.
        self._unmerged: set[int] = set()
        self._dropped: set[int] = set()
        # Last append per tab, in epoch ms.
        self._last_appended: dict[int, int] = {}

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    @property
    def max_events(self) -> int:
        with self._lock:
            return self._max_events

    # ── Durable mirror ──────────────────────────────────────────

    def _load_mirror(self) -> dict[str, list[dict[str, Any]]] | None:
        """Return the cached durable map, reading it on first use.

        Returns ``None`` when storage cannot be read; nothing is cached
        in that case so the next call retries.  Caller holds the lock.
        """
        if self._mirror is not None:
            return self._mirror
        try:
            raw = self._storage.get(EVENTS_KEY)
        except PersistenceError as exc:
            log.error("Failed to read persisted events", {"error": exc.reason})
            return None

        mirror: dict[str, list[dict[str, Any]]] = {}
        if isinstance(raw, dict):
            for key, value in raw.items():
                if str(key).isdigit() and isinstance(value, list):
                    mirror[str(key)] = value[: self._max_events]
        elif raw is not None:
            log.warn("Ignoring malformed events map", {"type": type(raw).__name__})

        reconcile = bool(self._dropped or self._unmerged)
        for tab_id in self._dropped:
            mirror.pop(str(tab_id), None)
        for tab_id in self._unmerged:
            durable = _parse_events(tab_id, mirror.get(str(tab_id), []))
            merged = (self._events.get(tab_id, []) + durable)[: self._max_events]
            self._events[tab_id] = merged
            mirror[str(tab_id)] = [e.to_wire() for e in merged]
        self._dropped.clear()
        self._unmerged.clear()
        self._mirror = mirror
        if reconcile:
            log.info("Reconciled events with storage", {"tabs": len(mirror)})
            self._write_mirror()
        return mirror

    def _write_mirror(self) -> None:
        if self._mirror is None:
            log.warn("Persisted events unreadable, deferring mirror write")
            return
        try:
            self._storage.set(EVENTS_KEY, self._mirror)
        except PersistenceError as exc:
            log.error("Failed to persist events", {"error": exc.reason})
            self._log_size()

    def _touch(self, tab_id: int) -> None:
        now = self._clock()
        self._last_appended[tab_id] = now
        try:
            self._storage.set(tab_key(tab_id, "meta"), {"lastUpdated": now})
        except PersistenceError as exc:
            log.error("Failed to record tab activity", {"tabId": tab_id, "error": exc.reason})

    def _log_size(self) -> None:
        storage = self._storage
        if isinstance(storage, WriteBehindStorage):
            # Measured on the writer thread, after the writes queued so far.
            storage.defer("size", lambda: monitoring.log_storage_size(storage.backend))
            return
        try:
            monitoring.log_storage_size(storage)
        except PersistenceError as exc:
            log.warn("Could not measure storage", {"error": exc.reason})

    def _hydrate(self, tab_id: int) -> list[NormalizedEvent]:
        """Load *tab_id* from the mirror once; caller holds the lock."""
        mirror = self._load_mirror()
        if mirror is None:
            self._unmerged.add(tab_id)
            self._events[tab_id] = []
            return []
        events = _parse_events(tab_id, mirror.get(str(tab_id), []))
        if len(events) > self._max_events:
            events = events[: self._max_events]
        self._events[tab_id] = events
        if events:
            log.debug("Hydrated tab from storage", {"tabId": tab_id, "count": len(events)})
        return events

    def _remove_tab_keys(self, tab_id: int) -> None:
        for kind in ("reloads", "meta"):
            try:
                self._storage.remove(tab_key(tab_id, kind))
            except PersistenceError as exc:
                log.error("Failed to remove tab data", {"tabId": tab_id, "kind": kind, "error": exc.reason})

    def _drop(self, tab_id: int) -> bool:
        """Forget *tab_id* in memory and in the mirror; True if the mirror changed."""
        self._events.pop(tab_id, None)
        self._unmerged.discard(tab_id)
        self._last_appended.pop(tab_id, None)
        mirror = self._load_mirror()
        if mirror is None:
            self._dropped.add(tab_id)
            return False
        return mirror.pop(str(tab_id), None) is not None

    # ── Operations ──────────────────────────────────────────────

    def append(self, tab_id: int, new_events: Iterable[NormalizedEvent]) -> list[NormalizedEvent]:
        """Prepend *new_events* (newest first) and truncate to the limit.

        Returns the stored sequence after the append.  No
        deduplication is performed.
        """
        incoming = list(new_events)
        with self._lock:
            existing = self._events.get(tab_id)
            if existing is None:
                existing = self._hydrate(tab_id)
            self._events[tab_id] = (incoming + existing)[: self._max_events]

            # A successful retry of the read may merge older history in.
            mirror = self._load_mirror()
            updated = self._events[tab_id]
            if mirror is not None:
                mirror[str(tab_id)] = [e.to_wire() for e in updated]
            self._write_mirror()
            self._touch(tab_id)
            result = list(updated)

        log.debug("Stored events", {"tabId": tab_id, "added": len(incoming), "total": len(result)})
        if incoming and len(result) % _SIZE_LOG_EVERY == 0:
            self._log_size()
        return result

    def get(self, tab_id: int) -> list[NormalizedEvent]:
        """Return the tab's events, newest first."""
        with self._lock:
            if self._unmerged:
                self._load_mirror()
            events = self._events.get(tab_id)
            if events is None:
                events = self._hydrate(tab_id)
            return list(events)

    def count(self, tab_id: int) -> int:
        """Length of the in-memory sequence; 0 when absent."""
        with self._lock:
            return len(self._events.get(tab_id, ()))

    def clear(self, tab_id: int) -> None:
        """Drop the tab's events, reload history and activity metadata."""
        with self._lock:
            if self._drop(tab_id):
                self._write_mirror()
            self._remove_tab_keys(tab_id)
        log.info("Cleared events", {"tabId": tab_id})

    def restore_all(self) -> int:
        """Hydrate every persisted tab not already held in memory.

        Idempotent.  Returns the number of tabs restored.
        """
        restored = 0
        with self._lock:
            mirror = self._load_mirror()
            if mirror is None:
                log.warn("Skipping restore, persisted events unreadable")
                return 0
            for key in list(mirror):
                tab_id = int(key)
                if tab_id in self._events:
                    continue
                self._hydrate(tab_id)
                restored += 1
        if restored:
            log.info("Restored events from storage", {"tabs": restored})
        return restored

    def set_max_events(self, value: int) -> int:
        """Change the per-tab limit.

        A reduction truncates every in-memory and durable sequence
        immediately.  Returns the clamped limit.
        """
        limit = clamp_max_events(value)
        with self._lock:
            previous = self._max_events
            self._max_events = limit
            if limit >= previous:
                return limit

            for tab_id, events in self._events.items():
                if len(events) > limit:
                    self._events[tab_id] = events[:limit]

            # An unreadable mirror is truncated when it is first loaded.
            mirror = self._load_mirror() or {}
            trimmed = 0
            for key, items in mirror.items():
                if len(items) > limit:
                    mirror[key] = items[:limit]
                    trimmed += 1
            if trimmed:
                self._write_mirror()

        log.info("Max events reduced", {"from": previous, "to": limit})
        return limit

    def tab_ids(self) -> set[int]:
        """Tabs with events in memory or in the durable mirror."""
        with self._lock:
            return set(self._events) | {int(k) for k in self._load_mirror() or {}}

    def purge(self, tab_ids: Iterable[int], keep_active_since: int | None = None) -> int:
        """Remove all data for *tab_ids* from memory and storage.

        Tabs that stored events at or after *keep_active_since* (epoch
        ms) are kept.  Returns the number of tabs purged.
        """
        ids = set(tab_ids)
        if not ids:
            return 0
        purged = 0
        with self._lock:
            changed = False
            for tab_id in ids:
                last = self._last_appended.get(tab_id)
                if keep_active_since is not None and last is not None and last >= keep_active_since:
                    log.debug("Keeping tab active since sweep started", {"tabId": tab_id})
                    continue
                changed = self._drop(tab_id) or changed
                self._remove_tab_keys(tab_id)
                purged += 1
            if changed:
                self._write_mirror()
        return purged
