"""
Durable key-value storage for the event mirror.

Each key is stored as one JSON file under the storage directory.  Events
of every tab live under the single ``events`` key; other per-tab keys
follow ``tab_<id>_<kind>`` so that cleanup can find
everything belonging to a tab without a separate index.

:class:`WriteBehindStorage` moves writes off the capture path: a single
worker thread applies them in submission order, and reads wait for
pending writes first so callers always see their own writes.
"""

from __future__ import annotations

import concurrent.futures
import contextlib
import json
import os
import pathlib
import re
import threading
from collections.abc import Callable
from typing import Any, Literal, Protocol

from analytics_xray.utils import logger
from analytics_xray.utils.errors import PersistenceError, StorageUnavailableError, get_error_message
from analytics_xray.utils.url import safe_key

log = logger.create_logger("Storage")

EVENTS_KEY = "events"

TabKeyKind = Literal["reloads", "meta"]

TAB_KEY_RE = re.compile(r"^tab_(\d+)_(reloads|meta)$")


def tab_key(tab_id: int, kind: TabKeyKind) -> str:
    """Storage key for one kind of per-tab data."""
    return f"tab_{tab_id}_{kind}"


def parse_tab_key(key: str) -> tuple[int, str] | None:
    """Split a per-tab key into ``(tab_id, kind)``; ``None`` for other keys."""
    match = TAB_KEY_RE.match(key)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


class StorageBackend(Protocol):
    """Minimal JSON key-value store."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


# ── Backends ────────────────────────────────────────────────────


class JsonFileStorage:
    """One JSON file per key under *root*."""

    def __init__(self, root: pathlib.Path) -> None:
        self._root = root
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot create storage directory {root}: {exc}") from exc

    @property
    def root(self) -> pathlib.Path:
        return self._root

    def _path(self, key: str) -> pathlib.Path:
        return self._root / f"{safe_key(key)}.json"

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceError(key, get_error_message(exc)) from exc

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(value, separators=(",", ":")), encoding="utf-8")
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise PersistenceError(key, get_error_message(exc)) from exc

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(key, get_error_message(exc)) from exc

    def keys(self) -> list[str]:
        try:
            return sorted(p.stem for p in self._root.glob("*.json"))
        except OSError as exc:
            raise PersistenceError("*", get_error_message(exc)) from exc


class MemoryStorage:
    """Dict-backed storage holding JSON round-tripped copies."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(key, get_error_message(exc)) from exc
        with self._lock:
            self._data[key] = encoded

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class WriteBehindStorage:
    """Apply writes to *backend* on a single background thread.

    Write failures are logged and never reach the caller that
    submitted them; *on_error* is then called on the worker thread.
    """

    def __init__(
        self,
        backend: StorageBackend,
        on_error: Callable[[PersistenceError], object] | None = None,
    ) -> None:
        self._backend = backend
        self._on_error = on_error
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="xray-storage")
        self._lock = threading.Lock()
        self._closed = False

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def _apply(self, key: str, op: str, fn: Callable[..., object], *args: Any) -> None:
        try:
            fn(*args)
        except PersistenceError as exc:
            log.error("Failed to persist", {"key": key, "op": op, "error": exc.reason})
            if self._on_error is not None:
                try:
                    self._on_error(exc)
                except Exception as hook_exc:
                    log.warn("Storage error hook failed", {"error": get_error_message(hook_exc)})
        except Exception as exc:
            log.error("Failed to persist", {"key": key, "op": op, "error": get_error_message(exc)})

    def _submit(self, key: str, op: str, fn: Callable[..., object], *args: Any) -> None:
        with self._lock:
            if not self._closed:
                self._executor.submit(self._apply, key, op, fn, *args)
                return
        log.warn("Storage closed, applying write inline", {"key": key, "op": op})
        self._apply(key, op, fn, *args)

    def defer(self, label: str, fn: Callable[[], object]) -> None:
        """Run *fn* on the worker thread after every write queued so far."""
        self._submit(label, "job", fn)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every write submitted so far has been applied."""
        with self._lock:
            if self._closed:
                return
            # The single worker runs jobs in order, so a no-op barrier
            # completes only after all earlier writes.
            barrier = self._executor.submit(lambda: None)
        barrier.result(timeout=timeout)

    def get(self, key: str) -> Any | None:
        self.flush()
        return self._backend.get(key)

    def set(self, key: str, value: Any) -> None:
        # Serialise now so later mutation of *value* cannot leak into the write.
        try:
            snapshot = json.loads(json.dumps(value))
        except (TypeError, ValueError) as exc:
            raise PersistenceError(key, get_error_message(exc)) from exc
        self._submit(key, "set", self._backend.set, key, snapshot)

    def remove(self, key: str) -> None:
        self._submit(key, "remove", self._backend.remove, key)

    def keys(self) -> list[str]:
        self.flush()
        return self._backend.keys()

    def close(self) -> None:
        """Drain pending writes and stop the worker thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=True)
