"""
Purge durable data of tabs that have been inactive for too long.

A tab's last activity is the ``lastUpdated`` value of its
``tab_<id>_meta`` key.  Tabs with stored data but no readable
metadata are treated as stale.  The sweep ignores whether a tab is
still open.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable

from analytics_xray.store.event_store import BoundedEventStore
from analytics_xray.store.persistence import parse_tab_key, tab_key
from analytics_xray.utils import errors, logger
from analytics_xray.utils.errors import PersistenceError
from analytics_xray.utils.serialization import epoch_ms

log = logger.create_logger("Cleanup")


def find_stale_tabs(store: BoundedEventStore, max_age_seconds: float, now_ms: int | None = None) -> set[int]:
    """Return the tabs whose last activity is older than *max_age_seconds*."""
    storage = store.storage
    now = epoch_ms() if now_ms is None else now_ms
    cutoff = now - int(max_age_seconds * 1000)

    tab_ids = set(store.tab_ids())
    for key in storage.keys():
        parsed = parse_tab_key(key)
        if parsed is not None:
            tab_ids.add(parsed[0])

    stale: set[int] = set()
    for tab_id in tab_ids:
        try:
            meta = storage.get(tab_key(tab_id, "meta"))
        except PersistenceError:
            meta = None
        last_updated = meta.get("lastUpdated") if isinstance(meta, dict) else None
        if not isinstance(last_updated, (int, float)) or last_updated < cutoff:
            stale.add(tab_id)
    return stale


def cleanup_stale_tabs(store: BoundedEventStore, max_age_seconds: float, now_ms: int | None = None) -> int:
    """Purge every stale tab; returns the number purged."""
    now = epoch_ms() if now_ms is None else now_ms
    stale = find_stale_tabs(store, max_age_seconds, now)
    if not stale:
        log.debug("No stale tabs")
        return 0
    # Tabs that captured events while the sweep ran are kept.
    purged = store.purge(stale, keep_active_since=now - int(max_age_seconds * 1000))
    log.info("Cleaned up stale tabs", {"tabs": purged, "tabIds": sorted(stale)})
    return purged


class CleanupScheduler:
    """Run the stale-tab sweep periodically on the event loop.

    The first sweep runs immediately when started unless
    *run_immediately* is False.
    """

    def __init__(
        self,
        sweep: Callable[[], int],
        interval_seconds: float,
        run_immediately: bool = True,
    ) -> None:
        self._sweep = sweep
        self._interval = interval_seconds
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        log.debug("Cleanup scheduler started", {"intervalSeconds": self._interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self._interval)
        while True:
            try:
                await asyncio.to_thread(self._sweep)
            except Exception as exc:
                log.error("Stale tab cleanup failed", {"error": errors.get_error_message(exc)})
            await asyncio.sleep(self._interval)
