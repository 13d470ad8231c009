"""Tests for analytics_xray.store.reloads — reload detection."""

from __future__ import annotations

from unittest import mock

from analytics_xray.store.persistence import MemoryStorage
from analytics_xray.store.reloads import ReloadTracker


class TestReloadTracker:
    def test_first_load_is_not_a_reload(self, storage: MemoryStorage) -> None:
        tracker = ReloadTracker(storage)
        assert tracker.on_loading(1, "https://example.com/a") is None
        assert tracker.get_reloads(1) == []

    def test_same_url_is_a_reload(self, storage: MemoryStorage) -> None:
        callback = mock.Mock()
        tracker = ReloadTracker(storage, on_reload=callback, clock=lambda: 500)
        tracker.on_loading(1, "https://example.com/a")
        assert tracker.on_loading(1, "https://example.com/a") == 500
        assert tracker.get_reloads(1) == [500]
        callback.assert_called_once_with(1, 500)
        assert storage.get("tab_1_meta") == {"lastUpdated": 500}

    def test_trailing_slash_ignored(self, storage: MemoryStorage) -> None:
        tracker = ReloadTracker(storage)
        tracker.on_loading(1, "https://example.com/a/")
        assert tracker.on_loading(1, "https://example.com/a") is not None

    def test_query_and_fragment_matter(self, storage: MemoryStorage) -> None:
        tracker = ReloadTracker(storage)
        tracker.on_loading(1, "https://example.com/a?x=1")
        assert tracker.on_loading(1, "https://example.com/a?x=2") is None
        assert tracker.on_loading(1, "https://example.com/a?x=2#top") is None

    def test_navigation_resets_comparison(self, storage: MemoryStorage) -> None:
        tracker = ReloadTracker(storage)
        tracker.on_loading(1, "https://example.com/a")
        tracker.on_loading(1, "https://example.com/b")
        assert tracker.on_loading(1, "https://example.com/a") is None

    def test_history_capped(self, storage: MemoryStorage) -> None:
        ticks = iter(range(1, 100))
        tracker = ReloadTracker(storage, history_limit=3, clock=lambda: next(ticks))
        for _ in range(6):
            tracker.on_loading(1, "https://example.com")
        assert tracker.get_reloads(1) == [3, 4, 5]

    def test_forget_tab(self, storage: MemoryStorage) -> None:
        tracker = ReloadTracker(storage)
        tracker.on_loading(1, "https://example.com")
        tracker.forget_tab(1)
        assert tracker.on_loading(1, "https://example.com") is None

    def test_malformed_history(self, storage: MemoryStorage) -> None:
        storage.set("tab_1_reloads", {"not": "a list"})
        assert ReloadTracker(storage).get_reloads(1) == []
