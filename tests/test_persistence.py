"""Tests for analytics_xray.store.persistence — durable key-value storage."""

from __future__ import annotations

import pathlib
import threading
from unittest import mock

import pytest

from analytics_xray.store import persistence
from analytics_xray.store.persistence import (
    JsonFileStorage,
    MemoryStorage,
    WriteBehindStorage,
    parse_tab_key,
    tab_key,
)
from analytics_xray.utils.errors import PersistenceError, StorageUnavailableError


class TestTabKeys:
    def test_tab_key(self) -> None:
        assert tab_key(5, "reloads") == "tab_5_reloads"
        assert tab_key(5, "meta") == "tab_5_meta"

    def test_parse_tab_key(self) -> None:
        assert parse_tab_key("tab_12_meta") == (12, "meta")
        assert parse_tab_key("events") is None
        assert parse_tab_key("tab_x_meta") is None


class TestJsonFileStorage:
    def test_set_get_remove(self, tmp_path: pathlib.Path) -> None:
        storage = JsonFileStorage(tmp_path / "mirror")
        storage.set("events", {"1": [{"id": "a"}]})
        assert storage.get("events") == {"1": [{"id": "a"}]}
        assert storage.keys() == ["events"]
        storage.remove("events")
        assert storage.get("events") is None
        storage.remove("events")

    def test_missing_key(self, tmp_path: pathlib.Path) -> None:
        assert JsonFileStorage(tmp_path).get("nope") is None

    def test_corrupt_file_raises(self, tmp_path: pathlib.Path) -> None:
        storage = JsonFileStorage(tmp_path)
        (tmp_path / "events.json").write_text("{broken")
        with pytest.raises(PersistenceError) as exc_info:
            storage.get("events")
        assert exc_info.value.key == "events"

    def test_unserialisable_value_raises(self, tmp_path: pathlib.Path) -> None:
        storage = JsonFileStorage(tmp_path)
        with pytest.raises(PersistenceError):
            storage.set("bad", {"x": object()})
        assert storage.keys() == []

    def test_unavailable_directory(self, tmp_path: pathlib.Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(StorageUnavailableError):
            JsonFileStorage(blocker / "sub")


class TestMemoryStorage:
    def test_values_are_copies(self) -> None:
        storage = MemoryStorage()
        value = {"a": [1]}
        storage.set("k", value)
        value["a"].append(2)
        assert storage.get("k") == {"a": [1]}


class TestWriteBehindStorage:
    def test_reads_see_pending_writes(self) -> None:
        storage = WriteBehindStorage(MemoryStorage())
        for i in range(20):
            storage.set("counter", i)
        assert storage.get("counter") == 19
        storage.close()

    def test_snapshot_taken_at_submission(self) -> None:
        backend = MemoryStorage()
        storage = WriteBehindStorage(backend)
        value = [1]
        storage.set("k", value)
        value.append(2)
        storage.flush()
        assert backend.get("k") == [1]
        storage.close()

    def test_writes_happen_off_the_calling_thread(self) -> None:
        backend = MemoryStorage()
        threads: list[str] = []
        original = backend.set

        def recording_set(key, value):
            threads.append(threading.current_thread().name)
            original(key, value)

        with mock.patch.object(backend, "set", side_effect=recording_set):
            storage = WriteBehindStorage(backend)
            storage.set("k", 1)
            storage.flush()
            storage.close()
        assert threads and threads[0].startswith("xray-storage")

    def test_write_failure_is_logged_not_raised(self) -> None:
        backend = MemoryStorage()
        storage = WriteBehindStorage(backend)
        with (
            mock.patch.object(backend, "set", side_effect=PersistenceError("k", "disk full")),
            mock.patch.object(persistence.log, "error") as log_error,
        ):
            storage.set("k", 1)
            storage.flush()
        storage.close()
        log_error.assert_called_once()

    def test_remove_and_keys(self) -> None:
        storage = WriteBehindStorage(MemoryStorage())
        storage.set("a", 1)
        storage.set("b", 2)
        storage.remove("a")
        assert storage.keys() == ["b"]
        storage.close()

    def test_writes_after_close_applied_inline(self) -> None:
        backend = MemoryStorage()
        storage = WriteBehindStorage(backend)
        storage.close()
        storage.set("k", 1)
        assert backend.get("k") == 1

    def test_error_hook_runs_on_failure(self) -> None:
        backend = MemoryStorage()
        on_error = mock.Mock()
        storage = WriteBehindStorage(backend, on_error=on_error)
        with mock.patch.object(backend, "set", side_effect=PersistenceError("k", "disk full")):
            storage.set("k", 1)
            storage.flush()
        storage.close()
        on_error.assert_called_once()
        assert on_error.call_args.args[0].reason == "disk full"

    def test_deferred_job_runs_after_queued_writes(self) -> None:
        backend = MemoryStorage()
        storage = WriteBehindStorage(backend)
        seen: list[object] = []
        storage.set("k", 1)
        storage.defer("check", lambda: seen.append(backend.get("k")))
        storage.close()
        assert seen == [1]
