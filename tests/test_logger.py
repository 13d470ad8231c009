"""Tests for analytics_xray.utils.logger — console, buffer and file output."""

from __future__ import annotations

import pathlib

import pytest

from analytics_xray.utils import logger


@pytest.fixture(autouse=True)
def _fresh_buffer():
    logger.clear_log_buffer()
    yield
    logger.close_log_file()


class TestLogger:
    def test_lines_are_buffered_without_colour(self) -> None:
        log = logger.create_logger("Test")
        log.info("Captured events", {"tabId": 1, "names": ["Signed Up"]})
        lines = logger.get_log_buffer()
        assert len(lines) == 1
        assert "[Test] Captured events" in lines[0]
        assert "tabId=1" in lines[0]
        assert "\033[" not in lines[0]

    def test_debug_hidden_unless_enabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        log = logger.create_logger("Test")
        monkeypatch.delenv("XRAY_DEBUG", raising=False)
        log.debug("hidden")
        assert logger.get_log_buffer() == []

        monkeypatch.setenv("XRAY_DEBUG", "true")
        log.debug("shown")
        assert "shown" in logger.get_log_buffer()[0]

    def test_timer(self) -> None:
        log = logger.create_logger("Test")
        log.start_timer("boot")
        assert log.end_timer("boot", "Ready") >= 0
        assert "Ready" in logger.get_log_buffer()[-1]

    def test_unstarted_timer_warns(self) -> None:
        log = logger.create_logger("Test")
        assert log.end_timer("missing") == 0.0
        assert 'Timer "missing" was not started' in logger.get_log_buffer()[-1]


class TestLogFile:
    def test_disabled_without_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("XRAY_LOG_FILE", raising=False)
        assert logger.open_log_file() is None

    def test_mirrors_lines(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "logs" / "capture.log"
        assert logger.open_log_file(str(path)) == str(path)
        logger.create_logger("Test").warn("Near storage limit")
        logger.close_log_file()

        content = path.read_text(encoding="utf-8")
        assert "Capture Log" in content
        assert "[Test] Near storage limit" in content
        assert "\033[" not in content
