"""Tests for analytics_xray.host.playwright_hook — browser event bridging.

Uses fake page and request objects; no browser is launched.
"""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from collections.abc import Callable
from typing import Any
from unittest import mock

from analytics_xray.host import playwright_hook
from analytics_xray.host.playwright_hook import CaptureBrowser, PlaywrightTabHook
from analytics_xray.service import CaptureService


class FakeFrame:
    def __init__(self, url: str) -> None:
        self.url = url


class FakePage:
    """Minimal stand-in for ``playwright.async_api.Page``."""

    def __init__(self, url: str = "about:blank") -> None:
        self.main_frame = FakeFrame(url)
        self.handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    @property
    def url(self) -> str:
        return self.main_frame.url

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event].append(handler)

    def emit(self, event: str, *args: Any) -> None:
        for handler in self.handlers[event]:
            handler(*args)

    def navigate(self, url: str) -> None:
        self.main_frame.url = url
        self.emit("framenavigated", self.main_frame)
        self.emit("load", self)


class FakeRequest:
    def __init__(self, url: str, method: str = "POST", body: bytes | None = None) -> None:
        self.url = url
        self.method = method
        self.post_data_buffer = body


class FakeContext:
    def __init__(self, pages: list[FakePage] | None = None) -> None:
        self.pages = pages or []
        self.handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event].append(handler)


def _segment_request(message_id: str = "m1") -> FakeRequest:
    body = json.dumps({"batch": [{"type": "track", "event": "Clicked", "messageId": message_id}]}).encode()
    return FakeRequest("https://api.segment.io/v1/batch", body=body)


class TestPlaywrightTabHook:
    def test_pages_get_distinct_tab_ids(self, service: CaptureService) -> None:
        hook = PlaywrightTabHook(service)
        first, second = FakePage(), FakePage()
        assert hook.track_page(first) == 1
        assert hook.track_page(second) == 2
        assert hook.track_page(first) == 1

    def test_attach_tracks_existing_and_new_pages(self, service: CaptureService) -> None:
        existing = FakePage("https://example.com/")
        context = FakeContext([existing])
        hook = PlaywrightTabHook(service)
        hook.attach(context)
        assert hook.tab_id_for(existing) == 1

        new_page = FakePage()
        for handler in context.handlers["page"]:
            handler(new_page)
        assert hook.tab_id_for(new_page) == 2

    def test_navigation_and_capture(self, service: CaptureService) -> None:
        service.config.add_allowed_domain("example.com", False)
        hook = PlaywrightTabHook(service)
        page = FakePage()
        tab_id = hook.track_page(page)

        page.navigate("https://example.com/")
        assert service.get_tab_domain(tab_id) == "example.com"

        page.emit("request", _segment_request())
        events = service.get_events(tab_id)
        assert [e.name for e in events] == ["Clicked"]
        assert events[0].tab_id == tab_id

    def test_non_analytics_requests_ignored(self, service: CaptureService) -> None:
        service.config.add_allowed_domain("example.com", False)
        hook = PlaywrightTabHook(service)
        page = FakePage()
        tab_id = hook.track_page(page)
        page.navigate("https://example.com/")

        with mock.patch.object(service, "handle_request") as handle:
            page.emit("request", FakeRequest("https://example.com/api", body=b"{}"))
        handle.assert_not_called()
        assert service.get_event_count(tab_id) == 0

    def test_subframe_navigation_ignored(self, service: CaptureService) -> None:
        hook = PlaywrightTabHook(service)
        page = FakePage()
        tab_id = hook.track_page(page)
        page.navigate("https://example.com/")
        page.emit("framenavigated", FakeFrame("https://ads.other.com/frame"))
        assert service.get_tab_domain(tab_id) == "example.com"

    def test_reload_detected(self, service: CaptureService) -> None:
        hook = PlaywrightTabHook(service)
        page = FakePage()
        tab_id = hook.track_page(page)
        page.navigate("https://example.com/a")
        page.navigate("https://example.com/a")
        assert len(service.get_reloads(tab_id)) == 1

    def test_close_removes_tab(self, service: CaptureService) -> None:
        service.config.add_allowed_domain("example.com", False)
        hook = PlaywrightTabHook(service)
        page = FakePage()
        tab_id = hook.track_page(page)
        page.navigate("https://example.com/")
        page.emit("request", _segment_request())

        page.emit("close", page)
        assert hook.tab_id_for(page) is None
        assert service.get_events(tab_id) == []
        assert not service.engine.is_allowed(tab_id)


class TestCaptureBrowser:
    def test_open_auto_allows_and_navigates(self, service: CaptureService) -> None:
        page = FakePage()
        page.goto = mock.AsyncMock(side_effect=lambda url, **_: page.navigate(url))
        context = FakeContext()
        context.new_page = mock.AsyncMock(return_value=page)
        context.close = mock.AsyncMock()
        browser = mock.Mock(new_context=mock.AsyncMock(return_value=context), close=mock.AsyncMock())
        pw = mock.Mock(chromium=mock.Mock(launch=mock.AsyncMock(return_value=browser)), stop=mock.AsyncMock())
        starter = mock.Mock(start=mock.AsyncMock(return_value=pw))

        async def scenario() -> int:
            capture = CaptureBrowser(service)
            with mock.patch.object(playwright_hook.async_api, "async_playwright", return_value=starter):
                await capture.launch()
            tab_id = await capture.open("https://shop.example.com/")
            page.emit("request", _segment_request())
            await capture.close()
            return tab_id

        tab_id = asyncio.run(scenario())
        assert [e.domain for e in service.config.allowed_domains] == ["example.com"]
        assert service.get_event_count(tab_id) == 1
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        pw.stop.assert_awaited_once()
