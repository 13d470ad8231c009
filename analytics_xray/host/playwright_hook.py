"""
Playwright host hook.

Each page of a :class:`playwright.async_api.BrowserContext` is treated
as a tab.  Outgoing requests to analytics endpoints are fed to the
capture service, main-frame navigations drive tab updates, and closing
a page removes the tab.
"""

from __future__ import annotations

import itertools

from playwright import async_api

from analytics_xray.capture.providers import matches_endpoint
from analytics_xray.service import CapturedRequest, CaptureService
from analytics_xray.utils import errors, logger

log = logger.create_logger("Browser")


class PlaywrightTabHook:
    """Bridge Playwright page events to a :class:`CaptureService`."""

    def __init__(self, service: CaptureService, first_tab_id: int = 1) -> None:
        self._service = service
        self._ids = itertools.count(first_tab_id)
        self._tab_ids: dict[int, int] = {}

    def tab_id_for(self, page: async_api.Page) -> int | None:
        """Return the tab id assigned to *page*, if it is tracked."""
        return self._tab_ids.get(id(page))

    def attach(self, context: async_api.BrowserContext) -> None:
        """Track every existing and future page in *context*."""
        for page in context.pages:
            self.track_page(page)
        context.on("page", self.track_page)

    def track_page(self, page: async_api.Page) -> int:
        """Start tracking *page*; returns its tab id."""
        existing = self.tab_id_for(page)
        if existing is not None:
            return existing

        tab_id = next(self._ids)
        self._tab_ids[id(page)] = tab_id
        page.on("request", lambda request: self._on_request(tab_id, request))
        page.on("framenavigated", lambda frame: self._on_navigated(tab_id, page, frame))
        page.on("load", lambda _page: self._on_load(tab_id, page))
        page.on("close", lambda _page: self._on_close(tab_id, page))
        if page.url:
            self._service.on_tab_updated(tab_id, page.url, url_changed=True)
        log.debug("Tracking page", {"tabId": tab_id, "url": page.url})
        return tab_id

    def _on_request(self, tab_id: int, request: async_api.Request) -> None:
        if not matches_endpoint(request.url):
            return
        try:
            body = request.post_data_buffer
        except Exception as exc:
            log.debug("Could not read request body", {"url": request.url, "error": errors.get_error_message(exc)})
            body = None
        self._service.handle_request(
            CapturedRequest(
                tab_id=tab_id,
                method=request.method,
                url=request.url,
                body=[body] if body else None,
            )
        )

    def _on_navigated(self, tab_id: int, page: async_api.Page, frame: async_api.Frame) -> None:
        if frame is not page.main_frame:
            return
        self._service.on_tab_updated(tab_id, frame.url, status="loading", url_changed=True)

    def _on_load(self, tab_id: int, page: async_api.Page) -> None:
        self._service.on_tab_updated(tab_id, page.url, status="complete")

    def _on_close(self, tab_id: int, page: async_api.Page) -> None:
        self._tab_ids.pop(id(page), None)
        self._service.on_tab_removed(tab_id)
        log.debug("Page closed", {"tabId": tab_id})


class CaptureBrowser:
    """A Chromium browser whose pages are all captured."""

    def __init__(self, service: CaptureService) -> None:
        self._service = service
        self._hook = PlaywrightTabHook(service)
        self._playwright: async_api.Playwright | None = None
        self._browser: async_api.Browser | None = None
        self._context: async_api.BrowserContext | None = None

    @property
    def hook(self) -> PlaywrightTabHook:
        return self._hook

    async def launch(self, headless: bool = True) -> None:
        log.info("Launching browser", {"headless": headless})
        self._playwright = await async_api.async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=headless)
        self._context = await self._browser.new_context()
        self._hook.attach(self._context)

    async def open(self, url: str, auto_allow: bool = True) -> int:
        """Open *url* in a new page and return its tab id.

        With *auto_allow* the page's domain is allowlisted before
        navigation so that its first batch is captured.
        """
        if self._context is None:
            raise RuntimeError("Browser not launched")
        page = await self._context.new_page()
        tab_id = self._hook.track_page(page)
        if auto_allow:
            self._service.on_tab_updated(tab_id, url, url_changed=True)
            self._service.auto_allow(tab_id)
        await page.goto(url, wait_until="domcontentloaded")
        return tab_id

    async def close(self) -> None:
        if self._context:
            try:
                await self._context.close()
            except Exception as exc:
                log.debug("Context close error (non-fatal)", {"error": str(exc)})
            self._context = None
        if self._browser:
            try:
                await self._browser.close()
            except Exception as exc:
                log.debug("Browser close error (non-fatal)", {"error": str(exc)})
            self._browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as exc:
                log.debug("Playwright stop error (non-fatal)", {"error": str(exc)})
            self._playwright = None
