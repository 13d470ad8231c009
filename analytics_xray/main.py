"""
Server entry point — FastAPI app setup and route configuration.
Exposes the capture service over REST, plus an SSE stream of
notifications and an ingest endpoint for external request hooks.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from typing import Any

import dotenv
import fastapi
import uvicorn
from fastapi.middleware import cors
from starlette import responses

from analytics_xray import config, messages, sse_helpers
from analytics_xray.models.api import (
    AllowDomainBody,
    CaptureRequestBody,
    DenyDomainBody,
    MaxEventsBody,
    TabUpdateBody,
)
from analytics_xray.models.messages import Notification
from analytics_xray.models.results import Err
from analytics_xray.service import CapturedRequest, CaptureService
from analytics_xray.store import cleanup, monitoring
from analytics_xray.utils import logger

dotenv.load_dotenv()

log = logger.create_logger("Server")

# Seconds between keepalive comments on an idle SSE stream.
KEEPALIVE_SECONDS = 15.0


def _service(request: fastapi.Request) -> CaptureService:
    return request.app.state.service


def create_app(
    service: CaptureService | None = None,
    settings: config.XraySettings | None = None,
) -> fastapi.FastAPI:
    """Build the FastAPI app.

    When *service* is omitted one is created from *settings* on
    startup and closed on shutdown.
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: fastapi.FastAPI) -> AsyncGenerator[None]:
        resolved = settings or config.get_settings()
        svc = service or CaptureService.from_settings(resolved)
        app.state.service = svc
        log.section("Analytics X-Ray Server Started")
        log.info("Storage", {"dir": str(resolved.storage_dir), "maxEvents": svc.config.max_events})
        svc.boot()
        scheduler = cleanup.CleanupScheduler(
            svc.cleanup_stale_tabs, resolved.cleanup_interval_seconds, run_immediately=False
        )
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            svc.close()
            log.info("Server stopped")

    app = fastapi.FastAPI(title="Analytics X-Ray", lifespan=lifespan)

    app.add_middleware(
        cors.CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # Consumer API
    # ========================================================================

    @app.get("/api/tabs/{tab_id}/events")
    def get_events(tab_id: int, request: fastapi.Request) -> list[dict[str, Any]]:
        return [e.to_wire() for e in _service(request).get_events(tab_id)]

    @app.delete("/api/tabs/{tab_id}/events")
    def clear_events(tab_id: int, request: fastapi.Request) -> dict[str, bool]:
        _service(request).clear_events(tab_id)
        return {"cleared": True}

    @app.get("/api/tabs/{tab_id}/events/count")
    def get_event_count(tab_id: int, request: fastapi.Request) -> dict[str, int]:
        return {"count": _service(request).get_event_count(tab_id)}

    @app.get("/api/tabs/{tab_id}/domain")
    def get_tab_domain(tab_id: int, request: fastapi.Request) -> dict[str, str | None]:
        return {"domain": _service(request).get_tab_domain(tab_id)}

    @app.post("/api/tabs/{tab_id}/re-evaluate")
    def re_evaluate_tab_domain(tab_id: int, request: fastapi.Request) -> dict[str, bool]:
        return {"reEvaluated": _service(request).re_evaluate_tab_domain(tab_id)}

    @app.get("/api/tabs/{tab_id}/reloads")
    def get_reloads(tab_id: int, request: fastapi.Request) -> dict[str, list[int]]:
        return {"reloads": _service(request).get_reloads(tab_id)}

    @app.post("/api/tabs/{tab_id}/auto-allow")
    def auto_allow(tab_id: int, request: fastapi.Request) -> dict[str, Any]:
        result = _service(request).auto_allow(tab_id)
        if result is None:
            raise fastapi.HTTPException(status_code=404, detail="Tab has no domain")
        return result.model_dump(by_alias=True)

    @app.post("/api/messages")
    async def post_message(request: fastapi.Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        return {"result": messages.handle_message(_service(request), payload)}

    # ========================================================================
    # Host hook ingest
    # ========================================================================

    @app.post("/api/capture")
    def capture(body: CaptureRequestBody, request: fastapi.Request) -> dict[str, Any]:
        chunks = [body.body.encode("utf-8")] if body.body else None
        result = _service(request).handle_request(
            CapturedRequest(tab_id=body.tab_id, method=body.method, url=body.url, body=chunks)
        )
        if isinstance(result, Err):
            return {"captured": 0, "reason": result.kind}
        return {"captured": len(result.value)}

    @app.put("/api/tabs/{tab_id}")
    def update_tab(tab_id: int, body: TabUpdateBody, request: fastapi.Request) -> dict[str, Any]:
        svc = _service(request)
        svc.on_tab_updated(tab_id, body.url, status=body.status, url_changed=body.url_changed)
        state = svc.engine.get_state(tab_id)
        return {"domain": svc.get_tab_domain(tab_id), "isAllowed": bool(state and state.is_allowed)}

    @app.delete("/api/tabs/{tab_id}")
    def remove_tab(tab_id: int, request: fastapi.Request) -> dict[str, bool]:
        _service(request).on_tab_removed(tab_id)
        return {"removed": True}

    # ========================================================================
    # Configuration
    # ========================================================================

    @app.get("/api/config")
    def get_config(request: fastapi.Request) -> dict[str, Any]:
        return _service(request).config.snapshot().model_dump(by_alias=True)

    @app.post("/api/config/allowed-domains")
    def add_allowed_domain(body: AllowDomainBody, request: fastapi.Request) -> dict[str, Any]:
        store = _service(request).config
        store.add_allowed_domain(body.domain, body.allow_subdomains)
        return store.snapshot().model_dump(by_alias=True)

    @app.delete("/api/config/allowed-domains/{domain}")
    def remove_allowed_domain(domain: str, request: fastapi.Request) -> dict[str, Any]:
        store = _service(request).config
        store.remove_allowed_domain(domain)
        return store.snapshot().model_dump(by_alias=True)

    @app.post("/api/config/denied-domains")
    def add_denied_domain(body: DenyDomainBody, request: fastapi.Request) -> dict[str, Any]:
        store = _service(request).config
        store.add_denied_domain(body.domain)
        return store.snapshot().model_dump(by_alias=True)

    @app.delete("/api/config/denied-domains/{domain}")
    def remove_denied_domain(domain: str, request: fastapi.Request) -> dict[str, Any]:
        store = _service(request).config
        store.remove_denied_domain(domain)
        return store.snapshot().model_dump(by_alias=True)

    @app.put("/api/config/max-events")
    def set_max_events(body: MaxEventsBody, request: fastapi.Request) -> dict[str, int]:
        store = _service(request).config
        store.set_max_events(body.max_events)
        return {"maxEvents": store.max_events}

    @app.get("/api/storage")
    def storage_info(request: fastapi.Request) -> dict[str, Any]:
        return monitoring.storage_size_info(_service(request).storage).model_dump(by_alias=True)

    # ========================================================================
    # Notification stream
    # ========================================================================

    @app.get("/api/stream")
    async def stream(
        request: fastapi.Request,
        tab_id: int | None = fastapi.Query(None, alias="tabId", description="Only notifications for this tab"),
    ) -> responses.StreamingResponse:
        """Stream notifications via SSE."""
        svc = _service(request)
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Notification] = asyncio.Queue()

        def on_notification(message: Notification) -> None:
            if tab_id is None or message.tab_id == tab_id:
                loop.call_soon_threadsafe(queue.put_nowait, message)

        unsubscribe = svc.notifier.subscribe(on_notification)
        log.info("Stream client connected", {"tabId": tab_id})

        async def event_generator() -> AsyncGenerator[str]:
            try:
                while not await request.is_disconnected():
                    try:
                        message = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                    except TimeoutError:
                        yield sse_helpers.format_keepalive()
                        continue
                    yield sse_helpers.format_notification(message)
            finally:
                unsubscribe()
                log.info("Stream client disconnected", {"tabId": tab_id})

        return responses.StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
            },
        )

    return app


app = create_app()


def main() -> None:
    """Run the HTTP adapter with uvicorn."""
    settings = config.get_settings()
    logger.open_log_file()
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
