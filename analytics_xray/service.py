"""
Capture service: the orchestrator behind every adapter.

Wires the stateless capture stages (decode, parse, classify, normalise)
to the stateful components (policy engine, event store, reload tracker)
and exposes the consumer API.  No exception escapes
:meth:`CaptureService.handle_request` or the consumer methods; failures
are logged and surface as empty results.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence

from analytics_xray import config as xray_config
from analytics_xray.capture import decoder, normalizer, parser, providers
from analytics_xray.host.tabs import InMemoryTabDirectory, TabDirectory
from analytics_xray.models.policy import AutoAllowResult, PolicyConfig
from analytics_xray.models.results import Err, Ok, Result
from analytics_xray.models.segment import NormalizedEvent
from analytics_xray.notify import Notifier
from analytics_xray.policy.auto_allow import AllowDecision, AutoAllowPolicy
from analytics_xray.policy.config_store import ConfigStore
from analytics_xray.policy.engine import DomainPolicyEngine
from analytics_xray.store import cleanup, monitoring
from analytics_xray.store.event_store import BoundedEventStore
from analytics_xray.store.persistence import JsonFileStorage, StorageBackend, WriteBehindStorage
from analytics_xray.store.reloads import ReloadTracker
from analytics_xray.utils import errors, logger

log = logger.create_logger("Capture")

_REEVALUATE_STATUSES = frozenset({"loading", "complete"})


@dataclasses.dataclass(frozen=True)
class CapturedRequest:
    """One outgoing request observed by a host hook.

    Attributes:
        tab_id: Host tab id; negative ids are background requests.
        method: HTTP method.
        url: Full request URL.
        body: Ordered upload chunks, or ``None`` when there was none.
    """

    tab_id: int
    method: str
    url: str
    body: Sequence[object] | None = None


class CaptureService:
    """Owns the policy engine, event store and notifications."""

    def __init__(
        self,
        storage: StorageBackend,
        config: ConfigStore | None = None,
        tabs: TabDirectory | None = None,
        notifier: Notifier | None = None,
        reload_history_limit: int = 100,
        stale_tab_age_seconds: float = 24 * 60 * 60,
        auto_allow: AllowDecision | None = None,
    ) -> None:
        self.storage = storage
        self.config = config or ConfigStore()
        self.tabs: TabDirectory = tabs if tabs is not None else InMemoryTabDirectory()
        self.notifier = notifier or Notifier()
        self.stale_tab_age_seconds = stale_tab_age_seconds

        snapshot = self.config.snapshot()
        self.engine = DomainPolicyEngine(
            self.tabs,
            allowed_domains=snapshot.allowed_domains,
            denied_domains=snapshot.denied_domains,
            on_domain_changed=self.notifier.domain_changed,
        )
        self.store = BoundedEventStore(storage, max_events=snapshot.max_events)
        self.reloads = ReloadTracker(
            storage,
            history_limit=reload_history_limit,
            on_reload=self.notifier.reload_detected,
        )
        self.auto_allow_policy: AllowDecision = auto_allow or AutoAllowPolicy(self.config)
        self._unsubscribe_config = self.config.subscribe(self._on_config_changed)

    @classmethod
    def from_settings(cls, settings: xray_config.XraySettings | None = None) -> CaptureService:
        """Build a service backed by files under ``settings.storage_dir``.

        Raises:
            StorageUnavailableError: If the storage directory cannot
                be created.
        """
        settings = settings or xray_config.get_settings()
        backend = JsonFileStorage(settings.events_dir)
        storage = WriteBehindStorage(backend, on_error=lambda _exc: monitoring.log_storage_size(backend))
        config = ConfigStore.load(settings.config_path, default_max_events=settings.max_events)
        return cls(
            storage,
            config=config,
            reload_history_limit=settings.reload_history_limit,
            stale_tab_age_seconds=settings.stale_tab_age_seconds,
        )

    # ── Lifecycle ───────────────────────────────────────────────

    def boot(self) -> None:
        """Restore persisted events, purge stale tabs and evaluate open tabs."""
        log.start_timer("boot")
        self.store.restore_all()
        self.cleanup_stale_tabs()
        self.engine.re_evaluate_all()
        log.end_timer("boot", "Capture service ready")

    def cleanup_stale_tabs(self) -> int:
        return cleanup.cleanup_stale_tabs(self.store, self.stale_tab_age_seconds)

    def close(self) -> None:
        """Stop listening for config changes and drain pending writes."""
        self._unsubscribe_config()
        if isinstance(self.storage, WriteBehindStorage):
            self.storage.close()

    def _on_config_changed(self, previous: PolicyConfig, current: PolicyConfig) -> None:
        self.engine.on_allowlist_changed(current.allowed_domains, current.denied_domains)
        if current.max_events != previous.max_events:
            self.store.set_max_events(current.max_events)

    # ── Capture pipeline ────────────────────────────────────────

    def handle_request(self, request: CapturedRequest) -> Result[list[NormalizedEvent]]:
        """Run one intercepted request through the pipeline.

        Returns ``Ok(events)`` with the events appended for this
        request, or ``Err`` describing why it was dropped.
        """
        try:
            return self._handle_request(request)
        except errors.PersistenceError as exc:
            log.error("Failed to store events", {"tabId": request.tab_id, "key": exc.key, "error": exc.reason})
            return Err("persistence_error", exc.reason)
        except Exception as exc:
            log.error(
                "Unexpected error handling request",
                {"tabId": request.tab_id, "url": request.url, "error": errors.get_error_message(exc)},
            )
            return Err("internal_error", errors.get_error_message(exc))

    def _handle_request(self, request: CapturedRequest) -> Result[list[NormalizedEvent]]:
        if request.tab_id < 0:
            return Err("ignored", "background request")
        if not providers.matches_endpoint(request.url):
            return Err("ignored", "not an analytics endpoint")
        if not self.engine.is_allowed(request.tab_id):
            log.debug("Request blocked by domain policy", {"tabId": request.tab_id, "url": request.url})
            return Err("policy_denied")
        if request.method.upper() != "POST":
            return Err("ignored", f"method {request.method}")

        decoded = decoder.decode_request_body(request.body)
        if isinstance(decoded, Err):
            log.debug("Request has no body", {"tabId": request.tab_id, "url": request.url})
            return decoded

        parsed = parser.parse_segment_payload(decoded.value)
        if isinstance(parsed, Err):
            log.warn("Rejected payload", {"tabId": request.tab_id, "kind": parsed.kind, "detail": parsed.detail})
            return parsed

        provider = providers.detect_provider(request.url)
        events = normalizer.process_batch_payload(
            parsed.value, tab_id=request.tab_id, url=request.url, provider=provider
        )
        if not events:
            log.debug("Batch held no valid events", {"tabId": request.tab_id, "provider": provider})
            return Ok([])

        self.store.append(request.tab_id, events)
        log.info(
            "Captured events",
            {"tabId": request.tab_id, "provider": provider, "count": len(events), "names": [e.name for e in events][:5]},
        )
        self.notifier.events_captured(request.tab_id, events)
        return Ok(events)

    # ── Tab lifecycle ───────────────────────────────────────────

    def on_tab_updated(
        self,
        tab_id: int,
        url: str | None,
        status: str | None = None,
        url_changed: bool = False,
    ) -> None:
        """React to a host tab update (navigation or load state)."""
        if tab_id < 0 or not url:
            return
        if isinstance(self.tabs, InMemoryTabDirectory):
            self.tabs.set_url(tab_id, url)
        if url_changed or status in _REEVALUATE_STATUSES:
            self.engine.evaluate(tab_id, url)
        if status == "loading":
            self.reloads.on_loading(tab_id, url)

    def on_tab_removed(self, tab_id: int) -> None:
        """Drop all state for a closed tab."""
        if isinstance(self.tabs, InMemoryTabDirectory):
            self.tabs.remove(tab_id)
        self.engine.forget_tab(tab_id)
        self.reloads.forget_tab(tab_id)
        self.store.clear(tab_id)

    # ── Consumer API ────────────────────────────────────────────

    def get_events(self, tab_id: int) -> list[NormalizedEvent]:
        try:
            return self.store.get(tab_id)
        except Exception as exc:
            log.error("Failed to get events", {"tabId": tab_id, "error": errors.get_error_message(exc)})
            return []

    def clear_events(self, tab_id: int) -> None:
        try:
            self.store.clear(tab_id)
        except Exception as exc:
            log.error("Failed to clear events", {"tabId": tab_id, "error": errors.get_error_message(exc)})

    def get_event_count(self, tab_id: int) -> int:
        return self.store.count(tab_id)

    def get_tab_domain(self, tab_id: int) -> str | None:
        return self.engine.get_tab_domain(tab_id)

    def re_evaluate_tab_domain(self, tab_id: int) -> bool:
        try:
            return self.engine.re_evaluate_tab(tab_id)
        except Exception as exc:
            log.error("Failed to re-evaluate tab", {"tabId": tab_id, "error": errors.get_error_message(exc)})
            return False

    def get_reloads(self, tab_id: int) -> list[int]:
        return self.reloads.get_reloads(tab_id)

    def auto_allow(self, tab_id: int) -> AutoAllowResult | None:
        """Apply the auto-allow policy to the tab's current domain.

        Returns ``None`` when the tab has no domain.
        """
        domain = self.get_tab_domain(tab_id)
        if not domain:
            return None
        result = self.auto_allow_policy.apply(domain)
        log.info("Auto-allow applied", {"tabId": tab_id, "domain": domain, "action": result.action})
        return result
