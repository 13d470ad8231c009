"""
Live capture configuration: allowlist, denylist and event limit.

The store owns the configuration and persists it as JSON.  Components
that depend on it subscribe and receive ``(previous, current)``
snapshots after every mutation; they never read the store from inside
their own hot paths.
"""

from __future__ import annotations

import pathlib
import threading
from collections.abc import Callable

import pydantic

from analytics_xray.models.policy import AllowlistEntry, PolicyConfig, clamp_max_events
from analytics_xray.utils import logger
from analytics_xray.utils.url import get_base_domain, normalize_domain

log = logger.create_logger("ConfigStore")

ConfigListener = Callable[[PolicyConfig, PolicyConfig], None]


class ConfigStore:
    """Mutable owner of :class:`PolicyConfig` with change listeners."""

    def __init__(self, path: pathlib.Path | None = None, initial: PolicyConfig | None = None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._config = initial.model_copy(deep=True) if initial else PolicyConfig()
        self._listeners: list[ConfigListener] = []

    # ── Persistence ─────────────────────────────────────────────

    @classmethod
    def load(cls, path: pathlib.Path, default_max_events: int | None = None) -> ConfigStore:
        """Load configuration from *path*.

        A missing or malformed file yields the defaults (with
        *default_max_events* applied when given).
        """
        initial = PolicyConfig()
        if default_max_events is not None:
            initial.max_events = clamp_max_events(default_max_events)

        if path.exists():
            try:
                initial = PolicyConfig.model_validate_json(path.read_text(encoding="utf-8"))
                log.info(
                    "Configuration loaded",
                    {"allowed": len(initial.allowed_domains), "denied": len(initial.denied_domains), "maxEvents": initial.max_events},
                )
            except (OSError, pydantic.ValidationError) as exc:
                log.warn("Failed to read configuration, using defaults", {"path": str(path), "error": str(exc)})
        return cls(path=path, initial=initial)

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(self._config.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        except OSError as exc:
            log.error("Failed to persist configuration", {"path": str(self._path), "error": str(exc)})

    # ── Reads ───────────────────────────────────────────────────

    def snapshot(self) -> PolicyConfig:
        with self._lock:
            return self._config.model_copy(deep=True)

    @property
    def allowed_domains(self) -> list[AllowlistEntry]:
        with self._lock:
            return list(self._config.allowed_domains)

    @property
    def denied_domains(self) -> list[str]:
        with self._lock:
            return list(self._config.denied_domains)

    @property
    def max_events(self) -> int:
        with self._lock:
            return self._config.max_events

    # ── Subscription ────────────────────────────────────────────

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _update(self, mutate: Callable[[PolicyConfig], None]) -> None:
        with self._lock:
            previous = self._config.model_copy(deep=True)
            current = self._config.model_copy(deep=True)
            mutate(current)
            if current == previous:
                return
            self._config = current
            self._save()
            listeners = list(self._listeners)
            snapshot = current.model_copy(deep=True)

        for listener in listeners:
            listener(previous, snapshot)

    # ── Allowlist ───────────────────────────────────────────────

    def add_allowed_domain(self, domain: str, allow_subdomains: bool) -> None:
        """Add or update an allowlist entry.

        The domain is lowercased, ``www.`` is stripped, and when
        subdomains are allowed it is reduced to its base domain.
        """
        normalized = normalize_domain(domain)
        if not normalized:
            return
        if allow_subdomains:
            normalized = get_base_domain(normalized)

        def mutate(config: PolicyConfig) -> None:
            entry = AllowlistEntry(domain=normalized, allow_subdomains=allow_subdomains)
            for i, existing in enumerate(config.allowed_domains):
                if normalize_domain(existing.domain) == normalized:
                    config.allowed_domains[i] = entry
                    return
            config.allowed_domains.append(entry)

        self._update(mutate)
        log.info("Allowed domain saved", {"domain": normalized, "allowSubdomains": allow_subdomains})

    def remove_allowed_domain(self, domain: str) -> None:
        normalized = normalize_domain(domain)

        def mutate(config: PolicyConfig) -> None:
            config.allowed_domains = [
                e for e in config.allowed_domains
                if e.domain != domain and normalize_domain(e.domain) != normalized
            ]

        self._update(mutate)

    def clear_allowed_domains(self) -> None:
        def mutate(config: PolicyConfig) -> None:
            config.allowed_domains = []

        self._update(mutate)

    def update_subdomain_setting(self, domain: str, allow_subdomains: bool) -> None:
        """Toggle ``allow_subdomains`` on an existing entry; no-op if absent."""

        def mutate(config: PolicyConfig) -> None:
            for i, existing in enumerate(config.allowed_domains):
                if existing.domain == domain:
                    config.allowed_domains[i] = AllowlistEntry(domain=existing.domain, allow_subdomains=allow_subdomains)
                    return

        self._update(mutate)

    # ── Denylist ────────────────────────────────────────────────

    def add_denied_domain(self, domain: str) -> None:
        normalized = normalize_domain(domain)
        if not normalized:
            return

        def mutate(config: PolicyConfig) -> None:
            if normalized not in config.denied_domains:
                config.denied_domains.append(normalized)

        self._update(mutate)
        log.info("Denied domain saved", {"domain": normalized})

    def remove_denied_domain(self, domain: str) -> None:
        normalized = normalize_domain(domain)

        def mutate(config: PolicyConfig) -> None:
            config.denied_domains = [d for d in config.denied_domains if normalize_domain(d) != normalized]

        self._update(mutate)

    # ── Limits ──────────────────────────────────────────────────

    def set_max_events(self, value: int) -> None:
        """Set the per-tab event limit, clamped to the supported range."""
        clamped = clamp_max_events(value)

        def mutate(config: PolicyConfig) -> None:
            config.max_events = clamped

        self._update(mutate)
