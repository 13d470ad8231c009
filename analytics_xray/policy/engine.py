"""
Per-tab domain policy.

Tracks, for every tab, the origin it currently shows and whether
capture is allowed there.  Capture is closed by default: a tab the
engine has never evaluated is treated as not allowed.

State only changes through :meth:`DomainPolicyEngine.evaluate`, which
the host calls on navigation and the engine itself calls for every
open tab when the allowlist or denylist changes.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence

from analytics_xray.host.tabs import TabDirectory
from analytics_xray.models.policy import AllowlistEntry, TabDomainState
from analytics_xray.policy import domains
from analytics_xray.utils import logger
from analytics_xray.utils.url import extract_domain

log = logger.create_logger("Policy")

DomainChangedCallback = Callable[[int, str | None], None]


class DomainPolicyEngine:
    """Owns the ``tab_id -> TabDomainState`` map and the policy gate."""

    def __init__(
        self,
        tabs: TabDirectory,
        allowed_domains: Sequence[AllowlistEntry] = (),
        denied_domains: Sequence[str] = (),
        on_domain_changed: DomainChangedCallback | None = None,
    ) -> None:
        self._tabs = tabs
        self._allowed: list[AllowlistEntry] = list(allowed_domains)
        self._denied: list[str] = list(denied_domains)
        self._on_domain_changed = on_domain_changed
        self._lock = threading.RLock()
        self._states: dict[int, TabDomainState] = {}
        self._last_domains: dict[int, str] = {}

    # ── Queries ─────────────────────────────────────────────────

    def get_state(self, tab_id: int) -> TabDomainState | None:
        with self._lock:
            return self._states.get(tab_id)

    def is_allowed(self, tab_id: int) -> bool:
        """Policy gate: True only for evaluated tabs on an allowed origin."""
        state = self.get_state(tab_id)
        return state is not None and state.is_allowed

    def get_tab_domain(self, tab_id: int) -> str | None:
        """Return the tab's recorded origin, falling back to its live URL.

        Special pages and unknown tabs yield ``None``.
        """
        state = self.get_state(tab_id)
        if state is not None:
            return state.domain or None
        url = self._tabs.get_tab_url(tab_id)
        if url:
            return extract_domain(url)
        return None

    @property
    def allowed_domains(self) -> list[AllowlistEntry]:
        with self._lock:
            return list(self._allowed)

    @property
    def denied_domains(self) -> list[str]:
        with self._lock:
            return list(self._denied)

    # ── Evaluation ──────────────────────────────────────────────

    def evaluate(self, tab_id: int, url: str) -> TabDomainState:
        """Resolve the origin of *url* and record the tab's policy state.

        Always overwrites the previous state.  A ``DomainChanged``
        notification is emitted only when the resolved origin differs
        from the one recorded for the tab.
        """
        domain = extract_domain(url) or ""
        with self._lock:
            previous = self._last_domains.get(tab_id)
            if domain:
                allowed = domains.is_domain_allowed(domain, self._allowed) and not domains.is_domain_denied(
                    domain, self._denied
                )
            else:
                allowed = False
            state = TabDomainState(domain=domain, is_allowed=allowed)
            self._states[tab_id] = state
            self._last_domains[tab_id] = domain

        log.debug("Updated tab domain", {"tabId": tab_id, "domain": domain, "allowed": allowed})
        if domain and not allowed:
            log.debug(
                "Domain not allowed",
                {"domain": domain, "allowed": [e.domain for e in self._allowed], "denied": self._denied},
            )

        if domain and previous != domain:
            self._emit(tab_id, domain)
        elif not domain and previous:
            self._emit(tab_id, None)
        return state

    def re_evaluate_tab(self, tab_id: int) -> bool:
        """Evaluate *tab_id* against its current URL.

        Returns False when the tab is not open or has no URL.
        """
        url = self._tabs.get_tab_url(tab_id)
        if not url:
            log.warn("Tab has no URL, cannot re-evaluate", {"tabId": tab_id})
            return False
        state = self.evaluate(tab_id, url)
        log.info("Re-evaluated tab", {"tabId": tab_id, "domain": state.domain, "allowed": state.is_allowed})
        return True

    def re_evaluate_all(self) -> int:
        """Evaluate every open tab; returns the number evaluated."""
        tabs = self._tabs.list_tabs()
        for tab_id, url in tabs:
            if url:
                self.evaluate(tab_id, url)
        log.info("Re-evaluated all tabs", {"tabs": len(tabs)})
        return len(tabs)

    def on_allowlist_changed(
        self,
        allowed_domains: Sequence[AllowlistEntry],
        denied_domains: Sequence[str] | None = None,
    ) -> bool:
        """Apply a new allowlist (and optionally denylist).

        Re-evaluates all open tabs only when the lists actually differ
        from the last ones seen.  Returns whether a sweep ran.
        """
        with self._lock:
            changed = domains.allowlist_changed(self._allowed, allowed_domains)
            if denied_domains is not None:
                new_denied = list(denied_domains)
                changed = changed or set(new_denied) != set(self._denied)
                self._denied = new_denied
            self._allowed = list(allowed_domains)

        if not changed:
            return False
        log.info(
            "Domain policy changed, re-evaluating tabs",
            {"allowed": len(self._allowed), "denied": len(self._denied)},
        )
        self.re_evaluate_all()
        return True

    def forget_tab(self, tab_id: int) -> None:
        """Drop all policy state for a closed tab."""
        with self._lock:
            self._states.pop(tab_id, None)
            self._last_domains.pop(tab_id, None)

    def _emit(self, tab_id: int, domain: str | None) -> None:
        if self._on_domain_changed is None:
            return
        self._on_domain_changed(tab_id, domain)
