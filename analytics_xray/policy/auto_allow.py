"""
Automatic allowlisting of visited domains.

This is a product policy, not part of the capture gate: a host calls
:meth:`AutoAllowPolicy.apply` when the user opens the inspector on a
tab, and the resulting configuration change flows back to the policy
engine through the normal :class:`ConfigStore` subscription.
"""

from __future__ import annotations

from typing import Protocol

from analytics_xray.models.policy import AutoAllowAction, AutoAllowResult
from analytics_xray.policy import domains
from analytics_xray.policy.config_store import ConfigStore
from analytics_xray.utils import logger
from analytics_xray.utils.url import get_base_domain, normalize_domain

log = logger.create_logger("AutoAllow")


class AllowDecision(Protocol):
    """Pluggable decision invoked when a domain should be allowed."""

    def apply(self, domain: str) -> AutoAllowResult: ...


class AutoAllowPolicy:
    """Add the visited domain (or its base domain) to the allowlist.

    - already allowed → ``already_allowed``
    - denied → ``no_action``; an explicit deny always wins
    - nothing related listed → ``added``; a subdomain adds its base
      domain with subdomains enabled
    - base domain listed without subdomains while visiting a
      subdomain → ``updated`` to allow subdomains
    - anything else → ``no_action``
    """

    def __init__(self, config: ConfigStore) -> None:
        self._config = config

    def apply(self, domain: str) -> AutoAllowResult:
        normalized = normalize_domain(domain)
        entries = self._config.allowed_domains

        if domains.is_domain_allowed(normalized, entries):
            return AutoAllowResult(
                action="already_allowed",
                domain=normalized,
                allow_subdomains=False,
                was_allowed=True,
                is_allowed=True,
            )

        if not normalized or domains.is_domain_denied(normalized, self._config.denied_domains):
            log.debug("Not auto-allowing denied domain", {"domain": normalized})
            return AutoAllowResult(
                action="no_action", domain=normalized, allow_subdomains=False, was_allowed=False, is_allowed=False
            )

        base = get_base_domain(normalized)
        is_subdomain = normalized != base

        parent = domains.find_subdomain_parent(normalized, entries)
        if parent is not None:
            self._config.add_allowed_domain(base, True)
            log.info("Enabled subdomains for allowed base domain", {"domain": base, "visited": normalized})
            return self._result("updated", base, True, normalized)

        existing = next(
            (
                e for e in entries
                if normalize_domain(e.domain) == normalized
                or (e.allow_subdomains and get_base_domain(e.domain) == base)
            ),
            None,
        )
        if existing is None:
            target = base if is_subdomain else normalized
            self._config.add_allowed_domain(target, is_subdomain)
            log.info("Auto-allowed domain", {"domain": target, "allowSubdomains": is_subdomain})
            return self._result("added", target, is_subdomain, normalized)

        return AutoAllowResult(
            action="no_action",
            domain=normalized,
            allow_subdomains=existing.allow_subdomains,
            was_allowed=False,
            is_allowed=False,
        )

    def _result(self, action: AutoAllowAction, target: str, allow_subdomains: bool, visited: str) -> AutoAllowResult:
        return AutoAllowResult(
            action=action,
            domain=target,
            allow_subdomains=allow_subdomains,
            was_allowed=False,
            is_allowed=domains.is_domain_allowed(visited, self._config.allowed_domains),
        )
