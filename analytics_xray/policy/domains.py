"""
Allowlist and denylist matching.

Every comparison strips a leading ``www.`` and is case-insensitive, so
``www.example.com`` and ``example.com`` are the same origin.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from analytics_xray.models.policy import AllowlistEntry
from analytics_xray.utils.url import get_base_domain, normalize_domain


def matches_domain(domain: str, allowed_domain: str, allow_subdomains: bool) -> bool:
    """Check *domain* against one allowlist entry.

    Matches on equality, or on a ``.allowed_domain`` suffix when the
    entry allows subdomains.

    >>> matches_domain("app.example.com", "example.com", True)
    True
    >>> matches_domain("app.example.com", "example.com", False)
    False
    """
    candidate = normalize_domain(domain)
    allowed = normalize_domain(allowed_domain)
    if not candidate or not allowed:
        return False
    if candidate == allowed:
        return True
    return allow_subdomains and candidate.endswith(f".{allowed}")


def is_domain_allowed(domain: str, entries: Iterable[AllowlistEntry]) -> bool:
    """Return True when any allowlist entry matches *domain*."""
    if not domain:
        return False
    return any(matches_domain(domain, e.domain, e.allow_subdomains) for e in entries)


def is_domain_denied(domain: str, denied: Iterable[str]) -> bool:
    """Return True when *domain* is on the denylist (exact, ``www.``-insensitive)."""
    if not domain:
        return False
    candidate = normalize_domain(domain)
    return any(candidate == normalize_domain(d) for d in denied)


def find_subdomain_parent(domain: str, entries: Iterable[AllowlistEntry]) -> AllowlistEntry | None:
    """Find an entry for the base domain of *domain* that does not allow subdomains.

    Used to offer "also allow subdomains" when a user lands on
    ``app.example.com`` while only ``example.com`` is allowed.
    Returns ``None`` when *domain* is itself a base domain.
    """
    if not domain:
        return None
    candidate = normalize_domain(domain)
    base = get_base_domain(candidate)
    if candidate == base:
        return None
    for entry in entries:
        if entry.allow_subdomains:
            continue
        allowed = normalize_domain(entry.domain)
        if allowed == base and candidate.endswith(f".{allowed}"):
            return entry
    return None


def allowlist_changed(
    previous: Sequence[AllowlistEntry],
    current: Sequence[AllowlistEntry],
) -> bool:
    """Diff two allowlists by position on ``domain`` and ``allow_subdomains``."""
    if len(previous) != len(current):
        return True
    return any(
        old.domain != new.domain or old.allow_subdomains != new.allow_subdomains
        for old, new in zip(previous, current, strict=True)
    )
