"""
URL and domain utility functions for tab origin tracking.
"""

from __future__ import annotations

import re
from urllib import parse

_TWO_PART_TLDS = frozenset([
    "co.uk", "com.au", "co.nz", "co.jp", "com.br",
    "co.in", "org.uk", "net.uk", "gov.uk",
])

# Browser-internal schemes that never carry a trackable origin.
_SPECIAL_SCHEMES = frozenset(["chrome", "chrome-extension", "about", "moz-extension"])


def _parse(url: str) -> parse.ParseResult | None:
    try:
        return parse.urlparse(url)
    except ValueError:
        return None


def is_special_page(url: str) -> bool:
    """Return True for browser-internal pages (``chrome://``, ``about:`` ...)."""
    parsed = _parse(url)
    if parsed is None:
        return False
    return parsed.scheme.lower() in _SPECIAL_SCHEMES


def extract_domain(url: str) -> str | None:
    """Extract the hostname (port stripped, lowercased) from a URL.

    Returns ``None`` for invalid URLs and special pages such as
    ``chrome://settings`` or ``about:blank``.
    """
    parsed = _parse(url)
    if parsed is None or parsed.scheme.lower() in _SPECIAL_SCHEMES:
        return None
    try:
        return parsed.hostname or None
    except ValueError:
        return None


def normalize_domain(domain: str) -> str:
    """Lowercase *domain* and strip a leading ``www.``."""
    clean = domain.strip().lower()
    return clean.removeprefix("www.")


def get_base_domain(domain: str) -> str:
    """Extract the registrable base domain from a full hostname.

    Handles common multi-part TLDs (e.g. ``co.uk``,
    ``com.au``) and strips a leading ``www.`` prefix.

    Args:
        domain: A hostname like ``"app.example.co.uk"``.

    Returns:
        The base domain, e.g. ``"example.co.uk"``.
    """
    clean = normalize_domain(domain)
    parts = clean.split(".")
    if len(parts) >= 2:
        last_two = ".".join(parts[-2:])
        if last_two in _TWO_PART_TLDS and len(parts) >= 3:
            return ".".join(parts[-3:])
        return last_two
    return clean


def normalize_page_url(url: str) -> str:
    """Normalise a page URL for reload comparison.

    Drops a trailing slash from non-root paths and keeps the query
    string and fragment.  Unparseable input is returned unchanged.
    """
    parsed = _parse(url)
    if parsed is None or not parsed.scheme or not parsed.netloc:
        return url
    path = parsed.path
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    normalized = f"{parsed.scheme}://{parsed.netloc}{path}"
    if parsed.query:
        normalized += f"?{parsed.query}"
    if parsed.fragment:
        normalized += f"#{parsed.fragment}"
    return normalized


_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]")


def safe_key(name: str) -> str:
    """Reduce a storage key to characters safe for a file name."""
    return _SAFE_KEY_RE.sub("_", name)[:100]
