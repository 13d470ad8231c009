"""
Known analytics provider endpoints.

Classification runs on the lowercased request hostname so that a
provider name appearing in a query string or path never matches.
"""

from __future__ import annotations

import re
from urllib import parse

from analytics_xray.models.segment import Provider

# Endpoint patterns the host hook should be filtered to.
SEGMENT_ENDPOINTS: tuple[str, ...] = (
    "*://api.segment.io/*",
    "*://api.segment.com/*",
    "*://*.rudderstack.com/*",
    "*://tracking.dreamdata.cloud/*",
)

# Ordered (host fragment, provider) table; first match wins.
_PROVIDER_HOSTS: tuple[tuple[str, Provider], ...] = (
    ("segment.io", "segment"),
    ("segment.com", "segment"),
    ("rudderstack.com", "rudderstack"),
    ("dreamdata.cloud", "dreamdata"),
)


def _pattern_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a ``scheme://host/path`` match pattern with ``*`` wildcards."""
    scheme, _, rest = pattern.partition("://")
    host, _, path = rest.partition("/")
    scheme_re = r"https?" if scheme == "*" else re.escape(scheme)
    if host.startswith("*."):
        host_re = r"(?:[^/:]+\.)?" + re.escape(host[2:])
    else:
        host_re = re.escape(host)
    path_re = ".*".join(re.escape(p) for p in ("/" + path).split("*"))
    return re.compile(rf"^{scheme_re}://{host_re}(?::\d+)?{path_re}$", re.I)


_ENDPOINT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(_pattern_to_regex(p) for p in SEGMENT_ENDPOINTS)


def _hostname(url: str) -> str:
    try:
        return (parse.urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def detect_provider(url: str) -> Provider:
    """Map a request URL to the analytics provider it targets.

    >>> detect_provider("https://api.segment.io/v1/batch")
    'segment'
    >>> detect_provider("https://google.com")
    'unknown'
    """
    host = _hostname(url)
    if not host:
        return "unknown"
    for fragment, provider in _PROVIDER_HOSTS:
        if fragment in host:
            return provider
    return "unknown"


def matches_endpoint(url: str) -> bool:
    """Return True when *url* matches one of :data:`SEGMENT_ENDPOINTS`."""
    return any(p.match(url) for p in _ENDPOINT_PATTERNS)
