"""Shared serialization helpers.

Provides the ``snake_to_camel`` alias generator used by every
wire-facing Pydantic model, plus the timestamp helpers the pipeline
uses for ``sentAt``, ``timestamp`` and ``capturedAt`` values.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime


def snake_to_camel(name: str) -> str:
    """Convert a snake_case string to camelCase.

    Args:
        name: A snake_case identifier such as
            ``"message_id"``.

    Returns:
        The camelCase equivalent, e.g. ``"messageId"``.
    """
    parts = name.split("_")
    return parts[0] + "".join(w.capitalize() for w in parts[1:])


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``.

    Returns ``None`` when *value* is not a parseable instant.
    """
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None
