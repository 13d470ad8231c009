"""
Server-Sent Events formatting for push notifications.

Pure functions with no side-effects.
"""

from __future__ import annotations

import json
from typing import Any

from analytics_xray.models.messages import Notification

# Event names on the stream, keyed by notification type.
_EVENT_NAMES = {
    "EVENTS_CAPTURED": "eventsCaptured",
    "DOMAIN_CHANGED": "domainChanged",
    "RELOAD_DETECTED": "reloadDetected",
}


def format_sse_event(event_type: str, data: dict[str, Any]) -> str:
    """Format a Server-Sent Event string."""
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


def format_keepalive() -> str:
    """SSE comment line that keeps idle connections open."""
    return ": keepalive\n\n"


def serialize_notification(message: Notification) -> dict[str, Any]:
    """Serialise a notification to a camelCase dict for SSE transport."""
    return message.model_dump(mode="json", by_alias=True, exclude_none=False)


def format_notification(message: Notification) -> str:
    """Format a notification as an SSE event named after its type."""
    return format_sse_event(_EVENT_NAMES[message.type], serialize_notification(message))
