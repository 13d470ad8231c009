"""Tests for analytics_xray.sse_helpers — SSE formatting utilities."""

from __future__ import annotations

import json

from analytics_xray.models.messages import DomainChangedMessage, EventsCapturedMessage, ReloadDetectedMessage
from analytics_xray.sse_helpers import format_keepalive, format_notification, format_sse_event


def _payload(event: str) -> dict:
    return json.loads(event.split("\n")[1][len("data: ") :])


class TestFormatSseEvent:
    def test_basic_event(self) -> None:
        result = format_sse_event("domainChanged", {"tabId": 1})
        assert result.startswith("event: domainChanged\n")
        assert result.endswith("\n\n")
        assert _payload(result) == {"tabId": 1}

    def test_keepalive_is_comment(self) -> None:
        assert format_keepalive().startswith(":")


class TestFormatNotification:
    def test_domain_changed(self) -> None:
        result = format_notification(DomainChangedMessage(tab_id=3, domain=None))
        assert result.startswith("event: domainChanged\n")
        assert _payload(result) == {"tabId": 3, "type": "DOMAIN_CHANGED", "domain": None}

    def test_reload_detected(self) -> None:
        result = format_notification(ReloadDetectedMessage(tab_id=1, timestamp=99))
        assert result.startswith("event: reloadDetected\n")
        assert _payload(result)["timestamp"] == 99

    def test_events_captured_uses_camel_case(self, event_factory) -> None:
        result = format_notification(EventsCapturedMessage(tab_id=1, events=[event_factory("m1")]))
        payload = _payload(result)
        assert payload["type"] == "EVENTS_CAPTURED"
        assert payload["events"][0]["messageId"] == "m1"
        assert payload["events"][0]["capturedAt"] == 1_700_000_000_000
