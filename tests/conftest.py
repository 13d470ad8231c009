"""Shared fixtures for the test suite."""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

import pytest

from analytics_xray.host.tabs import InMemoryTabDirectory
from analytics_xray.models.segment import NormalizedEvent
from analytics_xray.policy.config_store import ConfigStore
from analytics_xray.service import CapturedRequest, CaptureService
from analytics_xray.store.persistence import MemoryStorage

SEGMENT_BATCH_URL = "https://api.segment.io/v1/batch"

# ── Payload Factories ───────────────────────────────────────────


@pytest.fixture()
def signed_up_body() -> bytes:
    """A one-event Segment batch as sent by analytics.js."""
    return json.dumps(
        {
            "batch": [
                {
                    "type": "track",
                    "event": "Signed Up",
                    "messageId": "m1",
                    "timestamp": "2024-01-01T00:00:00.000Z",
                    "properties": {"plan": "pro"},
                    "context": {"library": {"name": "analytics.js", "version": "4.1.0"}},
                }
            ],
            "sentAt": "2024-01-01T00:00:01.000Z",
            "writeKey": "wk_123",
        }
    ).encode("utf-8")


def make_event(
    message_id: str = "m1",
    *,
    tab_id: int = 1,
    name: str = "Signed Up",
    event_type: str = "track",
    captured_at: int = 1_700_000_000_000,
) -> NormalizedEvent:
    """Build a normalised event directly."""
    raw: dict[str, Any] = {"type": event_type, "messageId": message_id}
    return NormalizedEvent(
        id=message_id,
        message_id=message_id,
        type=event_type,
        name=name,
        timestamp="2024-01-01T00:00:00.000Z",
        sent_at="2024-01-01T00:00:01.000Z",
        tab_id=tab_id,
        url=SEGMENT_BATCH_URL,
        provider="segment",
        captured_at=captured_at,
        raw_payload=raw,
    )


@pytest.fixture()
def event_factory():
    """Factory for :class:`NormalizedEvent` instances."""
    return make_event


# ── Service ─────────────────────────────────────────────────────


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def tabs() -> InMemoryTabDirectory:
    return InMemoryTabDirectory()


@pytest.fixture()
def service(storage: MemoryStorage, tabs: InMemoryTabDirectory) -> Iterator[CaptureService]:
    """Service with in-memory storage and no persisted config."""
    svc = CaptureService(storage, config=ConfigStore(), tabs=tabs)
    yield svc
    svc.close()


@pytest.fixture()
def capture_request(signed_up_body: bytes):
    """Factory for captured Segment requests carrying the sample body."""

    def _make(tab_id: int = 1, method: str = "POST", url: str = SEGMENT_BATCH_URL, body=None):
        chunks = [body if body is not None else signed_up_body]
        return CapturedRequest(tab_id=tab_id, method=method, url=url, body=chunks)

    return _make
