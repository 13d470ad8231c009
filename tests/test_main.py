"""Tests for analytics_xray.main — the HTTP adapter."""

from __future__ import annotations

import json
import pathlib
from collections.abc import Iterator

import pytest
from fastapi import testclient

from analytics_xray import main
from analytics_xray.config import XraySettings
from analytics_xray.service import CaptureService

SEGMENT_URL = "https://api.segment.io/v1/batch"


@pytest.fixture()
def client(service: CaptureService, tmp_path: pathlib.Path) -> Iterator[testclient.TestClient]:
    app = main.create_app(service=service, settings=XraySettings(XRAY_STORAGE_DIR=tmp_path))
    with testclient.TestClient(app) as test_client:
        yield test_client


def _body() -> str:
    return json.dumps({"batch": [{"type": "track", "event": "Signed Up", "messageId": "m1"}]})


class TestConsumerApi:
    def test_capture_flow(self, client: testclient.TestClient) -> None:
        client.post("/api/config/allowed-domains", json={"domain": "example.com"})
        client.put("/api/tabs/1", json={"url": "https://example.com/", "status": "complete"})

        response = client.post("/api/capture", json={"tabId": 1, "url": SEGMENT_URL, "body": _body()})
        assert response.json() == {"captured": 1}

        events = client.get("/api/tabs/1/events").json()
        assert events[0]["name"] == "Signed Up"
        assert events[0]["provider"] == "segment"
        assert client.get("/api/tabs/1/events/count").json() == {"count": 1}
        assert client.get("/api/tabs/1/domain").json() == {"domain": "example.com"}

        client.delete("/api/tabs/1/events")
        assert client.get("/api/tabs/1/events/count").json() == {"count": 0}

    def test_capture_rejected_for_unknown_tab(self, client: testclient.TestClient) -> None:
        response = client.post("/api/capture", json={"tabId": 9, "url": SEGMENT_URL, "body": _body()})
        assert response.json() == {"captured": 0, "reason": "policy_denied"}

    def test_update_tab_reports_policy(self, client: testclient.TestClient) -> None:
        response = client.put("/api/tabs/2", json={"url": "https://other.com/", "status": "complete"})
        assert response.json() == {"domain": "other.com", "isAllowed": False}

    def test_re_evaluate(self, client: testclient.TestClient) -> None:
        assert client.post("/api/tabs/4/re-evaluate").json() == {"reEvaluated": False}

    def test_remove_tab(self, client: testclient.TestClient) -> None:
        client.put("/api/tabs/2", json={"url": "https://other.com/", "status": "complete"})
        assert client.delete("/api/tabs/2").json() == {"removed": True}
        assert client.get("/api/tabs/2/domain").json() == {"domain": None}

    def test_messages_endpoint(self, client: testclient.TestClient) -> None:
        ok = client.post("/api/messages", json={"type": "GET_EVENT_COUNT", "tabId": 1})
        assert ok.json() == {"result": 0}
        bad = client.post("/api/messages", json={"type": "NOPE"})
        assert bad.json() == {"result": None}

    def test_auto_allow(self, client: testclient.TestClient) -> None:
        client.put("/api/tabs/1", json={"url": "https://app.example.com/", "status": "complete"})
        result = client.post("/api/tabs/1/auto-allow").json()
        assert result["action"] == "added"
        assert result["allowSubdomains"] is True
        assert client.post("/api/tabs/99/auto-allow").status_code == 404


class TestConfigApi:
    def test_allow_deny_and_limits(self, client: testclient.TestClient) -> None:
        config = client.post("/api/config/allowed-domains", json={"domain": "www.example.com"}).json()
        assert config["allowedDomains"] == [{"domain": "example.com", "allowSubdomains": False}]

        config = client.post("/api/config/denied-domains", json={"domain": "bad.com"}).json()
        assert config["deniedDomains"] == ["bad.com"]

        config = client.delete("/api/config/denied-domains/bad.com").json()
        assert config["deniedDomains"] == []

        config = client.delete("/api/config/allowed-domains/example.com").json()
        assert config["allowedDomains"] == []

        assert client.put("/api/config/max-events", json={"maxEvents": 0}).json() == {"maxEvents": 1}
        assert client.get("/api/config").json()["maxEvents"] == 1

    def test_storage_info(self, client: testclient.TestClient) -> None:
        info = client.get("/api/storage").json()
        assert info["totalBytes"] == 0
        assert info["nearLimit"] is False
