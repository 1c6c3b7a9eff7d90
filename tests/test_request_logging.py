from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient


class _Collect(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.events: list[dict] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.events.append(json.loads(record.getMessage()))


@pytest.fixture
def http_log():
    handler = _Collect()
    logger = logging.getLogger("launchpad.http")
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, executor):
    monkeypatch.setenv("LAUNCHPAD_MODE", "dev")
    monkeypatch.setenv("LAUNCHPAD_RL_DISABLE", "1")

    from launchpad.api.app import create_app

    app = create_app(boot_runtime=False)
    app.state.executor = executor
    with TestClient(app) as c:
        yield c


def test_route_is_the_full_path_template(client, http_log, addrs) -> None:
    client.get(f"/v1/tokens/{addrs.carol}")
    client.post("/v1/factory/withdraw", json={})

    routes = [(e["route"], e["status"]) for e in http_log.events if e["event"] == "http_request"]
    assert routes == [("/v1/tokens/{address}", 404), ("/v1/factory/withdraw", 422)]


def test_request_id_is_echoed_and_logged(client, http_log) -> None:
    r = client.get("/v1/factory", headers={"x-request-id": "abc123"})
    assert r.headers["x-request-id"] == "abc123"
    assert http_log.events[-1]["request_id"] == "abc123"
    assert http_log.events[-1]["route"] == "/v1/factory"


def test_unmatched_paths_log_the_raw_path(client, http_log) -> None:
    client.get("/v1/nope")
    assert http_log.events[-1]["route"] == "/v1/nope"
    assert http_log.events[-1]["status"] == 404


def test_health_polls_are_not_logged_by_default(client, http_log) -> None:
    client.get("/v1/health")
    assert http_log.events == []
