"""Tests for the AccessLogMiddleware."""

import logging

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from pushpilot.middleware import RequestIDMiddleware
from pushpilot.middleware.access_log import AccessLogMiddleware, scope_client_key


@pytest.fixture()
def test_app() -> FastAPI:
    """Standalone app with both middleware layers."""
    app = FastAPI()

    # AccessLogMiddleware innermost (added first), RequestIDMiddleware
    # outermost (added second, runs first).
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/ok")
    async def _ok():
        return {"status": "ok"}

    @app.get("/api/fail")
    async def _fail():
        raise HTTPException(400, detail="bad | input")

    @app.get("/api/server_error")
    async def _server_error():
        raise RuntimeError("boom")

    @app.get("/health")
    async def _health():
        return {"status": "ok"}

    return app


@pytest.fixture()
def client(test_app: FastAPI) -> TestClient:
    return TestClient(test_app, raise_server_exceptions=False)


def _metric_records(caplog):
    return [r for r in caplog.records if "METRIC" in r.getMessage()]


class TestAccessLogMiddleware:
    """Access log middleware emits structured METRIC lines."""

    def test_successful_request_logged(self, client, caplog):
        with caplog.at_level(logging.DEBUG, logger="pushpilot.access"):
            client.get("/api/ok")
        (record,) = _metric_records(caplog)
        line = record.getMessage()
        assert "type=http_request" in line
        assert "method=GET" in line
        assert "path=/api/ok" in line
        assert "status=200" in line
        assert "visitor=testclient" in line
        assert record.levelno == logging.INFO

    def test_error_detail_logged_with_pipes_escaped(self, client, caplog):
        with caplog.at_level(logging.DEBUG, logger="pushpilot.access"):
            client.get("/api/fail")
        (record,) = _metric_records(caplog)
        assert "status=400" in record.getMessage()
        assert "error=bad / input" in record.getMessage()
        assert record.levelno == logging.WARNING

    def test_server_error_logged(self, client, caplog):
        with caplog.at_level(logging.DEBUG, logger="pushpilot.access"):
            client.get("/api/server_error")
        (record,) = _metric_records(caplog)
        assert "status=500" in record.getMessage()
        assert record.levelno == logging.ERROR

    def test_health_check_not_logged(self, client, caplog):
        with caplog.at_level(logging.DEBUG, logger="pushpilot.access"):
            client.get("/health")
        assert _metric_records(caplog) == []

    def test_request_id_present(self, client, caplog):
        with caplog.at_level(logging.DEBUG, logger="pushpilot.access"):
            client.get("/api/ok", headers={"X-Request-ID": "abc-123"})
        assert "req_id=abc-123" in _metric_records(caplog)[0].getMessage()

    def test_forwarded_for_used_as_visitor(self, client, caplog):
        with caplog.at_level(logging.DEBUG, logger="pushpilot.access"):
            client.get("/api/ok", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
        assert "visitor=203.0.113.9" in _metric_records(caplog)[0].getMessage()


def test_scope_client_key_fallbacks():
    assert scope_client_key({"headers": [], "client": ("1.2.3.4", 5000)}) == "1.2.3.4"
    assert scope_client_key({"headers": [], "client": None}) == "unknown"
    assert scope_client_key({"headers": [(b"x-forwarded-for", b" , 9.9.9.9")], "client": None}) == "unknown"
