# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

import logging

from fastapi.testclient import TestClient

from app.common.logging import ROOT_LOGGER
from app.main import create_app
from tests.conftest import make_settings


class TestHealth:
    def test_health_returns_status(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["environment"] == "test"
        assert isinstance(body["timestamp"], str)
        assert isinstance(body["uptime"], float)
        assert body["uptime"] >= 0

    def test_health_reports_configured_environment(self, make_client):
        resp = make_client(ENV="production").get("/health")
        assert resp.json()["environment"] == "production"

    def test_health_head(self, client, records):
        resp = client.head("/health")

        assert resp.status_code == 200
        completed = records("Request completed")
        assert len(completed) == 1
        assert completed[0].meta["method"] == "HEAD"
        assert completed[0].meta["status_code"] == 200


class TestNotFound:
    def test_unknown_route(self, client):
        resp = client.get("/does-not-exist")

        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == {"message": "Route GET /does-not-exist not found"}
        assert body["path"] == "/does-not-exist"
        assert isinstance(body["timestamp"], str)

    def test_original_url_keeps_query(self, client):
        resp = client.get("/nope/deeper?x=1&y=2")

        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Route GET /nope/deeper?x=1&y=2 not found"
        assert resp.json()["path"] == "/nope/deeper"

    def test_wrong_method_is_not_found(self, client):
        resp = client.delete("/health")

        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Route DELETE /health not found"

    def test_plain_options_is_not_found(self, client):
        resp = client.options("/x")

        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Route OPTIONS /x not found"


class TestSecurityAndCors:
    def test_security_headers(self, client):
        resp = client.get("/health")

        assert resp.headers["x-content-type-options"] == "nosniff"
        assert resp.headers["x-frame-options"] == "SAMEORIGIN"
        assert "strict-transport-security" not in resp.headers

    def test_hsts_in_production(self, make_client):
        resp = make_client(ENV="production").get("/health")
        assert "strict-transport-security" in resp.headers

    def test_security_headers_on_errors(self, client):
        resp = client.get("/does-not-exist")
        assert resp.headers["x-content-type-options"] == "nosniff"

    def test_cors_header(self, client):
        resp = client.get("/health", headers={"Origin": "http://localhost:3000"})
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_cors_restricted_origins(self, make_client):
        c = make_client(CORS_ORIGINS="http://a.example, http://b.example")

        allowed = c.get("/health", headers={"Origin": "http://b.example"})
        denied = c.get("/health", headers={"Origin": "http://evil.example"})

        assert allowed.headers["access-control-allow-origin"] == "http://b.example"
        assert "access-control-allow-origin" not in denied.headers

    def test_cors_preflight(self, client, records):
        resp = client.options(
            "/health",
            headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
        )

        assert resp.status_code == 200
        assert "access-control-allow-methods" in resp.headers
        assert records("Error occurred") == []


class TestLifespan:
    def test_lifespan_starts_and_stops_services(self, records):
        app = create_app(make_settings(), routers=[])

        with TestClient(app) as c:
            assert app.state.logging.started
            assert app.state.diagnostics.installed
            assert c.get("/health").status_code == 200

        assert not app.state.logging.started
        assert not app.state.diagnostics.installed
        assert any(r.getMessage().startswith("Starting friendmatch-api") for r in records())
        assert records("Shutting down friendmatch-api")

    def test_lifespan_applies_log_level(self):
        app = create_app(make_settings(LOG_LEVEL="warn"), routers=[])

        with TestClient(app):
            assert logging.getLogger(ROOT_LOGGER).level == logging.WARNING
