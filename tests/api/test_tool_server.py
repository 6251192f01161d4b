"""Tests for the JSON-RPC HTTP endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hubproxy.context import HubContext
from hubproxy.tools.server import HubToolServer, create_app
from tests.fixtures.sample_data import (
    SAMPLE_JSONRPC_INVALID_PARAMS,
    SAMPLE_JSONRPC_REQUEST,
    SAMPLE_JSONRPC_UNKNOWN_TOOL,
)

pytestmark = pytest.mark.api


@pytest.fixture
def hub_ctx(anonymous_config, fake_hub, fake_clock):
    return HubContext.create(anonymous_config, transport=fake_hub.transport, clock=fake_clock)


@pytest.fixture
def server(hub_ctx):
    return HubToolServer(hub_ctx, port=8100)


@pytest.fixture
def client(server):
    """Test client with the lifespan running."""
    with TestClient(server.app) as test_client:
        yield test_client


class TestToolCardEndpoint:
    """Tests for /tool-card."""

    def test_tool_card_structure(self, client):
        response = client.get("/tool-card")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "hubproxy"
        assert data["url"] == "http://localhost:8100"
        assert len(data["tools"]) == 16

    def test_tools_have_input_schemas(self, client):
        data = client.get("/tool-card").json()

        for tool in data["tools"]:
            assert tool["id"].startswith("docker_")
            assert tool["description"]
            assert tool["input_schema"]["type"] == "object"


class TestExecuteEndpoint:
    """Tests for /execute."""

    def test_successful_call(self, client):
        response = client.post("/execute", json=SAMPLE_JSONRPC_REQUEST)
        assert response.status_code == 200

        data = response.json()
        assert data["jsonrpc"] == "2.0"
        assert data["id"] == "test-1"
        assert "error" not in data
        assert data["result"]["is_error"] is False
        assert "library/nginx" in data["result"]["summary"]
        assert data["result"]["data"]["details"]["name"] == "nginx"

    def test_unknown_tool_is_rpc_error(self, client):
        data = client.post("/execute", json=SAMPLE_JSONRPC_UNKNOWN_TOOL).json()

        assert data["error"]["code"] == -1
        assert "Unknown tool" in data["error"]["message"]
        assert data["id"] == "test-2"

    def test_invalid_params_is_rpc_error(self, client):
        data = client.post("/execute", json=SAMPLE_JSONRPC_INVALID_PARAMS).json()

        assert data["error"]["code"] == -1
        assert "repository" in data["error"]["message"]

    def test_upstream_failure_is_error_result(self, client):
        message = {
            "jsonrpc": "2.0",
            "method": "docker_get_tag_details",
            "params": {"namespace": "library", "repository": "nginx", "tag": "missing"},
            "id": "test-4",
        }

        data = client.post("/execute", json=message).json()

        assert "error" not in data
        assert data["result"]["is_error"] is True
        assert data["result"]["data"] == {"tag_details": None}

    def test_malformed_message_rejected(self, client):
        response = client.post("/execute", json={"jsonrpc": "2.0", "id": "x"})
        assert response.status_code == 422

    def test_params_default_to_empty(self, client):
        data = client.post("/execute", json={"method": "docker_cache_info", "id": "5"}).json()

        assert data["result"]["summary"] == "Cache information retrieved"


class TestHealthEndpoint:
    """Tests for /health."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["name"] == "hubproxy"
        assert data["credential_configured"] is False
        assert data["cache_cleanup_running"] is True
        assert data["cache"]["entries"] == 0

    def test_health_reflects_cache_use(self, client):
        client.post("/execute", json=SAMPLE_JSONRPC_REQUEST)
        client.post("/execute", json=SAMPLE_JSONRPC_REQUEST)

        data = client.get("/health").json()

        assert data["cache"]["cache_hits"] == 1
        assert data["rate_limit"]["status"] == "healthy"


class TestLifespan:
    """Tests for startup and shutdown."""

    def test_cleanup_task_stops_on_shutdown(self, server, hub_ctx):
        with TestClient(server.app):
            assert hub_ctx.cache.running

        assert not hub_ctx.cache.running

    def test_preload_on_startup(self, hub_ctx, fake_hub):
        server = HubToolServer(hub_ctx, preload=True)

        with TestClient(server.app) as client:
            data = client.get("/health").json()

        assert data["cache"]["entries"] == 2
        assert fake_hub.calls("GET", "https://hub.docker.com/v2/repositories/library/alpine")

    def test_create_app(self, hub_ctx):
        app = create_app(hub_ctx)

        assert isinstance(app, FastAPI)
        paths = {route.path for route in app.routes}
        assert {"/tool-card", "/execute", "/health"} <= paths
