"""Tests for the health check endpoint."""

from unittest.mock import MagicMock, patch

import pytest
from flask import Flask

from collab_hub.routes.health import get_sse_health, health_bp


@pytest.fixture
def app():
    """Create a test Flask application."""
    app = Flask(__name__)
    app.register_blueprint(health_bp)
    app.config["TESTING"] = True
    app.config["APP_VERSION"] = "1.0.0"
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def healthy_sse():
    with patch(
        "collab_hub.routes.health.get_sse_health",
        return_value={"status": "healthy", "active_connections": 0,
                      "max_connections": 100, "running": True},
    ):
        yield


class TestGetSSEHealth:

    def test_broadcaster_not_initialized(self):
        with patch(
            "collab_hub.services.broadcaster.get_broadcaster",
            side_effect=RuntimeError("not initialized"),
        ):
            result = get_sse_health()

        assert result["status"] == "not_initialized"
        assert result["running"] is False

    def test_broadcaster_healthy(self):
        mock_broadcaster = MagicMock()
        mock_broadcaster.get_health_status.return_value = {"status": "healthy"}
        with patch(
            "collab_hub.services.broadcaster.get_broadcaster",
            return_value=mock_broadcaster,
        ):
            assert get_sse_health() == {"status": "healthy"}


class TestHealthEndpoint:

    def test_healthy(self, app, client, healthy_sse):
        with patch("collab_hub.routes.health.check_database_health", return_value=(True, None)):
            response = client.get("/health")

        data = response.get_json()
        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["database"] == "connected"
        assert data["inference"] == "unconfigured"
        assert data["presence_simulator"] == "disabled"

    def test_database_down_is_degraded(self, client, healthy_sse):
        with patch(
            "collab_hub.routes.health.check_database_health",
            return_value=(False, "OperationalError: refused"),
        ):
            data = client.get("/health").get_json()

        assert data["status"] == "degraded"
        assert data["database"] == "disconnected"
        assert data["database_error"] == "OperationalError: refused"

    def test_reports_inference_and_simulator(self, app, client, healthy_sse):
        inference = MagicMock(is_available=True)
        simulator = MagicMock(is_running=False)
        app.extensions["inference_service"] = inference
        app.extensions["presence_simulator"] = simulator

        with patch("collab_hub.routes.health.check_database_health", return_value=(True, None)):
            data = client.get("/health").get_json()

        assert data["inference"] == "configured"
        assert data["presence_simulator"] == "dead"


@pytest.fixture
def client_full(app_config_path):
    from collab_hub.app import create_app

    full = create_app(config_path=str(app_config_path), testing=True)
    yield full.test_client()
    full.extensions["collaboration_manager"].shutdown(wait=True)
    full.extensions["message_log"].stop()


def test_full_app_health(client_full):
    data = client_full.get("/health").get_json()
    assert data["status"] == "healthy"
    assert data["sse"]["running"] is True
