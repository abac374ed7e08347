"""Tests for Flask application."""

import pytest

from collab_hub import __version__


class TestAppFactory:
    """Test application factory."""

    def test_app_has_version_config(self, app):
        assert app.config.get("APP_VERSION") == __version__
        assert app.config["TESTING"] is True

    @pytest.mark.parametrize("name", [
        "agents", "collaborations", "health", "messages",
        "notifications", "rules", "sse", "tasks",
    ])
    def test_blueprint_registered(self, app, name):
        assert name in app.blueprints

    @pytest.mark.parametrize("key", [
        "broadcaster", "local_store", "agent_registry", "desktop_permission",
        "preferences", "notification_router", "rules", "inference_service",
        "collaboration_manager", "task_workspace", "message_log",
    ])
    def test_service_registered(self, app, key):
        assert key in app.extensions

    def test_presence_simulator_not_started_when_testing(self, app):
        assert "presence_simulator" not in app.extensions

    def test_local_store_under_data_dir(self, app, tmp_path):
        assert app.extensions["local_store"].path == tmp_path / "data" / "local_store.json"

    def test_database_connected(self, app):
        assert app.config["DATABASE_CONNECTED"] is True

    def test_inference_degraded_without_key(self, app):
        assert app.extensions["inference_service"].is_available is False


class TestErrorHandlers:

    def test_404_is_json(self, client):
        response = client.get("/api/nope")
        assert response.status_code == 404
        assert response.get_json() == {"status": "error", "message": "Not found"}

    def test_405_is_json(self, client):
        response = client.put("/api/agents")
        assert response.status_code == 405
        assert response.get_json()["message"] == "Method not allowed"


class TestPersistedStateSurvivesRestart:

    def test_rule_state_and_tasks_reload(self, app_config_path):
        from collab_hub.app import create_app

        first = create_app(config_path=str(app_config_path), testing=True)
        first.extensions["rules"].toggle_rule("pattern_to_doc")
        first.extensions["task_workspace"].add_task("carry over")
        first.extensions["collaboration_manager"].shutdown(wait=True)

        second = create_app(config_path=str(app_config_path), testing=True)
        try:
            assert second.extensions["rules"].get("pattern_to_doc").enabled is False
            assert [t.title for t in second.extensions["task_workspace"].list_tasks()] == ["carry over"]
        finally:
            second.extensions["collaboration_manager"].shutdown(wait=True)
