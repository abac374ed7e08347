"""Pytest fixtures for Agent Collaboration Hub tests."""

from unittest.mock import MagicMock

import pytest
import yaml

from collab_hub.app import create_app
from collab_hub.services.broadcaster import shutdown_broadcaster
from collab_hub.services.local_store import LocalStore
from collab_hub.services.notification_channels import AudioChannel
from collab_hub.services.tone import AudioContext


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep real credentials and database URLs out of every test."""
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    yield
    shutdown_broadcaster()


@pytest.fixture
def app_config_path(tmp_path):
    """Write a config.yaml pointing at a temporary SQLite DB and data dir."""
    config = {
        "logging": {"level": "WARNING", "file": str(tmp_path / "logs" / "app.log")},
        "database": {"url": f"sqlite:///{tmp_path / 'collab_hub_test.db'}"},
        "storage": {"data_dir": str(tmp_path / "data")},
        "presence": {"enabled": False},
        "collaboration": {"max_workers": 2, "follow_ups": False},
        "messages": {"reply_delay_seconds": 0.01},
        "notifications": {"desktop": {"notifier": "collab-hub-missing-notifier"}},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config))
    return path


@pytest.fixture
def app(app_config_path):
    """Create a Flask application for testing."""
    app = create_app(config_path=str(app_config_path), testing=True)
    # No audio player on the test host
    app.extensions["notification_router"].audio = AudioChannel(
        context_getter=lambda: AudioContext(None)
    )

    yield app

    app.extensions["collaboration_manager"].shutdown(wait=True)
    app.extensions["message_log"].stop()


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture
def fake_inference(app):
    """Replace the manager's inference backend with a MagicMock."""
    inference = MagicMock()
    inference.infer.return_value = {
        "title": "Risk Mitigation Plan",
        "summary": "Plan to contain supply chain exposure",
        "result": {"sections": []},
        "recommendations": ["Diversify suppliers"],
    }
    app.extensions["collaboration_manager"]._inference = inference
    return inference


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(tmp_path / "store.json")
