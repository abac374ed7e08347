"""Tests for database initialization and health checks."""

from unittest.mock import patch

from sqlalchemy import inspect

from collab_hub.database import check_database_health, db


class TestInitDatabase:

    def test_sqlite_schema_created(self, app):
        with app.app_context():
            assert "collaborations" in inspect(db.engine).get_table_names()

    def test_health_check_connected(self, app):
        with app.app_context():
            assert check_database_health() == (True, None)

    def test_health_check_reports_error(self, app):
        with app.app_context():
            with patch.object(db.session, "execute", side_effect=RuntimeError("gone")):
                connected, error = check_database_health()
        assert connected is False
        assert error == "RuntimeError: gone"
