"""Tests for the collaboration store."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from collab_hub.database import db
from collab_hub.models import CollaborationPriority, CollaborationStatus
from collab_hub.services.collaboration_store import (
    CollaborationNotFoundError,
    CollaborationRecord,
    CollaborationStore,
    StoreError,
)
from collab_hub.services.state_machine import InvalidTransitionError

from factories import CollaborationFactory


@pytest.fixture
def store(app):
    return CollaborationStore(app)


@pytest.fixture
def factory_session(app):
    """Bind the factory to a session in a pushed app context."""
    with app.app_context():
        CollaborationFactory._meta.sqlalchemy_session = db.session
        yield db.session
        CollaborationFactory._meta.sqlalchemy_session = None


class TestCreateAndGet:

    def test_create_returns_pending_snapshot(self, store):
        record = store.create(
            "market_monitor", "strategy_doc_generator", "critical_alert",
            context={"severity": "critical"},
            priority=CollaborationPriority.CRITICAL,
            rule_id="critical_alert_to_risk_plan",
        )

        assert isinstance(record, CollaborationRecord)
        assert record.id is not None
        assert record.status == CollaborationStatus.PENDING
        assert record.priority == CollaborationPriority.CRITICAL
        assert record.context == {"severity": "critical"}
        assert record.rule_key == "market_monitor-strategy_doc_generator"
        assert record.created_at is not None

    def test_get_round_trip(self, store):
        created = store.create("market_monitor", "knowledge_curator", "new_insight")
        fetched = store.get(created.id)
        assert fetched.id == created.id
        assert fetched.trigger_reason == "new_insight"
        assert fetched.priority == CollaborationPriority.MEDIUM

    def test_get_missing_raises(self, store):
        with pytest.raises(CollaborationNotFoundError):
            store.get(9999)

    def test_to_dict_serializes_enums_and_dates(self, store):
        data = store.create("market_monitor", "knowledge_curator", "new_insight").to_dict()
        assert data["status"] == "pending"
        assert data["priority"] == "medium"
        assert isinstance(data["created_at"], str)
        assert data["completed_at"] is None


class TestUpdate:

    def test_patch_fields(self, store):
        record = store.create("market_monitor", "knowledge_curator", "new_insight")
        now = datetime.now(timezone.utc)
        updated = store.update(record.id, {
            "status": CollaborationStatus.COMPLETED,
            "result": {"title": "Links"},
            "completed_at": now,
        })
        assert updated.status == CollaborationStatus.COMPLETED
        assert updated.result == {"title": "Links"}
        assert store.get(record.id).completed_at is not None

    def test_unpatchable_field_rejected(self, store):
        record = store.create("market_monitor", "knowledge_curator", "new_insight")
        with pytest.raises(ValueError, match="not patchable"):
            store.update(record.id, {"source_agent": "knowledge_curator"})

    def test_update_missing_raises(self, store):
        with pytest.raises(CollaborationNotFoundError):
            store.update(12345, {"status": CollaborationStatus.FAILED})

    def test_expected_status_guards_write(self, store):
        record = store.create("market_monitor", "knowledge_curator", "new_insight")
        store.update(record.id, {"status": CollaborationStatus.FAILED})

        with pytest.raises(InvalidTransitionError, match="is failed, expected pending"):
            store.update(
                record.id,
                {"status": CollaborationStatus.IN_PROGRESS},
                expected_status=CollaborationStatus.PENDING,
            )
        assert store.get(record.id).status == CollaborationStatus.FAILED

    def test_expected_status_match_writes(self, store):
        record = store.create("market_monitor", "knowledge_curator", "new_insight")
        updated = store.update(
            record.id,
            {"status": CollaborationStatus.IN_PROGRESS, "started_at": datetime.now(timezone.utc)},
            expected_status=CollaborationStatus.PENDING,
        )
        assert updated.status == CollaborationStatus.IN_PROGRESS
        assert updated.started_at is not None

    def test_expected_status_missing_row(self, store):
        with pytest.raises(CollaborationNotFoundError):
            store.update(
                12345,
                {"status": CollaborationStatus.FAILED},
                expected_status=CollaborationStatus.PENDING,
            )

    def test_annotations_resolve_to_builtin_list(self):
        assert CollaborationStore.filter.__annotations__["return"] == list[CollaborationRecord]


class TestQueries:

    def test_list_newest_first(self, store, factory_session):
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        old = CollaborationFactory(created_at=base)
        new = CollaborationFactory(created_at=base + timedelta(hours=1))

        ids = [r.id for r in store.list()]
        assert ids == [new.id, old.id]

    def test_list_ascending_and_limit(self, store, factory_session):
        rows = [CollaborationFactory() for _ in range(3)]
        records = store.list(sort_key="id", limit=2)
        assert [r.id for r in records] == [rows[0].id, rows[1].id]

    def test_unknown_sort_key(self, store):
        with pytest.raises(ValueError):
            store.list(sort_key="-priority")

    def test_filter_by_status_and_agent(self, store, factory_session):
        CollaborationFactory(status=CollaborationStatus.FAILED)
        CollaborationFactory(target_agent="knowledge_curator", status=CollaborationStatus.FAILED)
        CollaborationFactory(status=CollaborationStatus.COMPLETED)

        failed = store.filter(status="failed")
        assert len(failed) == 2
        curated = store.filter(status=CollaborationStatus.FAILED, target_agent="knowledge_curator")
        assert len(curated) == 1

    def test_filter_search_is_case_insensitive(self, store, factory_session):
        CollaborationFactory(trigger_reason="critical_alert")
        CollaborationFactory(trigger_reason="new_insight")

        results = store.filter(search="CRITICAL")
        assert [r.trigger_reason for r in results] == ["critical_alert"]

    def test_count_by_status_includes_zeroes(self, store, factory_session):
        CollaborationFactory(status=CollaborationStatus.COMPLETED)
        CollaborationFactory(status=CollaborationStatus.COMPLETED)

        counts = store.count_by_status()
        assert counts == {"pending": 0, "in_progress": 0, "completed": 2, "failed": 0}

    def test_count_by_agent(self, store, factory_session):
        CollaborationFactory()
        CollaborationFactory(source_agent="knowledge_curator")

        activity = store.count_by_agent()
        assert activity["market_monitor"] == {"triggered": 1, "received": 0}
        assert activity["strategy_doc_generator"] == {"triggered": 0, "received": 2}
        assert activity["knowledge_curator"] == {"triggered": 1, "received": 0}


class TestDelete:

    def test_delete_existing(self, store):
        record = store.create("market_monitor", "knowledge_curator", "new_insight")
        assert store.delete(record.id) is True
        with pytest.raises(CollaborationNotFoundError):
            store.get(record.id)

    def test_delete_missing(self, store):
        assert store.delete(4242) is False


class TestFailures:

    def test_database_error_becomes_store_error(self, store):
        with patch.object(
            db.session, "get", side_effect=OperationalError("SELECT", {}, Exception("locked"))
        ):
            with pytest.raises(StoreError, match="get failed"):
                store.get(1)
