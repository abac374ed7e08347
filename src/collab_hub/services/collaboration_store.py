"""CRUD adapter over the collaborations table.

Every call runs in its own application context and commits before
returning, so it is safe to use from worker threads. Records are returned
as detached ``CollaborationRecord`` snapshots rather than ORM instances.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from ..database import db
from ..models.collaboration import Collaboration, CollaborationPriority, CollaborationStatus
from .state_machine import InvalidTransitionError, TransitionResult

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": Collaboration.created_at,
    "updated_at": Collaboration.updated_at,
    "id": Collaboration.id,
}

PATCHABLE_FIELDS = {
    "status", "priority", "result", "error_message", "context",
    "started_at", "completed_at",
}


class StoreError(Exception):
    """A persistence call failed."""


class CollaborationNotFoundError(KeyError):
    """No collaboration with the given id."""


@dataclass
class CollaborationRecord:
    """Detached snapshot of a collaboration row."""

    id: int
    source_agent: str
    target_agent: str
    trigger_reason: str
    status: CollaborationStatus
    priority: CollaborationPriority
    created_at: datetime
    context: dict = field(default_factory=dict)
    collaboration_type: str = "trigger_action"
    rule_id: str | None = None
    result: dict | None = None
    error_message: str | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def rule_key(self) -> str:
        return f"{self.source_agent}-{self.target_agent}"

    @classmethod
    def from_model(cls, row: Collaboration) -> "CollaborationRecord":
        return cls(
            id=row.id,
            source_agent=row.source_agent,
            target_agent=row.target_agent,
            trigger_reason=row.trigger_reason,
            status=CollaborationStatus(row.status),
            priority=CollaborationPriority(row.priority),
            created_at=row.created_at,
            context=dict(row.context or {}),
            collaboration_type=row.collaboration_type,
            rule_id=row.rule_id,
            result=row.result,
            error_message=row.error_message,
            updated_at=row.updated_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        def iso(value):
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "source_agent": self.source_agent,
            "target_agent": self.target_agent,
            "collaboration_type": self.collaboration_type,
            "trigger_reason": self.trigger_reason,
            "context": self.context,
            "status": self.status.value,
            "priority": self.priority.value,
            "rule_id": self.rule_id,
            "result": self.result,
            "error_message": self.error_message,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "started_at": iso(self.started_at),
            "completed_at": iso(self.completed_at),
        }


class CollaborationStore:
    """Create/get/list/filter/update/delete over ``Collaboration`` rows."""

    def __init__(self, app: Flask):
        self._app = app

    def _run(self, operation: str, fn):
        with self._app.app_context():
            try:
                value = fn(db.session)
                db.session.commit()
                return value
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Collaboration store {operation} failed: {e}")
                raise StoreError(f"{operation} failed: {type(e).__name__}") from e

    def create(
        self,
        source_agent: str,
        target_agent: str,
        trigger_reason: str,
        context: dict | None = None,
        priority: CollaborationPriority = CollaborationPriority.MEDIUM,
        rule_id: str | None = None,
        collaboration_type: str = "trigger_action",
    ) -> CollaborationRecord:
        def _create(session):
            row = Collaboration(
                source_agent=source_agent,
                target_agent=target_agent,
                trigger_reason=trigger_reason,
                context=context or {},
                priority=CollaborationPriority(priority),
                status=CollaborationStatus.PENDING,
                rule_id=rule_id,
                collaboration_type=collaboration_type,
            )
            session.add(row)
            session.flush()
            return CollaborationRecord.from_model(row)

        return self._run("create", _create)

    def get(self, collaboration_id: int) -> CollaborationRecord:
        def _get(session):
            row = session.get(Collaboration, collaboration_id)
            if row is None:
                raise CollaborationNotFoundError(collaboration_id)
            return CollaborationRecord.from_model(row)

        return self._run("get", _get)

    def filter(
        self,
        status: CollaborationStatus | str | None = None,
        source_agent: str | None = None,
        target_agent: str | None = None,
        search: str | None = None,
        sort_key: str = "-created_at",
        limit: int | None = 50,
    ) -> list[CollaborationRecord]:
        descending = sort_key.startswith("-")
        column = SORT_COLUMNS.get(sort_key.lstrip("-"))
        if column is None:
            raise ValueError(f"Unsupported sort key: {sort_key}")

        def _filter(session):
            query = session.query(Collaboration)
            if status:
                query = query.filter(Collaboration.status == CollaborationStatus(status))
            if source_agent:
                query = query.filter(Collaboration.source_agent == source_agent)
            if target_agent:
                query = query.filter(Collaboration.target_agent == target_agent)
            if search:
                query = query.filter(Collaboration.trigger_reason.ilike(f"%{search}%"))
            query = query.order_by(column.desc() if descending else column.asc(),
                                   Collaboration.id.desc() if descending else Collaboration.id.asc())
            if limit:
                query = query.limit(limit)
            return [CollaborationRecord.from_model(row) for row in query.all()]

        return self._run("filter", _filter)

    def update(
        self,
        collaboration_id: int,
        patch: dict,
        expected_status: CollaborationStatus | None = None,
    ) -> CollaborationRecord:
        """Apply ``patch`` to a row.

        With ``expected_status`` the write only happens if the stored status
        still matches; otherwise InvalidTransitionError is raised and the row
        is left as it was.
        """
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not patchable: {sorted(unknown)}")

        def _update(session):
            if expected_status is not None:
                # Compare-and-set so a concurrent writer cannot be overwritten
                matched = (
                    session.query(Collaboration)
                    .filter(
                        Collaboration.id == collaboration_id,
                        Collaboration.status == CollaborationStatus(expected_status),
                    )
                    .update(dict(patch), synchronize_session=False)
                )
                row = session.get(Collaboration, collaboration_id, populate_existing=True)
                if row is None:
                    raise CollaborationNotFoundError(collaboration_id)
                if not matched:
                    current = CollaborationStatus(row.status)
                    raise InvalidTransitionError(TransitionResult(
                        valid=False,
                        from_state=current,
                        to_state=current,
                        reason=(
                            f"Collaboration {collaboration_id} is {current.value}, "
                            f"expected {CollaborationStatus(expected_status).value}"
                        ),
                    ))
                return CollaborationRecord.from_model(row)

            row = session.get(Collaboration, collaboration_id)
            if row is None:
                raise CollaborationNotFoundError(collaboration_id)
            for key, value in patch.items():
                setattr(row, key, value)
            session.flush()
            return CollaborationRecord.from_model(row)

        return self._run("update", _update)

    def delete(self, collaboration_id: int) -> bool:
        def _delete(session):
            row = session.get(Collaboration, collaboration_id)
            if row is None:
                return False
            session.delete(row)
            return True

        return self._run("delete", _delete)

    def count_by_status(self) -> dict[str, int]:
        from sqlalchemy import func

        def _count(session):
            rows = (
                session.query(Collaboration.status, func.count(Collaboration.id))
                .group_by(Collaboration.status)
                .all()
            )
            counts = {s.value: 0 for s in CollaborationStatus}
            for status, count in rows:
                counts[CollaborationStatus(status).value] = count
            return counts

        return self._run("count", _count)

    def count_by_agent(self) -> dict[str, dict[str, int]]:
        """Per-agent counts of collaborations triggered (as source) and received."""
        from sqlalchemy import func

        def _count(session):
            activity: dict[str, dict[str, int]] = {}
            for column, label in (
                (Collaboration.source_agent, "triggered"),
                (Collaboration.target_agent, "received"),
            ):
                for agent_id, count in session.query(column, func.count(Collaboration.id)).group_by(column):
                    activity.setdefault(agent_id, {"triggered": 0, "received": 0})[label] = count
            return activity

        return self._run("count", _count)

    # Defined last: inside the class body the name shadows the builtin used
    # in the annotations above.
    def list(self, sort_key: str = "-created_at", limit: int = 50) -> "list[CollaborationRecord]":
        """List records ordered by ``sort_key`` (leading '-' for descending)."""
        return self.filter(sort_key=sort_key, limit=limit)
