"""Collaboration lifecycle API routes."""

import logging

from flask import Blueprint, current_app, jsonify, request

from ..models.collaboration import CollaborationStatus
from ..services.agent_registry import UnknownAgentError
from ..services.collaboration_manager import CollaborationInFlightError, RuleDisabledError
from ..services.collaboration_store import CollaborationNotFoundError, StoreError
from ..services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

collaborations_bp = Blueprint("collaborations", __name__)


def _manager():
    return current_app.extensions["collaboration_manager"]


def _error(message: str, status_code: int):
    return jsonify({"status": "error", "message": message}), status_code


def _parse_trigger_payload():
    """Validate a trigger payload. Returns (fields, error_response)."""
    if not request.is_json:
        return None, _error("Content-Type must be application/json", 400)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, _error("Invalid JSON payload", 400)

    fields = {}
    for name in ("source_agent", "target_agent", "trigger_type"):
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            return None, _error(f"{name} is required", 400)
        fields[name] = value.strip()

    context = data.get("context", {})
    if not isinstance(context, dict):
        return None, _error("context must be an object", 400)
    fields["context"] = context
    return fields, None


def _snapshot(handle) -> dict:
    """Current record for a started run, or just its id if it cannot be read."""
    try:
        return _manager().get(handle.collaboration_id).to_dict()
    except (CollaborationNotFoundError, StoreError) as e:
        logger.warning(f"Collaboration {handle.collaboration_id} started but not readable: {e}")
        return {"id": handle.collaboration_id}


def _started(handle, status_code: int = 201):
    return jsonify({"status": "ok", "collaboration": _snapshot(handle)}), status_code


def _map_trigger_error(e: Exception):
    if isinstance(e, UnknownAgentError):
        return _error(f"Unknown agent: {e.args[0]}", 400)
    if isinstance(e, (CollaborationInFlightError, RuleDisabledError)):
        return _error(str(e), 409)
    if isinstance(e, InvalidTransitionError):
        return _error(str(e), 409)
    if isinstance(e, CollaborationNotFoundError):
        return _error(f"Collaboration not found: {e.args[0]}", 404)
    if isinstance(e, StoreError):
        return _error("Failed to save collaboration", 500)
    return _error(str(e), 400)


_TRIGGER_ERRORS = (
    UnknownAgentError,
    CollaborationInFlightError,
    RuleDisabledError,
    InvalidTransitionError,
    CollaborationNotFoundError,
    StoreError,
    ValueError,
)


@collaborations_bp.route("/api/collaborations", methods=["GET"])
def list_collaborations():
    """
    List collaborations, newest first.

    Query Parameters:
        status: pending | in_progress | completed | failed
        search: Case-insensitive match on the trigger reason
        limit: Maximum records (default from config)
    """
    status = request.args.get("status") or None
    if status is not None:
        try:
            status = CollaborationStatus(status)
        except ValueError:
            return _error(f"Unknown status: {status}", 400)

    limit = request.args.get("limit", type=int)
    if limit is not None and limit < 1:
        return _error("limit must be a positive integer", 400)

    try:
        records = _manager().list_collaborations(
            status=status, search=request.args.get("search") or None, limit=limit,
        )
    except StoreError:
        return _error("Failed to load collaborations", 500)

    return jsonify({
        "status": "ok",
        "collaborations": [r.to_dict() for r in records],
    }), 200


@collaborations_bp.route("/api/collaborations", methods=["POST"])
def trigger_collaboration():
    """
    Manually trigger a collaboration. Rule matching is bypassed, but a
    disabled rule for the same triple blocks the trigger.

    Expected payload:
    {
        "source_agent": "market_monitor",
        "target_agent": "strategy_doc_generator",
        "trigger_type": "critical_alert",
        "context": {...}
    }

    Returns:
        201: Collaboration created and submitted
        400: Invalid payload or unknown agent
        409: Rule disabled or pair already in flight
        500: Persistence failure
    """
    fields, error = _parse_trigger_payload()
    if error:
        return error

    try:
        handle = _manager().trigger(
            fields["source_agent"],
            fields["target_agent"],
            fields["trigger_type"],
            context=fields["context"],
        )
    except _TRIGGER_ERRORS as e:
        return _map_trigger_error(e)
    return _started(handle)


@collaborations_bp.route("/api/collaborations/events", methods=["POST"])
def dispatch_event():
    """
    Report an agent event. A collaboration is created only when an enabled
    rule matches the (source, target, trigger) triple.

    Returns:
        201: Rule matched, collaboration created
        200: No enabled rule matched, nothing created
    """
    fields, error = _parse_trigger_payload()
    if error:
        return error

    try:
        handle = _manager().dispatch_event(
            fields["source_agent"],
            fields["target_agent"],
            fields["trigger_type"],
            context=fields["context"],
        )
    except _TRIGGER_ERRORS as e:
        return _map_trigger_error(e)

    if handle is None:
        return jsonify({"status": "ok", "triggered": False}), 200
    return jsonify({
        "status": "ok",
        "triggered": True,
        "collaboration": _snapshot(handle),
    }), 201


@collaborations_bp.route("/api/collaborations/stats", methods=["GET"])
def collaboration_stats():
    try:
        stats = _manager().get_stats()
    except StoreError:
        return _error("Failed to load statistics", 500)
    return jsonify({"status": "ok", "stats": stats}), 200


@collaborations_bp.route("/api/collaborations/<int:collaboration_id>", methods=["GET"])
def get_collaboration(collaboration_id: int):
    try:
        record = _manager().get(collaboration_id)
    except CollaborationNotFoundError:
        return _error(f"Collaboration not found: {collaboration_id}", 404)
    except StoreError:
        return _error("Failed to load collaboration", 500)
    return jsonify({"status": "ok", "collaboration": record.to_dict()}), 200


@collaborations_bp.route("/api/collaborations/<int:collaboration_id>", methods=["DELETE"])
def delete_collaboration(collaboration_id: int):
    try:
        removed = _manager().remove(collaboration_id)
    except StoreError:
        return _error("Failed to delete collaboration", 500)
    if not removed:
        return _error(f"Collaboration not found: {collaboration_id}", 404)
    return jsonify({"status": "ok", "message": "Collaboration deleted"}), 200


@collaborations_bp.route("/api/collaborations/<int:collaboration_id>/execute", methods=["POST"])
def execute_collaboration(collaboration_id: int):
    """Run a stored pending collaboration."""
    try:
        handle = _manager().execute_pending(collaboration_id)
    except _TRIGGER_ERRORS as e:
        return _map_trigger_error(e)
    return _started(handle, 202)


@collaborations_bp.route("/api/collaborations/<int:collaboration_id>/retrigger", methods=["POST"])
def retrigger_collaboration(collaboration_id: int):
    """Create a fresh collaboration from a failed one."""
    try:
        handle = _manager().retrigger(collaboration_id)
    except _TRIGGER_ERRORS as e:
        return _map_trigger_error(e)
    return _started(handle)
