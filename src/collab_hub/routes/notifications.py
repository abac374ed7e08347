"""Notification preferences API routes."""

import logging

from flask import Blueprint, current_app, jsonify, request

from ..services.notification_channels import NotificationCategory
from ..services.preferences import PreferencesValidationError

logger = logging.getLogger(__name__)

notifications_bp = Blueprint("notifications", __name__)


def _permission_state() -> str:
    permission = current_app.extensions.get("desktop_permission")
    return permission.state if permission is not None else "unavailable"


@notifications_bp.route("/api/notifications/preferences", methods=["GET"])
def get_preferences():
    """
    Get current notification preferences and desktop permission state.

    Returns:
        200: {
            "status": "ok",
            "preferences": {...},
            "desktop_permission": "default" | "granted" | "denied"
        }
    """
    service = current_app.extensions["preferences"]
    return jsonify({
        "status": "ok",
        "preferences": service.get_preferences(),
        "desktop_permission": _permission_state(),
    }), 200


@notifications_bp.route("/api/notifications/preferences", methods=["PUT"])
def update_preferences():
    """
    Update notification preferences. Partial payloads are merged.

    Expected payload (any subset):
    {
        "desktop_notifications": true/false,
        "sound_alerts": true/false,
        "email_digest": true/false,
        "notify_on_messages": true/false,
        "notify_on_task_assignment": true/false,
        "notify_on_critical_triggers": true/false,
        "sound_volume": 0.0 - 1.0,
        "email_frequency": "realtime" | "hourly" | "daily" | "weekly"
    }

    Returns:
        200: Preferences saved
        400: Invalid payload
        500: Save failed
    """
    if not request.is_json:
        return jsonify({
            "status": "error",
            "message": "Content-Type must be application/json",
        }), 400

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({
            "status": "error",
            "message": "Invalid JSON payload",
        }), 400

    service = current_app.extensions["preferences"]
    try:
        preferences = service.save(data)
    except PreferencesValidationError as e:
        return jsonify({
            "status": "error",
            "message": str(e),
            "field": e.field_name,
        }), 400
    except OSError as e:
        logger.exception(f"Error saving notification preferences: {e}")
        return jsonify({
            "status": "error",
            "message": "Failed to save preferences",
        }), 500

    return jsonify({
        "status": "ok",
        "message": "Preferences updated",
        "preferences": preferences.to_dict(),
        "desktop_permission": _permission_state(),
    }), 200


@notifications_bp.route("/api/notifications/test", methods=["POST"])
def test_notification():
    """
    Send a test announcement through the router.

    Optional payload: {"category": "message" | "task" | "critical"}

    Returns:
        200: Per-channel delivery results (empty when the category is muted)
        400: Unknown category
    """
    data = request.get_json(silent=True) or {}
    category = data.get("category", NotificationCategory.MESSAGE.value)
    try:
        category = NotificationCategory(category)
    except ValueError:
        return jsonify({
            "status": "error",
            "message": f"Unknown category: {category}",
        }), 400

    router = current_app.extensions["notification_router"]
    results = router.announce(category, f"Test {category.value} notification")
    return jsonify({
        "status": "ok",
        "category": category.value,
        "results": [r.to_dict() for r in results],
    }), 200
