"""Health check endpoint."""

import logging

from flask import Blueprint, current_app, jsonify

from ..database import check_database_health

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)


def get_sse_health() -> dict:
    """
    Get SSE broadcaster health status.

    Returns:
        Dictionary with SSE health information
    """
    try:
        from ..services.broadcaster import get_broadcaster

        broadcaster = get_broadcaster()
        return broadcaster.get_health_status()
    except RuntimeError:
        # Broadcaster not initialized
        return {
            "status": "not_initialized",
            "active_connections": 0,
            "max_connections": 0,
            "running": False,
        }


@health_bp.route("/health")
def health_check():
    """
    Health check endpoint.

    Returns:
        JSON response with status, version, database, SSE, inference and
        presence simulator state
    """
    version = current_app.config.get("APP_VERSION", "unknown")
    db_connected, db_error = check_database_health()
    sse_health = get_sse_health()

    if db_connected and sse_health.get("status") in ("healthy", "not_initialized"):
        overall_status = "healthy"
    else:
        overall_status = "degraded"

    inference = current_app.extensions.get("inference_service")
    simulator = current_app.extensions.get("presence_simulator")

    response = {
        "status": overall_status,
        "version": version,
        "database": "connected" if db_connected else "disconnected",
        "sse": sse_health,
        "inference": "configured" if inference and inference.is_available else "unconfigured",
        "presence_simulator": (
            "disabled" if simulator is None
            else "alive" if simulator.is_running else "dead"
        ),
    }

    if db_error:
        response["database_error"] = db_error

    return jsonify(response)
