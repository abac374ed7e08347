"""Agent roster and presence routes."""

from flask import Blueprint, current_app, jsonify

agents_bp = Blueprint("agents", __name__)


@agents_bp.route("/api/agents", methods=["GET"])
def list_agents():
    """List registered agents with their current presence."""
    registry = current_app.extensions["agent_registry"]
    return jsonify({"status": "ok", "agents": registry.snapshot()}), 200
