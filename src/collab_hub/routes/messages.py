"""User/agent message routes."""

from flask import Blueprint, current_app, jsonify, request

from ..services.agent_registry import UnknownAgentError
from ..services.message_log import MessageValidationError

messages_bp = Blueprint("messages", __name__)


@messages_bp.route("/api/messages", methods=["GET"])
def list_messages():
    log = current_app.extensions["message_log"]
    return jsonify({
        "status": "ok",
        "messages": [m.to_dict() for m in log.list_messages()],
    }), 200


@messages_bp.route("/api/messages", methods=["POST"])
def send_message():
    """
    Send a message to an agent. The agent's reply arrives asynchronously.

    Expected payload: {"to": "market_monitor", "text": "..."}

    Returns:
        201: Message stored
        400: Missing text or unknown agent
    """
    data = request.get_json(silent=True) or {}
    to_agent = data.get("to")
    text = data.get("text")
    if not isinstance(to_agent, str) or not to_agent:
        return jsonify({"status": "error", "message": "to is required"}), 400
    if text is not None and not isinstance(text, str):
        return jsonify({"status": "error", "message": "text must be a string"}), 400

    log = current_app.extensions["message_log"]
    try:
        message = log.send(to_agent, text or "")
    except UnknownAgentError:
        return jsonify({"status": "error", "message": f"Unknown agent: {to_agent}"}), 400
    except MessageValidationError as e:
        return jsonify({"status": "error", "message": str(e)}), 400
    return jsonify({"status": "ok", "message": message.to_dict()}), 201
