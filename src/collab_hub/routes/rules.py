"""Collaboration rule management routes."""

import logging

from flask import Blueprint, current_app, jsonify

from ..services.rule_engine import RuleNotFoundError

logger = logging.getLogger(__name__)

rules_bp = Blueprint("rules", __name__)


@rules_bp.route("/api/rules", methods=["GET"])
def list_rules():
    """
    List all collaboration rules.

    Returns:
        200: {"status": "ok", "rules": [...], "active_count": n}
    """
    rules = current_app.extensions["rules"]
    return jsonify({
        "status": "ok",
        "rules": [rule.to_dict() for rule in rules.list_rules()],
        "active_count": rules.active_count,
    }), 200


@rules_bp.route("/api/rules/<rule_id>/toggle", methods=["POST"])
def toggle_rule(rule_id: str):
    """
    Flip a rule's enabled flag.

    Returns:
        200: {"status": "ok", "rule": {...}}
        404: Unknown rule
    """
    rules = current_app.extensions["rules"]
    try:
        rules.toggle_rule(rule_id)
    except RuleNotFoundError:
        return jsonify({
            "status": "error",
            "message": f"Rule not found: {rule_id}",
        }), 404

    return jsonify({"status": "ok", "rule": rules.get(rule_id).to_dict()}), 200
