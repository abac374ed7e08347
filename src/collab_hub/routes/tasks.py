"""Shared task workspace routes."""

import logging

from flask import Blueprint, current_app, jsonify, request

from ..services.agent_registry import UnknownAgentError
from ..services.task_workspace import TaskNotFoundError, TaskValidationError

logger = logging.getLogger(__name__)

tasks_bp = Blueprint("tasks", __name__)


def _workspace():
    return current_app.extensions["task_workspace"]


def _not_found(task_id: str):
    return jsonify({"status": "error", "message": f"Task not found: {task_id}"}), 404


@tasks_bp.route("/api/tasks", methods=["GET"])
def list_tasks():
    tasks = _workspace().list_tasks()
    return jsonify({"status": "ok", "tasks": [t.to_dict() for t in tasks]}), 200


@tasks_bp.route("/api/tasks", methods=["POST"])
def add_task():
    """
    Add a shared task.

    Expected payload: {"title": "Review Q4 Strategy"}

    Returns:
        201: Task created
        400: Missing or blank title
    """
    data = request.get_json(silent=True) or {}
    title = data.get("title")
    if title is not None and not isinstance(title, str):
        return jsonify({"status": "error", "message": "title must be a string"}), 400
    try:
        task = _workspace().add_task(title or "")
    except TaskValidationError as e:
        return jsonify({"status": "error", "message": str(e)}), 400
    return jsonify({"status": "ok", "task": task.to_dict()}), 201


@tasks_bp.route("/api/tasks/<task_id>/toggle", methods=["POST"])
def toggle_task(task_id: str):
    try:
        task = _workspace().toggle_complete(task_id)
    except TaskNotFoundError:
        return _not_found(task_id)
    return jsonify({"status": "ok", "task": task.to_dict()}), 200


@tasks_bp.route("/api/tasks/<task_id>/assign", methods=["POST"])
def assign_task(task_id: str):
    """
    Assign a task to an agent.

    Expected payload: {"agent_id": "knowledge_curator"}
    """
    data = request.get_json(silent=True) or {}
    agent_id = data.get("agent_id")
    if not isinstance(agent_id, str) or not agent_id:
        return jsonify({"status": "error", "message": "agent_id is required"}), 400
    try:
        task = _workspace().assign(task_id, agent_id)
    except UnknownAgentError:
        return jsonify({"status": "error", "message": f"Unknown agent: {agent_id}"}), 400
    except TaskNotFoundError:
        return _not_found(task_id)
    return jsonify({"status": "ok", "task": task.to_dict()}), 200


@tasks_bp.route("/api/tasks/<task_id>", methods=["DELETE"])
def delete_task(task_id: str):
    try:
        _workspace().delete_task(task_id)
    except TaskNotFoundError:
        return _not_found(task_id)
    return jsonify({"status": "ok", "message": "Task deleted"}), 200
