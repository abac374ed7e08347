"""SSE (Server-Sent Events) endpoint for banners, presence and collaboration updates."""

import logging
from typing import Generator, Optional

from flask import Blueprint, Response, request

from ..services.broadcaster import get_broadcaster

logger = logging.getLogger(__name__)

sse_bp = Blueprint("sse", __name__)


def parse_filter_types(types_param: Optional[str]) -> Optional[list[str]]:
    """
    Parse the types query parameter into a list of event types.

    Args:
        types_param: Comma-separated event types or None

    Returns:
        List of event types or None if not specified
    """
    if not types_param:
        return None
    return [t.strip() for t in types_param.split(",") if t.strip()]


def generate_events(client_id: str) -> Generator[str, None, None]:
    """
    Yield SSE-formatted events for a registered client until it goes away.

    A heartbeat comment is sent first so the response headers flush, and
    again whenever no event arrives within the heartbeat interval.
    """
    broadcaster = get_broadcaster()
    yield ": heartbeat\n\n"

    try:
        while True:
            event = broadcaster.get_next_event(
                client_id, timeout=broadcaster.heartbeat_interval
            )
            if event is None:
                yield ": heartbeat\n\n"
            else:
                yield event.format()

            client = broadcaster.get_client(client_id)
            if client is None or not client.is_active:
                break

    except GeneratorExit:
        logger.info(f"Client {client_id} disconnected (generator exit)")
    finally:
        broadcaster.unregister_client(client_id)
        logger.debug(f"Client {client_id} unregistered from generator cleanup")


@sse_bp.route("/api/events/stream")
def events():
    """
    SSE endpoint for real-time event streaming.

    Query Parameters:
        types: Comma-separated list of event types (banner, presence, collaboration)
        agent_id: Only events involving this agent

    Returns:
        SSE stream or HTTP 503 if connection limit reached
    """
    broadcaster = get_broadcaster()

    types = parse_filter_types(request.args.get("types"))
    agent_id = request.args.get("agent_id") or None

    client_id = broadcaster.register_client(types=types, agent_id=agent_id)
    if client_id is None:
        logger.warning("SSE connection rejected: limit reached")
        response = Response(
            "Service temporarily unavailable - connection limit reached",
            status=503,
            mimetype="text/plain",
        )
        response.headers["Retry-After"] = str(broadcaster.retry_after)
        return response

    logger.info(f"SSE client {client_id} connected: types={types}, agent_id={agent_id}")

    response = Response(generate_events(client_id), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"  # Disable nginx buffering
    return response
