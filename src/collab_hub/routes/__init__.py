"""Routes package for the Agent Collaboration Hub."""

# SECURITY NOTE: Authentication is intentionally absent from all routes.
# The hub is deployed on a private network and is not accessible from the
# public internet. Access control is handled at the network layer.

from .health import health_bp
from .sse import sse_bp

__all__ = ["health_bp", "sse_bp"]
