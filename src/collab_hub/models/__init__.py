"""Database models package.

Models:
    - Collaboration: a unit of cross-agent work with a 4-state lifecycle

Enums:
    - CollaborationStatus: pending, in_progress, completed, failed
    - CollaborationPriority: low, medium, high, critical

Rules, preferences, tasks and messages are not database models; they live
in the client-local store (see services.local_store).
"""

from .collaboration import Collaboration, CollaborationPriority, CollaborationStatus

__all__ = [
    # Models
    "Collaboration",
    # Enums
    "CollaborationStatus",
    "CollaborationPriority",
]
