"""Services package for the Agent Collaboration Hub."""

from .agent_registry import Agent, AgentRegistry, PresenceStatus, UnknownAgentError
from .broadcaster import Broadcaster, get_broadcaster, init_broadcaster, shutdown_broadcaster
from .collaboration_manager import (
    CollaborationInFlightError,
    CollaborationManager,
    ExecutionHandle,
    RuleDisabledError,
)
from .collaboration_store import (
    CollaborationNotFoundError,
    CollaborationRecord,
    CollaborationStore,
    StoreError,
)
from .inference_service import InferenceService, InferenceServiceError
from .local_store import LocalStore
from .message_log import Message, MessageLog
from .notification_channels import (
    AudioChannel,
    BannerChannel,
    DeliveryResult,
    DesktopChannel,
    DesktopPermission,
    NotificationCategory,
)
from .notification_router import NotificationRouter
from .openrouter_client import OpenRouterClient, OpenRouterClientError
from .preferences import NotificationPreferences, PreferencesService
from .presence import PresenceSimulator
from .rule_engine import CollaborationRule, RuleSet
from .state_machine import (
    CollaborationEvent,
    InvalidTransitionError,
    TransitionResult,
    validate_transition,
)
from .task_workspace import SharedTask, TaskWorkspace

__all__ = [
    "Agent",
    "AgentRegistry",
    "PresenceStatus",
    "UnknownAgentError",
    "Broadcaster",
    "get_broadcaster",
    "init_broadcaster",
    "shutdown_broadcaster",
    "CollaborationInFlightError",
    "CollaborationManager",
    "ExecutionHandle",
    "RuleDisabledError",
    "CollaborationNotFoundError",
    "CollaborationRecord",
    "CollaborationStore",
    "StoreError",
    "InferenceService",
    "InferenceServiceError",
    "LocalStore",
    "Message",
    "MessageLog",
    "AudioChannel",
    "BannerChannel",
    "DeliveryResult",
    "DesktopChannel",
    "DesktopPermission",
    "NotificationCategory",
    "NotificationRouter",
    "OpenRouterClient",
    "OpenRouterClientError",
    "NotificationPreferences",
    "PreferencesService",
    "PresenceSimulator",
    "CollaborationRule",
    "RuleSet",
    "CollaborationEvent",
    "InvalidTransitionError",
    "TransitionResult",
    "validate_transition",
    "SharedTask",
    "TaskWorkspace",
]
