"""Flask application factory."""

import logging
import logging.config
from pathlib import Path

from flask import Flask, jsonify

from . import __version__
from .config import get_data_dir, get_notifications_config, get_value, load_config
from .database import init_database


def setup_logging(config: dict, app_root: Path) -> None:
    """Configure structured logging to console and file."""
    log_level = get_value(config, "logging", "level", default="INFO")
    log_file = get_value(config, "logging", "file", default="logs/app.log")
    max_bytes = get_value(config, "logging", "max_bytes", default=10_000_000)  # 10MB
    backup_count = get_value(config, "logging", "backup_count", default=5)

    log_path = app_root / log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": log_level,
                "formatter": "standard",
                "filename": str(log_path),
                "maxBytes": max_bytes,
                "backupCount": backup_count,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console", "file"],
        },
    }

    logging.config.dictConfig(logging_config)


def create_app(config_path: str = "config.yaml", testing: bool = False) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_path: Path to the YAML configuration file
        testing: If True, background simulators are not started

    Returns:
        Configured Flask application instance
    """
    app_root = Path(config_path).parent.absolute()
    if not app_root.exists():
        app_root = Path.cwd()

    config = load_config(config_path)

    app = Flask(__name__)

    # TESTING must be set before any background service is started
    if testing:
        app.config["TESTING"] = True

    app.config["DEBUG"] = get_value(config, "server", "debug", default=False)
    app.config["APP_CONFIG"] = config
    app.config["APP_VERSION"] = __version__
    app.config["APP_ROOT"] = str(app_root)

    setup_logging(config, app_root)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting Agent Collaboration Hub v{__version__}")

    db_connected = init_database(app, config)
    app.config["DATABASE_CONNECTED"] = db_connected

    # SSE broadcaster
    from .services.broadcaster import get_broadcaster, init_broadcaster, shutdown_broadcaster
    app.extensions["broadcaster"] = init_broadcaster(config)
    logger.info("SSE broadcaster initialized")

    # Client-local store (preferences, rule state, tasks, messages)
    from .services.local_store import LocalStore
    data_dir = get_data_dir(config, app_root)
    data_dir.mkdir(parents=True, exist_ok=True)
    filename = get_value(config, "storage", "filename", default="local_store.json")
    local_store = LocalStore(data_dir / filename)
    app.extensions["local_store"] = local_store
    logger.info(f"Local store at {local_store.path}")

    # Agents
    from .services.agent_registry import AgentRegistry
    registry = AgentRegistry()
    app.extensions["agent_registry"] = registry

    # Preferences and notification channels
    from .services.notification_channels import (
        AudioChannel, BannerChannel, DesktopChannel, DesktopPermission,
    )
    from .services.notification_router import NotificationRouter
    from .services.preferences import PreferencesService

    notif_config = get_notifications_config(config)
    desktop_permission = DesktopPermission(notifier=notif_config["notifier"])
    app.extensions["desktop_permission"] = desktop_permission

    preferences = PreferencesService(local_store, desktop_permission=desktop_permission)
    app.extensions["preferences"] = preferences
    if not app.config.get("TESTING") and preferences.current.desktop_notifications:
        # Startup diagnostics: resolve the permission state once
        desktop_permission.request_permission()

    router = NotificationRouter(
        preferences=preferences,
        banner=BannerChannel(
            get_broadcaster,
            duration_ms=notif_config["banner_duration_ms"],
            critical_duration_ms=notif_config["critical_duration_ms"],
        ),
        desktop=DesktopChannel(
            desktop_permission,
            icon=notif_config["icon"],
            group=notif_config["group"],
            timeout=notif_config["desktop_timeout"],
        ),
        audio=AudioChannel(
            frequency_hz=notif_config["frequency_hz"],
            duration_ms=notif_config["tone_duration_ms"],
        ),
    )
    app.extensions["notification_router"] = router
    logger.info(f"Notification router initialized (desktop permission={desktop_permission.state})")

    # Rules
    from .services.rule_engine import RuleSet
    rules = RuleSet(store=local_store, registry=registry)
    app.extensions["rules"] = rules
    logger.info(f"Rule engine initialized ({rules.active_count} active rules)")

    # Inference
    from .services.inference_service import InferenceService
    inference_service = InferenceService(config=config)
    app.extensions["inference_service"] = inference_service
    if inference_service.is_available:
        logger.info("Inference service initialized (OpenRouter configured)")
    else:
        logger.warning("Inference service initialized in degraded mode (no API key)")

    # Collaboration lifecycle
    from .services.collaboration_manager import CollaborationManager
    from .services.collaboration_store import CollaborationStore
    manager = CollaborationManager(
        store=CollaborationStore(app),
        inference_service=inference_service,
        router=router,
        rules=rules,
        registry=registry,
        max_workers=get_value(config, "collaboration", "max_workers", default=4),
        follow_ups=get_value(config, "collaboration", "follow_ups", default=True),
        history_limit=get_value(config, "collaboration", "history_limit", default=50),
        broadcaster_getter=get_broadcaster,
    )
    app.extensions["collaboration_manager"] = manager
    logger.info("Collaboration manager initialized")

    # Shared workspace and messages
    from .services.message_log import MessageLog
    from .services.task_workspace import TaskWorkspace
    app.extensions["task_workspace"] = TaskWorkspace(local_store, router=router, registry=registry)
    app.extensions["message_log"] = MessageLog(
        local_store,
        router=router,
        registry=registry,
        reply_delay=get_value(config, "messages", "reply_delay_seconds", default=1.5),
    )

    # Presence simulator (only in non-testing environments)
    if not app.config.get("TESTING") and get_value(config, "presence", "enabled", default=True):
        from .services.presence import PresenceSimulator
        simulator = PresenceSimulator(
            registry,
            interval=get_value(config, "presence", "interval_seconds", default=5),
            broadcaster_getter=get_broadcaster,
        )
        simulator.start()
        app.extensions["presence_simulator"] = simulator

    # Register shutdown cleanup
    import atexit

    @atexit.register
    def cleanup():
        # Wrap in try-except as logging may be shut down during atexit
        try:
            if "presence_simulator" in app.extensions:
                app.extensions["presence_simulator"].stop()
            app.extensions["message_log"].stop()
            app.extensions["collaboration_manager"].shutdown()
            shutdown_broadcaster()
        except Exception as e:
            logger.warning(f"Error during shutdown cleanup: {e}")

    register_error_handlers(app)
    register_blueprints(app)
    register_cli_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    """Register JSON error handlers for 404, 405 and 500 errors."""

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"status": "error", "message": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"status": "error", "message": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        # In production, don't expose error details
        if not app.debug:
            return jsonify({"status": "error", "message": "Internal server error"}), 500
        raise error


def register_blueprints(app: Flask) -> None:
    """Register application blueprints."""
    from .routes.agents import agents_bp
    from .routes.collaborations import collaborations_bp
    from .routes.health import health_bp
    from .routes.messages import messages_bp
    from .routes.notifications import notifications_bp
    from .routes.rules import rules_bp
    from .routes.sse import sse_bp
    from .routes.tasks import tasks_bp

    app.register_blueprint(agents_bp)
    app.register_blueprint(collaborations_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(messages_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(rules_bp)
    app.register_blueprint(sse_bp)
    app.register_blueprint(tasks_bp)


def register_cli_commands(app: Flask) -> None:
    """Register Flask CLI command groups."""
    from .cli.collab_cli import collab_cli

    app.cli.add_command(collab_cli)
