"""Configuration loader with YAML and environment variable support."""

import os
from pathlib import Path
from typing import Any

import yaml


# Default configuration values
DEFAULTS = {
    "server": {
        "host": "127.0.0.1",
        "port": 5060,
        "debug": False,
    },
    "logging": {
        "level": "INFO",
        "file": "logs/app.log",
    },
    "database": {
        "url": "",
        "host": "localhost",
        "port": 5432,
        "name": "collab_hub",
        "user": "postgres",
        "password": "",
        "pool_size": 10,
        "pool_timeout": 30,
    },
    "storage": {
        "data_dir": "data",
        "filename": "local_store.json",
    },
    "sse": {
        "heartbeat_interval_seconds": 30,
        "max_connections": 100,
        "connection_timeout_seconds": 60,
        "retry_after_seconds": 5,
    },
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1",
        "timeout": 60,
        "models": {
            "collaboration": "anthropic/claude-haiku-4.5",
        },
    },
    "collaboration": {
        "max_workers": 4,
        "follow_ups": True,
        "history_limit": 50,
    },
    "notifications": {
        "desktop": {
            "notifier": "terminal-notifier",
            "icon": "",
            "group": "collab-hub",
            "timeout_seconds": 5,
        },
        "banner": {
            "duration_ms": 4000,
            "critical_duration_ms": 10000,
        },
        "audio": {
            "frequency_hz": 800,
            "duration_ms": 300,
        },
    },
    "presence": {
        "enabled": True,
        "interval_seconds": 5,
    },
    "messages": {
        "reply_delay_seconds": 1.5,
    },
}

# Environment variable mappings
# Maps env var name to (config_section, config_key, type_converter)
ENV_MAPPINGS = {
    "FLASK_SERVER_HOST": ("server", "host", str),
    "FLASK_SERVER_PORT": ("server", "port", int),
    "FLASK_DEBUG": ("server", "debug", lambda x: x.lower() in ("true", "1", "yes")),
    "FLASK_LOG_LEVEL": ("logging", "level", str),
    "DATABASE_HOST": ("database", "host", str),
    "DATABASE_PORT": ("database", "port", int),
    "DATABASE_NAME": ("database", "name", str),
    "DATABASE_USER": ("database", "user", str),
    "DATABASE_PASSWORD": ("database", "password", str),
    "DATABASE_POOL_SIZE": ("database", "pool_size", int),
    "DATABASE_POOL_TIMEOUT": ("database", "pool_timeout", int),
    "COLLAB_HUB_DATA_DIR": ("storage", "data_dir", str),
    "SSE_MAX_CONNECTIONS": ("sse", "max_connections", int),
    "OPENROUTER_BASE_URL": ("openrouter", "base_url", str),
    "OPENROUTER_TIMEOUT": ("openrouter", "timeout", int),
    "COLLABORATION_MAX_WORKERS": ("collaboration", "max_workers", int),
    "PRESENCE_ENABLED": ("presence", "enabled", lambda x: x.lower() in ("true", "1", "yes")),
    "PRESENCE_INTERVAL_SECONDS": ("presence", "interval_seconds", float),
    "MESSAGES_REPLY_DELAY_SECONDS": ("messages", "reply_delay_seconds", float),
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_config(config_path: Path) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r") as f:
        content = yaml.safe_load(f)
        return content if content else {}


def apply_env_overrides(config: dict) -> dict:
    """Apply environment variable overrides to configuration."""
    result = config.copy()

    for env_var, (section, key, converter) in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is not None:
            result[section] = dict(result.get(section, {}))
            result[section][key] = converter(value)

    return result


def load_config(config_path: str | Path = "config.yaml") -> dict:
    """Load config: env vars > config.yaml > DEFAULTS."""
    if isinstance(config_path, str):
        config_path = Path(config_path)

    config = deep_merge(DEFAULTS, load_yaml_config(config_path))
    return apply_env_overrides(config)


def get_value(config: dict, *keys: str, default: Any = None) -> Any:
    """Get a nested configuration value by key path."""
    result = config
    for key in keys:
        if isinstance(result, dict) and key in result:
            result = result[key]
        else:
            return default
    return result


def _extract_db_name(url: str) -> str:
    """Extract the database name from a PostgreSQL URL, stripping query params."""
    if "/" not in url:
        return ""
    name = url.rsplit("/", 1)[-1]
    if "?" in name:
        name = name.split("?", 1)[0]
    return name


def get_database_url(config: dict) -> str:
    """Build database URL.

    Precedence: DATABASE_URL env var, then ``database.url``, then a
    PostgreSQL URL assembled from the discrete ``database`` fields.
    """
    database_url = os.environ.get("DATABASE_URL") or get_value(config, "database", "url")
    if database_url:
        _guard_production_db(database_url)
        return database_url

    db = config.get("database", {})
    host = db.get("host", "localhost")
    port = db.get("port", 5432)
    name = db.get("name", "collab_hub")
    user = db.get("user", "postgres")
    password = db.get("password", "")

    if password:
        url = f"postgresql://{user}:{password}@{host}:{port}/{name}"
    else:
        url = f"postgresql://{user}@{host}:{port}/{name}"

    _guard_production_db(url)
    return url


def _guard_production_db(database_url: str) -> None:
    """Raise RuntimeError if tests are trying to connect to a non-test PostgreSQL database.

    Test databases MUST have a name ending with '_test'. SQLite URLs are
    always allowed since they are file or memory scoped.
    """
    import sys
    if "_pytest" not in sys.modules and "pytest" not in sys.modules:
        return
    if not database_url.startswith("postgresql"):
        return

    db_name = _extract_db_name(database_url)
    if not db_name:
        return

    if not db_name.endswith("_test"):
        raise RuntimeError(
            f"SAFETY GUARD: Refusing to connect to database '{db_name}' "
            f"during test run. Test databases MUST have names ending with "
            f"'_test' (e.g. '{db_name}_test'). Set the DATABASE_URL "
            f"environment variable to a test database URL."
        )


def mask_database_url(url: str) -> str:
    """Mask the password in a database URL for safe logging."""
    import re
    return re.sub(r"(postgresql://[^:]+:)[^@]+(@)", r"\1***\2", url)


def get_data_dir(config: dict, app_root: Path) -> Path:
    """Resolve the directory holding the client-local store."""
    data_dir = Path(os.path.expanduser(get_value(config, "storage", "data_dir", default="data")))
    if not data_dir.is_absolute():
        data_dir = app_root / data_dir
    return data_dir


def get_notifications_config(config: dict) -> dict:
    """Get notification channel configuration with defaults."""
    return {
        "notifier": get_value(
            config, "notifications", "desktop", "notifier", default="terminal-notifier"
        ),
        "icon": get_value(config, "notifications", "desktop", "icon", default="") or None,
        "group": get_value(config, "notifications", "desktop", "group", default="collab-hub"),
        "desktop_timeout": get_value(
            config, "notifications", "desktop", "timeout_seconds", default=5
        ),
        "banner_duration_ms": get_value(
            config, "notifications", "banner", "duration_ms", default=4000
        ),
        "critical_duration_ms": get_value(
            config, "notifications", "banner", "critical_duration_ms", default=10000
        ),
        "frequency_hz": get_value(config, "notifications", "audio", "frequency_hz", default=800),
        "tone_duration_ms": get_value(config, "notifications", "audio", "duration_ms", default=300),
    }
