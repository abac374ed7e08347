"""Client-local key/value store backed by a single JSON file.

Values are opaque strings; callers serialise their own payloads. Reads
never fail hard: a missing or corrupt file is treated as an empty store.
Writes rewrite the whole file atomically (temp file + rename). There is no
cross-process concurrency control, so two processes writing the same file
resolve as last writer wins.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class LocalStore:
    """Synchronous key -> string store persisted to ``path``."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                content = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Local store {self.path} unreadable, treating as empty: {e}")
            return {}
        if not isinstance(content, dict):
            logger.warning(f"Local store {self.path} is not an object, treating as empty")
            return {}
        return {k: v for k, v in content.items() if isinstance(v, str)}

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            suffix=".json",
            prefix="store_",
            dir=self.path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def delete(self, key: str) -> bool:
        with self._lock:
            data = self._read_all()
            if key not in data:
                return False
            del data[key]
            self._write_all(data)
            return True


def load_json(store: LocalStore, key: str, default: Any = None) -> Any:
    """Read and decode a JSON value, returning ``default`` on absence or corruption."""
    raw = store.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning(f"Malformed JSON under local store key '{key}', using defaults")
        return default


def save_json(store: LocalStore, key: str, value: Any) -> None:
    """Encode ``value`` as JSON and write it under ``key``."""
    store.set(key, json.dumps(value))
