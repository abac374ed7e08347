"""Shared task list between the user and agents.

The whole list is rewritten to the local store on every mutation.
"""

import logging
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from .agent_registry import AgentRegistry
from .local_store import LocalStore, load_json, save_json
from .notification_router import NotificationRouter

logger = logging.getLogger(__name__)

TASKS_KEY = "agent_shared_tasks"


class TaskValidationError(ValueError):
    """Rejected task input."""


class TaskNotFoundError(KeyError):
    """No task with the given id."""


@dataclass
class SharedTask:
    id: str
    title: str
    created_at: str
    completed: bool = False
    assigned_to: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_stored(cls, data) -> "SharedTask | None":
        if not isinstance(data, dict):
            return None
        try:
            task_id, title = data["id"], data["title"]
        except KeyError:
            return None
        completed = data.get("completed")
        assigned_to = data.get("assigned_to")
        return cls(
            id=str(task_id),
            title=str(title),
            created_at=str(data.get("created_at") or ""),
            # Only real booleans; a stored "false" string must not read as done
            completed=completed if isinstance(completed, bool) else False,
            assigned_to=assigned_to if isinstance(assigned_to, str) and assigned_to else None,
        )


class TaskWorkspace:
    def __init__(
        self,
        store: LocalStore,
        router: NotificationRouter | None = None,
        registry: AgentRegistry | None = None,
    ):
        self._store = store
        self._router = router
        self._registry = registry
        self._lock = threading.Lock()

    def _load(self) -> list[SharedTask]:
        stored = load_json(self._store, TASKS_KEY, default=[])
        if not isinstance(stored, list):
            logger.warning("Stored task list is not an array, starting empty")
            return []
        tasks = [SharedTask.from_stored(item) for item in stored]
        return [task for task in tasks if task is not None]

    def _save(self, tasks: list[SharedTask]) -> None:
        save_json(self._store, TASKS_KEY, [task.to_dict() for task in tasks])

    @staticmethod
    def _find(tasks: list[SharedTask], task_id: str) -> SharedTask:
        for task in tasks:
            if task.id == task_id:
                return task
        raise TaskNotFoundError(task_id)

    def list_tasks(self) -> list[SharedTask]:
        with self._lock:
            return self._load()

    def add_task(self, title: str) -> SharedTask:
        title = (title or "").strip()
        if not title:
            raise TaskValidationError("Task title must not be empty")

        task = SharedTask(
            id=uuid.uuid4().hex,
            title=title,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            tasks = self._load()
            tasks.append(task)
            self._save(tasks)

        logger.info(f"Task added: {task.id} '{title}'")
        self._announce(f"New shared task: {title}", task)
        return task

    def toggle_complete(self, task_id: str) -> SharedTask:
        with self._lock:
            tasks = self._load()
            task = self._find(tasks, task_id)
            task.completed = not task.completed
            self._save(tasks)
        return task

    def assign(self, task_id: str, agent_id: str) -> SharedTask:
        if self._registry is not None:
            self._registry.get(agent_id)
        with self._lock:
            tasks = self._load()
            task = self._find(tasks, task_id)
            task.assigned_to = agent_id
            self._save(tasks)

        name = self._registry.display_name(agent_id) if self._registry else agent_id
        logger.info(f"Task {task_id} assigned to {agent_id}")
        self._announce(f"Task assigned to {name}: {task.title}", task)
        return task

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            tasks = self._load()
            task = self._find(tasks, task_id)
            tasks.remove(task)
            self._save(tasks)

    def _announce(self, text: str, task: SharedTask) -> None:
        if self._router is not None:
            self._router.announce("task", text, {"task_id": task.id})
