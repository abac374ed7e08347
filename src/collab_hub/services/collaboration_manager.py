"""Collaboration lifecycle manager.

Creates collaborations from rule matches or manual triggers, runs them on a
bounded worker pool, persists every status change through the store and
hands the outcome to the notification router.

Per collaboration the ``pending`` write happens before the run is submitted
and the ``in_progress`` write happens before the terminal write. There is no
ordering across collaborations.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone

from ..models.collaboration import CollaborationPriority, CollaborationStatus
from .agent_registry import AgentRegistry
from .collaboration_store import (
    CollaborationNotFoundError,
    CollaborationRecord,
    CollaborationStore,
    StoreError,
)
from .inference_service import InferenceService
from .notification_router import NotificationRouter
from .prompt_registry import RESULT_SCHEMA, build_collaboration_prompt
from .rule_engine import CollaborationRule, RuleSet
from .state_machine import (
    CollaborationEvent,
    InvalidTransitionError,
    TransitionResult,
    require_transition,
    validate_transition,
)

logger = logging.getLogger(__name__)

WEB_SEARCH_AGENTS = frozenset({"market_monitor"})

# (completed target, follow-up target, follow-up trigger)
FOLLOW_UPS = {
    "strategy_doc_generator": ("knowledge_curator", "document_created"),
}


class CollaborationInFlightError(Exception):
    """An execution for the same source/target pair is already running."""

    def __init__(self, key: str, collaboration_id: int | None = None):
        self.key = key
        self.collaboration_id = collaboration_id
        super().__init__(f"Collaboration already in flight for {key}")


class RuleDisabledError(Exception):
    """A manual trigger names a triple whose rule is switched off."""

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Rule '{rule_id}' is disabled")


class CollaborationCancelledError(Exception):
    """The run was cancelled through its handle."""


class ExecutionHandle:
    """Cancellable handle on a submitted collaboration run.

    ``result()`` returns the final ``CollaborationRecord``. Cancelling before
    the run starts marks the record failed immediately; cancelling during
    the run marks it failed once the inference call returns.
    """

    def __init__(self, collaboration_id: int, future: Future, token: threading.Event,
                 on_cancelled=None):
        self.collaboration_id = collaboration_id
        self._future = future
        self._token = token
        self._on_cancelled = on_cancelled
        self._cancelled_record: CollaborationRecord | None = None

    @property
    def cancelled(self) -> bool:
        return self._token.is_set()

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the run already finished."""
        if self._future.done():
            return False
        self._token.set()
        if self._future.cancel() and self._on_cancelled is not None:
            self._cancelled_record = self._on_cancelled()
        return True

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> CollaborationRecord | None:
        if self._future.cancelled():
            return self._cancelled_record
        return self._future.result(timeout=timeout)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CollaborationManager:
    """Owns the pending → in_progress → completed/failed lifecycle."""

    def __init__(
        self,
        store: CollaborationStore,
        inference_service: InferenceService,
        router: NotificationRouter,
        rules: RuleSet,
        registry: AgentRegistry,
        max_workers: int = 4,
        follow_ups: bool = True,
        history_limit: int = 50,
        broadcaster_getter=None,
    ):
        self._store = store
        self._inference = inference_service
        self._router = router
        self._rules = rules
        self._registry = registry
        self._follow_ups = follow_ups
        self._history_limit = history_limit
        self._get_broadcaster = broadcaster_getter
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="collab-exec"
        )
        self._lock = threading.Lock()
        # rule key -> collaboration id (None while the record is being created)
        self._in_flight: dict[str, int | None] = {}

    # --- in-flight tracking ---

    def _claim(self, key: str) -> None:
        with self._lock:
            if key in self._in_flight:
                raise CollaborationInFlightError(key, self._in_flight[key])
            self._in_flight[key] = None

    def _assign(self, key: str, collaboration_id: int) -> None:
        with self._lock:
            self._in_flight[key] = collaboration_id

    def _release(self, key: str, collaboration_id: int | None = None) -> None:
        """Drop a claim. With an id, only that collaboration's claim is dropped."""
        with self._lock:
            if collaboration_id is None or self._in_flight.get(key) == collaboration_id:
                self._in_flight.pop(key, None)

    def in_flight(self) -> dict[str, int | None]:
        with self._lock:
            return dict(self._in_flight)

    # --- triggering ---

    def _resolve_priority(
        self, context: dict, rule: CollaborationRule | None,
    ) -> CollaborationPriority:
        requested = context.get("priority")
        if requested is not None:
            try:
                return CollaborationPriority(requested)
            except ValueError:
                logger.warning(f"Ignoring invalid context priority: {requested!r}")
        if rule is not None:
            return rule.priority
        return CollaborationPriority.MEDIUM

    def trigger(
        self,
        source_agent: str,
        target_agent: str,
        trigger_type: str,
        context: dict | None = None,
        rule: CollaborationRule | None = None,
        priority: CollaborationPriority | str | None = None,
    ) -> ExecutionHandle:
        """Create a pending collaboration and start executing it.

        Raises:
            UnknownAgentError: either agent is not registered
            ValueError: source and target are the same agent
            RuleDisabledError: no rule was passed and the triple's rule is disabled
            CollaborationInFlightError: the pair already has a run in flight
            StoreError: the pending record could not be written
        """
        self._registry.get(source_agent)
        self._registry.get(target_agent)
        if source_agent == target_agent:
            raise ValueError("An agent cannot collaborate with itself")

        context = dict(context or {})
        if rule is None:
            rule = self._rules.find_rule(source_agent, target_agent, trigger_type)
            if rule is not None and not rule.enabled:
                raise RuleDisabledError(rule.id)
        if priority is None:
            priority = self._resolve_priority(context, rule)

        key = f"{source_agent}-{target_agent}"
        self._claim(key)
        try:
            record = self._store.create(
                source_agent=source_agent,
                target_agent=target_agent,
                trigger_reason=trigger_type,
                context=context,
                priority=CollaborationPriority(priority),
                rule_id=rule.id if rule else None,
            )
        except StoreError:
            self._release(key)
            self._router.alert_failure(
                f"Could not start collaboration {self._pair_label(source_agent, target_agent)}"
            )
            raise

        logger.info(
            f"Collaboration {record.id} triggered: {key} on {trigger_type} "
            f"(priority={record.priority.value}, rule={record.rule_id})"
        )
        self._publish(record)
        return self._submit(record, key)

    def dispatch_event(
        self,
        source_agent: str,
        target_agent: str,
        trigger_type: str,
        context: dict | None = None,
    ) -> ExecutionHandle | None:
        """Rule path: trigger only if an enabled rule matches the triple."""
        rule = self._rules.match_rule(source_agent, target_agent, trigger_type)
        if rule is None:
            logger.debug(f"No enabled rule for {source_agent}->{target_agent} on {trigger_type}")
            return None
        return self.trigger(source_agent, target_agent, trigger_type, context, rule=rule)

    def execute(self, collaboration: CollaborationRecord) -> ExecutionHandle:
        """Submit a pending collaboration for execution.

        The stored status is checked, not the one on ``collaboration``, so a
        stale snapshot cannot restart a finished record.
        """
        return self.execute_pending(collaboration.id)

    def execute_pending(self, collaboration_id: int) -> ExecutionHandle:
        current = self._store.get(collaboration_id)
        result = validate_transition(current.status, CollaborationEvent.START)
        if not result.valid:
            raise InvalidTransitionError(result)
        key = current.rule_key
        self._claim(key)
        return self._submit(current, key)

    def retrigger(self, collaboration_id: int) -> ExecutionHandle:
        """Start a new collaboration copying a failed one. The old record is untouched."""
        original = self._store.get(collaboration_id)
        if original.status != CollaborationStatus.FAILED:
            raise InvalidTransitionError(TransitionResult(
                valid=False,
                from_state=original.status,
                to_state=original.status,
                reason=f"Only failed collaborations can be re-triggered (is {original.status.value})",
            ))
        rule = None
        if original.rule_id:
            rule = self._rules.find_rule(
                original.source_agent, original.target_agent, original.trigger_reason
            )
        logger.info(f"Re-triggering failed collaboration {collaboration_id}")
        return self.trigger(
            original.source_agent,
            original.target_agent,
            original.trigger_reason,
            context=original.context,
            rule=rule,
            priority=original.priority,
        )

    # --- execution ---

    def _submit(self, record: CollaborationRecord, key: str) -> ExecutionHandle:
        self._assign(key, record.id)
        token = threading.Event()
        try:
            future = self._executor.submit(self._run, record, token)
        except RuntimeError:
            self._release(key)
            raise
        # Covers runs cancelled before they start; finished runs release in _run
        future.add_done_callback(lambda _f: self._release(key, record.id))
        return ExecutionHandle(
            record.id, future, token,
            on_cancelled=lambda: self._fail_cancelled(record.id),
        )

    def _run(self, record: CollaborationRecord, token: threading.Event) -> CollaborationRecord | None:
        try:
            return self._execute_run(record, token)
        except StoreError:
            self._router.alert_failure(f"Collaboration {record.id} could not be saved")
            raise
        finally:
            self._release(record.rule_key, record.id)

    def _execute_run(self, record: CollaborationRecord, token: threading.Event) -> CollaborationRecord | None:
        try:
            if token.is_set():
                return self._fail(record, "Cancelled before start")
            record = self._store.update(record.id, {
                "status": require_transition(record.status, CollaborationEvent.START),
                "started_at": _now(),
            }, expected_status=record.status)
        except CollaborationNotFoundError:
            logger.info(f"Collaboration {record.id} was removed before it started")
            return None
        except InvalidTransitionError as e:
            logger.warning(f"Collaboration {record.id} not started: {e}")
            return None
        logger.info(f"Collaboration {record.id} in progress: {record.rule_key}")
        self._publish(record)

        try:
            prompt = build_collaboration_prompt(record)
            result = self._inference.infer(
                prompt,
                RESULT_SCHEMA,
                web_search=record.target_agent in WEB_SEARCH_AGENTS,
            )
            if token.is_set():
                raise CollaborationCancelledError("Cancelled during execution")
        except Exception as e:
            if not isinstance(e, CollaborationCancelledError):
                logger.warning(f"Collaboration {record.id} execution failed: {e}")
            return self._fail(record, str(e) or type(e).__name__)

        try:
            record = self._store.update(record.id, {
                "status": require_transition(record.status, CollaborationEvent.SUCCEED),
                "result": result,
                "completed_at": _now(),
            }, expected_status=record.status)
        except CollaborationNotFoundError:
            logger.info(f"Collaboration {record.id} was removed while running")
            return None
        except InvalidTransitionError as e:
            logger.warning(f"Collaboration {record.id} result discarded: {e}")
            return None

        logger.info(f"Collaboration {record.id} completed")
        self._publish(record)
        self._announce_completion(record)
        self._chain_follow_up(record)
        return record

    def _fail(self, record: CollaborationRecord, message: str) -> CollaborationRecord | None:
        try:
            record = self._store.update(record.id, {
                "status": require_transition(record.status, CollaborationEvent.FAIL),
                "error_message": message,
                "completed_at": _now(),
            }, expected_status=record.status)
        except CollaborationNotFoundError:
            logger.info(f"Collaboration {record.id} was removed before it could be marked failed")
            return None
        except InvalidTransitionError as e:
            logger.warning(f"Collaboration {record.id} not marked failed: {e}")
            return None
        logger.info(f"Collaboration {record.id} failed: {message}")
        self._publish(record)
        self._router.alert_failure(f"Collaboration failed: {message}")
        return record

    def _fail_cancelled(self, collaboration_id: int) -> CollaborationRecord | None:
        try:
            record = self._store.get(collaboration_id)
        except (CollaborationNotFoundError, StoreError) as e:
            logger.warning(f"Could not load cancelled collaboration {collaboration_id}: {e}")
            return None
        if record.status != CollaborationStatus.PENDING:
            return record
        return self._fail(record, "Cancelled before start")

    def _announce_completion(self, record: CollaborationRecord) -> None:
        label = self._pair_label(record.source_agent, record.target_agent)
        target = self._registry.display_name(record.target_agent)
        title = (record.result or {}).get("title")
        text = f"{target} completed collaboration" + (f": {title}" if title else "")
        options = {"collaboration_id": record.id, "pair": label}

        self._router.announce("message", text, options)
        if record.priority == CollaborationPriority.CRITICAL:
            self._router.announce(
                "critical", f"Critical collaboration completed: {label}", options
            )

    def _chain_follow_up(self, record: CollaborationRecord) -> None:
        if not self._follow_ups:
            return
        follow_up = FOLLOW_UPS.get(record.target_agent)
        if follow_up is None:
            return
        target, trigger_type = follow_up
        try:
            handle = self.dispatch_event(
                record.target_agent, target, trigger_type, context=record.result or {}
            )
        except CollaborationInFlightError as e:
            logger.info(f"Follow-up for collaboration {record.id} skipped: {e}")
            return
        except StoreError as e:
            logger.error(f"Follow-up for collaboration {record.id} not created: {e}")
            return
        if handle is not None:
            logger.info(
                f"Collaboration {record.id} chained follow-up {handle.collaboration_id} "
                f"({record.target_agent}->{target})"
            )

    # --- queries ---

    def get(self, collaboration_id: int) -> CollaborationRecord:
        return self._store.get(collaboration_id)

    def remove(self, collaboration_id: int) -> bool:
        removed = self._store.delete(collaboration_id)
        if removed:
            logger.info(f"Collaboration {collaboration_id} removed")
            self._broadcast("collaboration_removed", {"id": collaboration_id})
        return removed

    def list_collaborations(
        self,
        status: CollaborationStatus | str | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[CollaborationRecord]:
        return self._store.filter(
            status=status,
            search=search,
            limit=limit or self._history_limit,
        )

    def get_stats(self) -> dict:
        by_status = self._store.count_by_status()
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "active_rules": self._rules.active_count,
            "total_rules": len(self._rules.list_rules()),
            "in_flight": len(self.in_flight()),
            "agents": self._store.count_by_agent(),
        }

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Collaboration manager stopped")

    # --- helpers ---

    def _pair_label(self, source_agent: str, target_agent: str) -> str:
        return (
            f"{self._registry.display_name(source_agent)} → "
            f"{self._registry.display_name(target_agent)}"
        )

    def _publish(self, record: CollaborationRecord) -> None:
        self._broadcast("collaboration", record.to_dict())

    def _broadcast(self, event_type: str, data: dict) -> None:
        if self._get_broadcaster is None:
            return
        try:
            self._get_broadcaster().broadcast(event_type, data)
        except Exception as e:
            logger.debug(f"Failed to broadcast {event_type} (non-fatal): {e}")
