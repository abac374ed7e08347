"""Collaboration rule engine.

Rules map a (source agent, target agent, trigger type) triple to an action.
The table is fixed per deployment; only each rule's ``enabled`` flag
changes at runtime, and that flag is persisted in the local store.
"""

import logging
import threading
from dataclasses import asdict, dataclass, replace
from typing import Iterable

from ..models.collaboration import CollaborationPriority
from .agent_registry import AgentRegistry
from .local_store import LocalStore, load_json, save_json

logger = logging.getLogger(__name__)

RULE_STATE_KEY = "agent_collaboration_rules"


class RuleConfigurationError(ValueError):
    """The rule table violates a structural invariant."""


class RuleNotFoundError(KeyError):
    """No rule with the given id exists."""


@dataclass(frozen=True)
class CollaborationRule:
    id: str
    source_agent: str
    target_agent: str
    trigger_type: str
    action_label: str
    description: str
    priority: CollaborationPriority = CollaborationPriority.MEDIUM
    enabled: bool = True

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source_agent, self.target_agent, self.trigger_type)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["priority"] = self.priority.value
        return data


DEFAULT_RULES = (
    CollaborationRule(
        id="critical_alert_to_risk_plan",
        source_agent="market_monitor",
        target_agent="strategy_doc_generator",
        trigger_type="critical_alert",
        action_label="Generate Risk Mitigation Plan",
        description="Critical market alerts trigger automatic risk plan generation",
        priority=CollaborationPriority.CRITICAL,
    ),
    CollaborationRule(
        id="high_alert_to_opportunity",
        source_agent="market_monitor",
        target_agent="strategy_doc_generator",
        trigger_type="opportunity_detected",
        action_label="Generate Opportunity Assessment",
        description="Market opportunities trigger opportunity assessments",
        priority=CollaborationPriority.HIGH,
    ),
    CollaborationRule(
        id="new_insight_to_knowledge",
        source_agent="market_monitor",
        target_agent="knowledge_curator",
        trigger_type="new_insight",
        action_label="Suggest Knowledge Links",
        description="New insights trigger knowledge linking suggestions",
        priority=CollaborationPriority.MEDIUM,
    ),
    CollaborationRule(
        id="doc_to_knowledge_link",
        source_agent="strategy_doc_generator",
        target_agent="knowledge_curator",
        trigger_type="document_created",
        action_label="Link to Knowledge Base",
        description="New documents are automatically linked to knowledge items",
        priority=CollaborationPriority.MEDIUM,
    ),
    CollaborationRule(
        id="knowledge_gap_to_market",
        source_agent="knowledge_curator",
        target_agent="market_monitor",
        trigger_type="knowledge_gap",
        action_label="Request Market Scan",
        description="Knowledge gaps trigger targeted market scans",
        priority=CollaborationPriority.LOW,
    ),
    CollaborationRule(
        id="pattern_to_doc",
        source_agent="knowledge_curator",
        target_agent="strategy_doc_generator",
        trigger_type="pattern_detected",
        action_label="Generate Pattern Playbook",
        description="Detected patterns trigger playbook generation",
        priority=CollaborationPriority.HIGH,
    ),
)


class RuleSet:
    """The deployment's rule table with toggleable enablement.

    Construction validates the table: ids and (source, target, trigger)
    triples must be unique, a rule may not target its own source, and when
    a registry is given both agents must exist in it.
    """

    def __init__(
        self,
        rules: Iterable[CollaborationRule] = DEFAULT_RULES,
        store: LocalStore | None = None,
        registry: AgentRegistry | None = None,
    ):
        self._store = store
        self._lock = threading.Lock()
        self._rules: dict[str, CollaborationRule] = {}
        self._by_key: dict[tuple[str, str, str], str] = {}

        for rule in rules:
            self._validate(rule, registry)
            self._rules[rule.id] = rule
            self._by_key[rule.key] = rule.id

        self._restore_state()

    def _validate(self, rule: CollaborationRule, registry: AgentRegistry | None) -> None:
        if rule.source_agent == rule.target_agent:
            raise RuleConfigurationError(
                f"Rule '{rule.id}' has the same source and target agent: {rule.source_agent}"
            )
        if rule.id in self._rules:
            raise RuleConfigurationError(f"Duplicate rule id: {rule.id}")
        if rule.key in self._by_key:
            raise RuleConfigurationError(
                f"Rules '{self._by_key[rule.key]}' and '{rule.id}' share the key "
                f"{rule.source_agent} -> {rule.target_agent} on {rule.trigger_type}"
            )
        if registry is not None:
            for agent_id in (rule.source_agent, rule.target_agent):
                if agent_id not in registry:
                    raise RuleConfigurationError(
                        f"Rule '{rule.id}' references unknown agent: {agent_id}"
                    )

    def _restore_state(self) -> None:
        if self._store is None:
            return
        stored = load_json(self._store, RULE_STATE_KEY, default={})
        if not isinstance(stored, dict):
            logger.warning("Stored rule state is not an object, ignoring")
            return
        for rule_id, enabled in stored.items():
            if rule_id in self._rules and isinstance(enabled, bool):
                self._rules[rule_id] = replace(self._rules[rule_id], enabled=enabled)

    def _persist(self) -> None:
        if self._store is None:
            return
        save_json(
            self._store,
            RULE_STATE_KEY,
            {rule_id: rule.enabled for rule_id, rule in self._rules.items()},
        )

    def list_rules(self) -> list[CollaborationRule]:
        return list(self._rules.values())

    def get(self, rule_id: str) -> CollaborationRule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise RuleNotFoundError(rule_id) from None

    @property
    def active_count(self) -> int:
        return sum(1 for rule in self._rules.values() if rule.enabled)

    def find_rule(
        self, source_agent: str, target_agent: str, trigger_type: str,
    ) -> CollaborationRule | None:
        """Look up the rule for a triple regardless of enablement."""
        rule_id = self._by_key.get((source_agent, target_agent, trigger_type))
        return self._rules[rule_id] if rule_id else None

    def match_rule(
        self, source_agent: str, target_agent: str, trigger_type: str,
    ) -> CollaborationRule | None:
        """Return the enabled rule for a triple, or None."""
        rule = self.find_rule(source_agent, target_agent, trigger_type)
        if rule is None or not rule.enabled:
            return None
        return rule

    def rules_for_source(self, source_agent: str, trigger_type: str) -> list[CollaborationRule]:
        """Enabled rules fired by ``source_agent`` emitting ``trigger_type``."""
        return [
            rule for rule in self._rules.values()
            if rule.enabled
            and rule.source_agent == source_agent
            and rule.trigger_type == trigger_type
        ]

    def set_enabled(self, rule_id: str, enabled: bool) -> CollaborationRule:
        with self._lock:
            rule = replace(self.get(rule_id), enabled=enabled)
            self._rules[rule_id] = rule
            self._persist()
        logger.info(f"Rule {rule_id} {'enabled' if enabled else 'disabled'}")
        return rule

    def toggle_rule(self, rule_id: str) -> bool:
        """Flip a rule's enabled flag. Returns the new state."""
        with self._lock:
            rule = self.get(rule_id)
            rule = replace(rule, enabled=not rule.enabled)
            self._rules[rule_id] = rule
            self._persist()
        logger.info(f"Rule {rule_id} toggled {'on' if rule.enabled else 'off'}")
        return rule.enabled
