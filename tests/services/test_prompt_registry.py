"""Tests for collaboration prompt templates."""

from types import SimpleNamespace

from collab_hub.services.prompt_registry import (
    RESULT_SCHEMA,
    build_collaboration_prompt,
    build_prompt,
)


def _record(target, context=None):
    return SimpleNamespace(
        source_agent="market_monitor",
        target_agent=target,
        trigger_reason="critical_alert",
        context=context or {},
    )


class TestBuildCollaborationPrompt:

    def test_strategy_doc_template(self):
        prompt = build_collaboration_prompt(_record("strategy_doc_generator", {"region": "EU"}))
        assert prompt.startswith("As Strategy Doc Generator")
        assert "Executive Summary" in prompt
        assert "Trigger: critical_alert" in prompt
        assert '"region": "EU"' in prompt

    def test_knowledge_curator_template(self):
        prompt = build_collaboration_prompt(_record("knowledge_curator"))
        assert prompt.startswith("As Knowledge Curator")
        assert "Suggested knowledge links" in prompt

    def test_market_monitor_template(self):
        prompt = build_collaboration_prompt(_record("market_monitor"))
        assert prompt.startswith("As Market Monitor")

    def test_unknown_target_uses_generic_template(self):
        prompt = build_prompt("auditor", source_agent="a", trigger_reason="t", context="{}")
        assert "auditor" in prompt


def test_result_schema_properties():
    assert set(RESULT_SCHEMA["properties"]) == {"title", "summary", "result", "recommendations"}
