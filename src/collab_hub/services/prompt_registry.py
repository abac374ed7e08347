"""Prompt templates for collaboration runs, keyed by target agent.

Executions call ``build_collaboration_prompt(record)`` instead of
assembling strings inline.
"""

import json

RESULT_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "summary": {"type": "string"},
        "result": {"type": "object"},
        "recommendations": {"type": "array", "items": {"type": "string"}},
    },
}

_PROMPT_TEMPLATES: dict[str, str] = {
    "strategy_doc_generator": (
        "As Strategy Doc Generator, create a document based on this agent "
        "collaboration request:\n\n"
        "Source Agent: {source_agent}\n"
        "Trigger: {trigger_reason}\n"
        "Context: {context}\n\n"
        "Generate a professional strategic document addressing this trigger. Include:\n"
        "1. Executive Summary\n"
        "2. Situation Analysis\n"
        "3. Key Findings\n"
        "4. Recommendations\n"
        "5. Action Items\n\n"
        "Put the document body (type, executive_summary, sections, action_items) "
        "under \"result\"."
    ),
    "knowledge_curator": (
        "As Knowledge Curator, respond to this collaboration request:\n\n"
        "Source Agent: {source_agent}\n"
        "Request: {trigger_reason}\n"
        "Context: {context}\n\n"
        "Analyze and provide:\n"
        "1. Suggested knowledge links\n"
        "2. Relevant existing knowledge items\n"
        "3. Recommended actions\n\n"
        "Put suggested_links and relevant_items under \"result\"."
    ),
    "market_monitor": (
        "As Market Monitor, respond to this collaboration request:\n\n"
        "Source Agent: {source_agent}\n"
        "Request: {trigger_reason}\n"
        "Context: {context}\n\n"
        "Provide market intelligence addressing this request. "
        "Put findings and alerts under \"result\"."
    ),
}

_FALLBACK_TEMPLATE = (
    "Process this agent collaboration from {source_agent} to {target_agent}.\n"
    "Trigger: {trigger_reason}\n"
    "Context: {context}"
)


def build_prompt(target_agent: str, **context) -> str:
    """Render the template for ``target_agent`` (generic one when unknown)."""
    template = _PROMPT_TEMPLATES.get(target_agent, _FALLBACK_TEMPLATE)
    return template.format(target_agent=target_agent, **context)


def build_collaboration_prompt(record) -> str:
    return build_prompt(
        record.target_agent,
        source_agent=record.source_agent,
        trigger_reason=record.trigger_reason,
        context=json.dumps(record.context or {}, default=str),
    )
