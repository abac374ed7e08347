"""Agent Collaboration Hub - rule-driven agent collaboration and notification dispatch."""

__version__ = "0.1.0"
