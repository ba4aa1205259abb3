"""Agent stream parsers — one variant per agent wire format."""

from __future__ import annotations

from agentstream.parsers.base import AgentKind, AgentParser, OutputMode
from agentstream.parsers.claude import ClaudeStreamParser
from agentstream.parsers.codex import CodexStreamParser
from agentstream.parsers.envelope import JsonObjectScanner, looks_structured


def create_parser(kind: AgentKind, agent_label: str = "claude") -> AgentParser:
    """Factory: build a fresh parser for a session of the given *kind*."""
    match kind:
        case "codex":
            return CodexStreamParser()
        case "claude":
            return ClaudeStreamParser(agent_label=agent_label)
        case _:
            msg = f"No stream parser for agent kind {kind!r}"
            raise ValueError(msg)


__all__ = [
    "AgentKind",
    "AgentParser",
    "ClaudeStreamParser",
    "CodexStreamParser",
    "JsonObjectScanner",
    "OutputMode",
    "create_parser",
    "looks_structured",
]
