"""Pydantic v2 models for agentstream.yaml configuration."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentstream.parsers.base import AgentKind

#: Marker line a supervisor prints when it launches an agent.
DEFAULT_ANNOUNCEMENT_PREFIX = "🔗 Agent:"


class AgentStreamConfig(BaseModel):
    """Top-level agentstream.yaml configuration; every field has a default."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    default_kind: AgentKind = Field(
        default="plain",
        description="Kind used for sessions opened without an explicit kind",
    )
    announcement_prefix: str = Field(
        default=DEFAULT_ANNOUNCEMENT_PREFIX,
        min_length=1,
        description="Chunks starting with this only toggle the running flag",
    )
    max_messages: int = Field(
        default=500,
        ge=1,
        description="Maximum messages kept by the in-memory message store",
    )
    stale_after: float = Field(
        default=0,
        ge=0,
        description="Evict parsers idle this many seconds (0 to disable)",
    )
    log_level: str = Field(default="WARNING", description="Python logging level")
    claude_agent_label: str = Field(
        default="claude",
        description="Agent name printed in the Claude transcript header",
    )
    agents: dict[str, AgentKind] = Field(
        default_factory=dict,
        description="Agent name to wire-format kind",
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            msg = f"Unknown log level '{value}'"
            raise ValueError(msg)
        return level

    def kind_for(self, agent_name: str) -> AgentKind:
        """Resolve an agent's wire format once, when its session opens."""
        return self.agents.get(agent_name, self.default_kind)
