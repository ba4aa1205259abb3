"""Pydantic v2 models for steps, timeline events and the message projection."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

StepStatus = Literal["pending", "in_progress", "completed", "failed"]


class TimelineEntry(BaseModel):
    """Lifecycle of one tool invocation, keyed by the upstream item id."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(description="Upstream item id (stable across updates)")
    label: str = Field(description="Short human-readable step label")
    detail: str | None = Field(
        default=None,
        description="Optional multi-line detail, e.g. a fenced shell transcript",
    )
    status: StepStatus = Field(default="in_progress", description="Step status")


class Usage(BaseModel):
    """Token usage reported by an agent; missing counts stay ``None``."""

    model_config = ConfigDict(extra="ignore")

    input_tokens: int | None = None
    cached_input_tokens: int | None = None
    output_tokens: int | None = None


class _TimelineEventBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ThinkingEvent(_TimelineEventBase):
    """A reasoning segment."""

    type: Literal["thinking"] = "thinking"
    text: str


class AssistantEvent(_TimelineEventBase):
    """A plain assistant reply."""

    type: Literal["assistant"] = "assistant"
    text: str


class ToolEvent(_TimelineEventBase):
    """One observed tool invocation (or update of one)."""

    type: Literal["tool"] = "tool"
    name: str = Field(description="Tool or command name")
    detail: str | None = Field(default=None, description="Rendered detail block")
    result: str | None = Field(default=None, description="Raw tool output")
    is_error: bool = Field(default=False, description="Whether the tool failed")


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


TimelineEvent = Annotated[
    Annotated[ThinkingEvent, Tag("thinking")]
    | Annotated[AssistantEvent, Tag("assistant")]
    | Annotated[ToolEvent, Tag("tool")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all timeline event types."""


class ParsedMessage(BaseModel):
    """UI-facing message derived from a parser's timeline.

    Serialize with ``model_dump(by_alias=True, exclude_none=True)`` to get
    the camelCase shape chat front-ends expect.
    """

    model_config = ConfigDict(populate_by_name=True)

    role: Literal["assistant", "tool"]
    content: str
    tool_name: str | None = Field(default=None, alias="toolName")
    tool_result: str | None = Field(default=None, alias="toolResult")
    is_error: bool | None = Field(default=None, alias="isError")
    is_thinking: bool | None = Field(default=None, alias="isThinking")
    usage: Usage | None = None
