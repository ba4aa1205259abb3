"""Pydantic v2 models for stream chunks, message updates and recordings."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

from agentstream.parsers.base import AgentKind, OutputMode
from agentstream.timeline.models import TimelineEntry

MessageStatus = Literal["running", "completed"]


class StreamChunk(BaseModel):
    """One piece of agent output as delivered by the event channel."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    session_id: str = Field(alias="sessionId", description="Owning session")
    content: str = Field(default="", description="Plain text, JSON, or empty")
    finished: bool = Field(default=False, description="Last chunk of the session")
    seq: int | None = Field(
        default=None,
        ge=0,
        description="Optional per-session monotonic sequence number",
    )


class MessageUpdate(BaseModel):
    """What the dispatcher hands to the message store for one chunk."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    content: str | None = Field(
        default=None,
        description="Full text or delta per output_mode; None keeps prior content",
    )
    output_mode: OutputMode = Field(default="delta", alias="outputMode")
    steps: list[TimelineEntry] | None = Field(
        default=None,
        description="Step snapshot; present whenever a parser is bound",
    )
    is_streaming: bool = Field(alias="isStreaming")
    status: MessageStatus

    def merge_into(self, existing: str) -> str:
        """Apply this update's content to *existing* message text."""
        if self.content is None:
            return existing
        if self.output_mode == "full":
            return self.content
        return existing + self.content


# ---------------------------------------------------------------------- #
# Recorded streams (JSONL)
# ---------------------------------------------------------------------- #


class _RecordBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str = Field(description="Session the record belongs to")


class OpenRecord(_RecordBase):
    """A session was opened with a known agent kind."""

    type: Literal["open"] = "open"
    kind: AgentKind = Field(description="Wire format of the session")


class ChunkRecord(_RecordBase):
    """One chunk received on the event channel."""

    type: Literal["chunk"] = "chunk"
    content: str = ""
    finished: bool = False
    seq: int | None = Field(default=None, ge=0)

    def to_chunk(self) -> StreamChunk:
        return StreamChunk(
            session_id=self.session_id,
            content=self.content,
            finished=self.finished,
            seq=self.seq,
        )


class CancelRecord(_RecordBase):
    """A session was abandoned."""

    type: Literal["cancel"] = "cancel"


def _record_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


StreamRecord = Annotated[
    Annotated[OpenRecord, Tag("open")]
    | Annotated[ChunkRecord, Tag("chunk")]
    | Annotated[CancelRecord, Tag("cancel")],
    Discriminator(_record_discriminator),
]
"""Discriminated union of all recorded stream entries."""
