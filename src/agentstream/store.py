"""In-memory message store — bounded list of conversation messages."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from agentstream.session.models import MessageStatus, MessageUpdate
from agentstream.timeline.models import TimelineEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class MessageStore(Protocol):
    """Receiver of dispatcher output; owns the rendered messages."""

    def apply(self, update: MessageUpdate) -> None:
        """Merge *update* into the message for its session."""
        ...


class ConversationMessage(BaseModel):
    """One agent reply being streamed into the conversation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Session id the message is streamed from")
    agent: str | None = Field(default=None, description="Agent display name")
    content: str = ""
    steps: list[TimelineEntry] = Field(default_factory=list)
    is_streaming: bool = Field(default=True, alias="isStreaming")
    status: MessageStatus = "running"


class InMemoryMessageStore:
    """Keeps at most *max_messages* messages.

    When full, the oldest finished message is dropped.  Streaming messages
    are only dropped (oldest first) when every message is still streaming;
    a later delta for a dropped session starts a new message.
    """

    def __init__(self, max_messages: int = 500) -> None:
        if max_messages < 1:
            msg = "max_messages must be at least 1"
            raise ValueError(msg)
        self._max = max_messages
        self._messages: OrderedDict[str, ConversationMessage] = OrderedDict()

    def __len__(self) -> int:
        return len(self._messages)

    def open(self, session_id: str, agent: str | None = None) -> ConversationMessage:
        """Create (or return) the placeholder message for *session_id*."""
        message = self._messages.get(session_id)
        if message is None:
            message = ConversationMessage(id=session_id, agent=agent)
            self._messages[session_id] = message
            self._trim()
        return message

    def get(self, session_id: str) -> ConversationMessage | None:
        return self._messages.get(session_id)

    def messages(self) -> list[ConversationMessage]:
        return list(self._messages.values())

    def apply(self, update: MessageUpdate) -> None:
        message = self.open(update.session_id)
        message.content = update.merge_into(message.content)
        if update.steps is not None:
            message.steps = update.steps
        message.is_streaming = update.is_streaming
        message.status = update.status

    def _trim(self) -> None:
        while len(self._messages) > self._max:
            dropped = next(
                (sid for sid, m in self._messages.items() if not m.is_streaming),
                None,
            )
            if dropped is None:
                dropped = next(iter(self._messages))
                logger.warning("message store full, dropping streaming message %s", dropped)
            else:
                logger.debug("message store full, dropped %s", dropped)
            del self._messages[dropped]
