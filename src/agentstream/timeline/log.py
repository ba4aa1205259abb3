"""Timeline — upsert-by-id step list plus an append-only event log."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from agentstream.timeline.models import (
    AssistantEvent,
    ParsedMessage,
    StepStatus,
    ThinkingEvent,
    TimelineEntry,
    TimelineEvent,
    ToolEvent,
    Usage,
)

logger = logging.getLogger(__name__)


class Timeline:
    """Accumulated step/event state for a single parser instance.

    Steps keep first-seen order; an update to a known id mutates the
    existing entry in place and never adds a second one.  Events are
    only ever appended.
    """

    def __init__(self) -> None:
        self._steps: list[TimelineEntry] = []
        self._index: dict[str, TimelineEntry] = {}
        self._events: list[TimelineEvent] = []
        self.usage: Usage | None = None

    def __len__(self) -> int:
        return len(self._steps)

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    def record_step(
        self,
        step_id: str,
        label: str,
        detail: str | None,
        status: StepStatus,
    ) -> TimelineEntry:
        """Create the step *step_id* or transition the existing one.

        On update the label is kept and the detail is only replaced by a
        non-empty value.
        """
        existing = self._index.get(step_id)
        if existing is not None:
            logger.debug("step %s: %s -> %s", step_id, existing.status, status)
            existing.status = status
            if detail:
                existing.detail = detail
            return existing

        entry = TimelineEntry(id=step_id, label=label, detail=detail, status=status)
        self._steps.append(entry)
        self._index[step_id] = entry
        return entry

    def get_step(self, step_id: str) -> TimelineEntry | None:
        return self._index.get(step_id)

    def iter_steps(self) -> Iterator[TimelineEntry]:
        return iter(self._steps)

    def snapshot(self) -> list[TimelineEntry]:
        """Return detached copies of all steps in first-seen order."""
        return [step.model_copy() for step in self._steps]

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #

    def add_thinking(self, text: str) -> None:
        self._events.append(ThinkingEvent(text=text))

    def add_assistant(self, text: str) -> None:
        self._events.append(AssistantEvent(text=text))

    def add_tool(
        self,
        name: str,
        detail: str | None = None,
        result: str | None = None,
        is_error: bool = False,
    ) -> None:
        self._events.append(
            ToolEvent(name=name, detail=detail, result=result, is_error=is_error)
        )

    @property
    def events(self) -> tuple[TimelineEvent, ...]:
        return tuple(self._events)

    # ------------------------------------------------------------------ #
    # Projection
    # ------------------------------------------------------------------ #

    def to_messages(self) -> list[ParsedMessage]:
        """Project the event log onto UI messages.

        Usage is attached to the most recent non-thinking assistant
        message, never to reasoning or tool output.
        """
        messages: list[ParsedMessage] = []
        for event in self._events:
            match event:
                case ThinkingEvent(text=text):
                    messages.append(
                        ParsedMessage(role="assistant", content=text, is_thinking=True)
                    )
                case AssistantEvent(text=text):
                    messages.append(ParsedMessage(role="assistant", content=text))
                case ToolEvent():
                    messages.append(
                        ParsedMessage(
                            role="tool",
                            content=event.detail or event.name,
                            tool_name=event.name,
                            tool_result=event.result,
                            is_error=event.is_error,
                        )
                    )

        if self.usage is not None:
            for message in reversed(messages):
                if message.role == "assistant" and not message.is_thinking:
                    message.usage = self.usage.model_copy()
                    break

        return messages
