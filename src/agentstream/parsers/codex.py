"""Codex-style stream parser — full-output rendering of Codex thread events."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from pydantic import ValidationError

from agentstream.parsers.base import AgentKind, OutputMode
from agentstream.timeline.log import Timeline
from agentstream.timeline.models import (
    ParsedMessage,
    StepStatus,
    TimelineEntry,
    Usage,
)

logger = logging.getLogger(__name__)

_FILE_ACTIONS = {"add": "Created", "delete": "Deleted"}

_STEP_MARKS = {"failed": "✖", "completed": "✓"}


class CodexStreamParser:
    """Parser for Codex SDK event envelopes.

    Each chunk is normally an envelope ``{"content": "<event json>"}``;
    a bare event object (as printed by ``codex exec --json``) is accepted
    too.  ``feed`` always returns the whole rendered text:

    * reasoning entries, each wrapped in ``_..._``;
    * agent messages and anything that failed to decode;
    * a ``Usage — In: …, Out: …`` line;
    * one line per step, marked ✓ / ✖ / … and followed by its detail.

    Events handled:

    * ``turn.completed`` — usage stats (latest wins).
    * ``item.completed`` — dispatched on ``item.type``: ``agent_message``,
      ``reasoning``, ``command_execution`` and ``file_change``.

    Everything else is ignored.
    """

    kind: AgentKind = "codex"
    output_mode: OutputMode = "full"

    def __init__(self) -> None:
        self._reasoning: list[str] = []
        self._messages: list[str] = []
        self._timeline = Timeline()
        self._timestamp_base = time.time()

    @property
    def timestamp_base(self) -> float:
        """Wall-clock anchor for relative times, reset at each completed turn."""
        return self._timestamp_base

    @property
    def usage(self) -> Usage | None:
        return self._timeline.usage

    # ------------------------------------------------------------------ #
    # Contract
    # ------------------------------------------------------------------ #

    def feed(self, raw: str) -> str | None:
        if not raw.strip():
            return None

        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("codex: non-JSON chunk kept as text: %s", raw[:200])
            self._messages.append(raw)
            return self.build_output()

        if not isinstance(envelope, dict):
            return self.build_output()

        content = envelope.get("content")
        if not isinstance(content, str):
            if isinstance(envelope.get("type"), str):
                # Bare event without an envelope.
                self._handle_event(envelope)
            return self.build_output()
        if not content.strip():
            return self.build_output()

        try:
            event = json.loads(content)
        except json.JSONDecodeError:
            logger.debug("codex: non-JSON content kept as text: %s", content[:200])
            self._messages.append(content)
            return self.build_output()

        if isinstance(event, dict):
            self._handle_event(event)
        return self.build_output()

    def flush(self) -> str | None:
        return None

    def get_steps(self) -> list[TimelineEntry]:
        return self._timeline.snapshot()

    def to_messages(self) -> list[ParsedMessage]:
        return self._timeline.to_messages()

    # ------------------------------------------------------------------ #
    # Event dispatch
    # ------------------------------------------------------------------ #

    def _handle_event(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")

        if event_type == "turn.completed":
            usage = event.get("usage")
            if isinstance(usage, dict):
                try:
                    self._timeline.usage = Usage.model_validate(usage)
                except ValidationError as exc:
                    logger.debug("codex: ignoring malformed usage: %s", exc)
                    return
                self._timestamp_base = time.time()

        elif event_type == "item.completed":
            item = event.get("item")
            if isinstance(item, dict):
                self._handle_item(item)

    def _handle_item(self, item: dict[str, Any]) -> None:
        item_type = item.get("type")

        if item_type == "agent_message":
            text = item.get("text")
            if isinstance(text, str) and text:
                self._messages.append(text)
                self._timeline.add_assistant(text)

        elif item_type == "reasoning":
            text = item.get("text")
            if isinstance(text, str) and text:
                self._reasoning.append(text)
                self._timeline.add_thinking(text)

        elif item_type == "command_execution":
            self._handle_command_execution(item)

        elif item_type == "file_change":
            self._handle_file_change(item)

    def _handle_command_execution(self, item: dict[str, Any]) -> None:
        command = str(item.get("command") or "")
        output = item.get("aggregated_output")
        output = output if isinstance(output, str) and output else None
        detail = f"\n```sh\n$ {command}\n{output}\n```" if output else None
        status = _map_status(item.get("status"))

        self._timeline.record_step(str(item.get("id", "")), command, detail, status)
        self._timeline.add_tool(
            command or "Command",
            detail=detail,
            result=output,
            is_error=status == "failed",
        )

    def _handle_file_change(self, item: dict[str, Any]) -> None:
        changes = item.get("changes")
        if not isinstance(changes, list):
            changes = []
        lines = [
            f"{_FILE_ACTIONS.get(str(change.get('kind')), 'Modified')}: {change.get('path', '')}"
            for change in changes
            if isinstance(change, dict)
        ]
        detail = "\n".join(lines) or None
        failed = item.get("status") == "failed"

        self._timeline.record_step(
            str(item.get("id", "")),
            "File updates",
            detail,
            "failed" if failed else "completed",
        )
        self._timeline.add_tool("File updates", detail=detail, is_error=failed)

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #

    def build_output(self) -> str:
        parts: list[str] = []
        if self._reasoning:
            parts.append("\n\n".join(f"_{text}_" for text in self._reasoning))
        if self._messages:
            parts.append("\n\n".join(self._messages))

        usage = self._timeline.usage
        if usage is not None:
            tokens_in = "?" if usage.input_tokens is None else usage.input_tokens
            tokens_out = "?" if usage.output_tokens is None else usage.output_tokens
            parts.append(f"Usage — In: {tokens_in}, Out: {tokens_out}")

        if len(self._timeline):
            lines = []
            for step in self._timeline.iter_steps():
                mark = _STEP_MARKS.get(step.status, "…")
                line = f"{mark} {step.label}"
                if step.detail:
                    line += f"\n{step.detail}"
                lines.append(line)
            parts.append("\n".join(lines))

        return "\n\n".join(parts)


def _map_status(status: object) -> StepStatus:
    """Map a Codex item status onto a step status (default: in_progress)."""
    if status == "completed":
        return "completed"
    if status == "failed":
        return "failed"
    return "in_progress"
