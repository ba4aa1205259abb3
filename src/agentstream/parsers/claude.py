"""Claude-style stream parser — delta transcript of ``stream-json`` output."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import ValidationError

from agentstream.parsers.base import AgentKind, OutputMode
from agentstream.parsers.envelope import JsonObjectScanner, decode_object
from agentstream.timeline.log import Timeline
from agentstream.timeline.models import ParsedMessage, TimelineEntry, Usage

logger = logging.getLogger(__name__)

#: Input keys tried, in order, for a one-line tool-use label.
_LABEL_KEYS = ("command", "cmd", "code", "path", "query", "message")

_TEXT_BLOCK_TYPES = {"text", "thinking", "assistant_response"}

_RULE = "--------\n"


@dataclass
class _TextBlock:
    kind: Literal["text", "thinking"]
    text: str = ""


@dataclass
class _ToolCall:
    name: str
    description: str | None = None
    input: dict[str, Any] | None = None
    partial: str = ""
    emitted: bool = False


class ClaudeStreamParser:
    """Parser for Claude CLI ``--output-format stream-json`` output.

    A chunk may hold zero or more concatenated JSON objects, and an object
    may be split across chunks.  ``feed`` returns only the transcript text
    produced by that chunk, so callers append rather than replace.

    Both event dialects are understood:

    * whole messages — ``system``, ``assistant``, ``user``, ``result``;
    * streaming blocks — ``message_start``, ``content_block_start``,
      ``content_block_delta``, ``content_block_stop``, ``tool_call_delta``,
      ``tool_call_stop``, ``tool_result``.

    Each tool use becomes a step that moves to completed/failed when its
    result arrives.
    """

    kind: AgentKind = "claude"
    output_mode: OutputMode = "delta"

    def __init__(self, agent_label: str = "claude") -> None:
        self._agent = agent_label
        self._scanner = JsonObjectScanner()
        self._timeline = Timeline()
        self._transcript: list[str] = []

        self._model: str | None = None
        self._conversation_id: str | None = None
        self._header_printed = False
        self._meta_printed = False
        self._working_printed = False

        self._text_blocks: dict[int, _TextBlock] = {}
        self._tools: dict[str, _ToolCall] = {}
        self._tool_index: dict[int, str] = {}

    @property
    def model(self) -> str | None:
        return self._model

    @property
    def conversation_id(self) -> str | None:
        """Claude ``session_id`` from the init event, usable for ``--resume``."""
        return self._conversation_id

    @property
    def transcript(self) -> str:
        """Every delta returned so far, concatenated."""
        return "".join(self._transcript)

    @property
    def usage(self) -> Usage | None:
        return self._timeline.usage

    # ------------------------------------------------------------------ #
    # Contract
    # ------------------------------------------------------------------ #

    def feed(self, raw: str) -> str | None:
        parts: list[str] = []
        for kind, segment in self._scanner.feed(raw):
            if kind == "text":
                parts.append(_as_line(segment))
                continue
            event = decode_object(segment)
            if event is None:
                parts.append(_as_line(segment))
            else:
                parts.append(self._handle_event(event))
        return self._commit("".join(parts))

    def flush(self) -> str | None:
        rest = self._scanner.flush()
        if not rest.strip():
            return None
        logger.debug("claude: flushing %d unparsed chars as text", len(rest))
        return self._commit(_as_line(rest))

    def get_steps(self) -> list[TimelineEntry]:
        return self._timeline.snapshot()

    def to_messages(self) -> list[ParsedMessage]:
        return self._timeline.to_messages()

    def _commit(self, delta: str) -> str | None:
        if not delta:
            return None
        self._transcript.append(delta)
        return delta

    # ------------------------------------------------------------------ #
    # Headers
    # ------------------------------------------------------------------ #

    def _ensure_header(self) -> str:
        if self._header_printed:
            return ""
        self._header_printed = True
        return f"Agent: {self._agent} | Command: stream-json\n" + _RULE

    def _ensure_meta(self) -> str:
        if self._meta_printed:
            return ""
        self._meta_printed = True
        return f"model: {self._model}\n" + _RULE if self._model else ""

    def _ensure_working(self) -> str:
        if self._working_printed:
            return ""
        self._working_printed = True
        return "Working\n"

    def _headers(self) -> str:
        return self._ensure_header() + self._ensure_meta() + self._ensure_working()

    # ------------------------------------------------------------------ #
    # Event dispatch
    # ------------------------------------------------------------------ #

    def _handle_event(self, event: dict[str, Any]) -> str:
        match event.get("type"):
            case "system":
                self._remember_model(event.get("model"))
                session_id = event.get("session_id")
                if isinstance(session_id, str) and session_id:
                    self._conversation_id = session_id
                return self._ensure_header() + self._ensure_meta()
            case "message_start":
                self._remember_model(_as_dict(event.get("message")).get("model"))
                return self._headers()
            case "content_block_start":
                return self._on_block_start(event)
            case "content_block_delta":
                self._on_block_delta(event)
                return ""
            case "content_block_stop":
                return self._on_block_stop(event)
            case "tool_call_delta":
                tool_id = event.get("id") or event.get("tool_use_id")
                partial = _as_dict(event.get("delta")).get("partial_json")
                if isinstance(tool_id, str) and isinstance(partial, str):
                    self._tools.setdefault(tool_id, _ToolCall("Tool")).partial += partial
                return ""
            case "tool_call_stop":
                tool_id = event.get("id") or event.get("tool_use_id")
                call = self._tools.get(tool_id) if isinstance(tool_id, str) else None
                if call is None:
                    return ""
                result_input = _as_dict(event.get("result")).get("input")
                if call.input is None and isinstance(result_input, dict):
                    call.input = result_input
                return self._finish_tool_call(tool_id)
            case "tool_result":
                tool_id = event.get("tool_use_id") or event.get("id")
                return self._tool_output(
                    tool_id if isinstance(tool_id, str) else None,
                    _tool_result_text(event),
                    is_error=bool(event.get("is_error")),
                )
            case "assistant":
                return self._on_assistant(_as_dict(event.get("message")))
            case "user":
                return self._on_user(_as_dict(event.get("message")))
            case "result":
                return self._on_result(event)
            case "error":
                error = event.get("error")
                if isinstance(error, dict):
                    error = error.get("message")
                message = error if isinstance(error, str) else event.get("message")
                if isinstance(message, str) and message:
                    return self._headers() + f"• Error: {message}\n"
                return ""
            case _:
                # message_delta, message_stop and unknown types render nothing.
                return ""

    def _remember_model(self, model: object) -> None:
        if isinstance(model, str) and model:
            self._model = model

    # -- streaming blocks ---------------------------------------------- #

    def _on_block_start(self, event: dict[str, Any]) -> str:
        block = _as_dict(event.get("content_block"))
        block_type = block.get("type")
        index = _block_index(event)

        if block_type in _TEXT_BLOCK_TYPES:
            kind: Literal["text", "thinking"] = (
                "thinking" if block_type == "thinking" else "text"
            )
            self._text_blocks[index] = _TextBlock(kind)
            return ""

        if block_type == "tool_use":
            tool_id = str(block.get("id") or f"idx:{index}")
            call = self._tools.setdefault(tool_id, _ToolCall("Tool"))
            call.name = str(block.get("name") or "Tool")
            tool_input = block.get("input")
            if isinstance(tool_input, dict):
                description = tool_input.get("description")
                if isinstance(description, str):
                    call.description = description
                if tool_input:
                    call.input = tool_input
            self._tool_index[index] = tool_id
            if call.input and not call.emitted:
                return self._emit_tool_use(tool_id, call)
        return ""

    def _on_block_delta(self, event: dict[str, Any]) -> None:
        index = _block_index(event)
        delta = _as_dict(event.get("delta"))

        block = self._text_blocks.get(index)
        if block is not None:
            for key in ("text", "thinking", "partial_json"):
                addition = delta.get(key)
                if isinstance(addition, str):
                    block.text += addition
                    break
            return

        partial = delta.get("partial_json")
        tool_id = event.get("id") or self._tool_index.get(index)
        if isinstance(partial, str) and isinstance(tool_id, str):
            self._tools.setdefault(tool_id, _ToolCall("Tool")).partial += partial

    def _on_block_stop(self, event: dict[str, Any]) -> str:
        index = _block_index(event)

        block = self._text_blocks.pop(index, None)
        if block is not None:
            text = block.text.strip()
            if not text:
                return ""
            if block.kind == "thinking":
                self._timeline.add_thinking(text)
            else:
                self._timeline.add_assistant(text)
            return self._headers() + f"• {text}\n"

        tool_id = self._tool_index.pop(index, None)
        if tool_id is not None:
            return self._finish_tool_call(tool_id)
        return ""

    # -- whole messages ------------------------------------------------- #

    def _on_assistant(self, message: dict[str, Any]) -> str:
        content = message.get("content")
        if not isinstance(content, list):
            return ""

        out = self._headers()
        for part in content:
            if not isinstance(part, dict):
                continue
            part_type = part.get("type")
            if part_type == "text" and isinstance(part.get("text"), str):
                text = part["text"]
                for line in re.split(r"\n+", text):
                    if line.strip():
                        out += f"• {line.strip()}\n"
                if text.strip():
                    self._timeline.add_assistant(text.strip())
            elif part_type == "tool_use":
                tool_id = str(part.get("id") or f"tool-{len(self._tools) + 1}")
                tool_input = part.get("input")
                call = _ToolCall(
                    name=str(part.get("name") or "Tool"),
                    input=tool_input if isinstance(tool_input, dict) else None,
                )
                self._tools[tool_id] = call
                out += self._emit_tool_use(tool_id, call)
            elif part_type == "thinking" and isinstance(part.get("thinking"), str):
                if part["thinking"].strip():
                    self._timeline.add_thinking(part["thinking"].strip())
        return out

    def _on_user(self, message: dict[str, Any]) -> str:
        content = message.get("content")
        if not isinstance(content, list):
            return ""

        out = self._headers()
        for part in content:
            if isinstance(part, dict) and part.get("type") == "tool_result":
                tool_id = part.get("tool_use_id")
                out += self._tool_output(
                    tool_id if isinstance(tool_id, str) else None,
                    _tool_result_text(part),
                    is_error=bool(part.get("is_error")),
                )
        return out

    def _on_result(self, event: dict[str, Any]) -> str:
        usage = event.get("usage")
        if isinstance(usage, dict):
            try:
                self._timeline.usage = Usage.model_validate(usage)
            except ValidationError as exc:
                logger.debug("claude: ignoring malformed usage: %s", exc)

        result = event.get("result")
        result = result if isinstance(result, str) else ""
        if event.get("is_error"):
            error = result or event.get("error")
            if isinstance(error, str) and error:
                return self._headers() + f"• Error: {error}\n"
            return ""
        if result:
            return _RULE + "Answer\n" + result + "\n"
        return ""

    # -- tools ---------------------------------------------------------- #

    def _emit_tool_use(self, tool_id: str, call: _ToolCall) -> str:
        call.emitted = True
        label = _tool_label(call.input, call.description)
        title = f"{call.name}: {label}" if label else call.name
        self._timeline.record_step(tool_id, title, None, "in_progress")
        self._timeline.add_tool(call.name, detail=label or None)
        return self._headers() + f"• {title}\n"

    def _finish_tool_call(self, tool_id: str) -> str:
        call = self._tools.get(tool_id)
        if call is None or call.emitted:
            return ""
        if call.input is None and call.partial.strip():
            parsed = decode_object(call.partial)
            call.input = parsed if parsed is not None else {"input": call.partial}
        return self._emit_tool_use(tool_id, call)

    def _tool_output(
        self,
        tool_id: str | None,
        text: str,
        is_error: bool = False,
    ) -> str:
        if not text:
            return ""
        call = self._tools.pop(tool_id, None) if tool_id else None
        name = call.name if call is not None else None

        if tool_id:
            self._timeline.record_step(
                tool_id, name or "Tool", text, "failed" if is_error else "completed"
            )
        self._timeline.add_tool(name or "Tool", result=text, is_error=is_error)

        return self._headers() + f"• {name or 'Tool'}Output: {text}\n"


# ---------------------------------------------------------------------- #
# Helpers
# ---------------------------------------------------------------------- #


def _as_dict(value: object) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_line(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


def _block_index(event: dict[str, Any]) -> int:
    index = event.get("index")
    return index if isinstance(index, int) else 0


def _tool_label(tool_input: object, description: str | None = None) -> str:
    """Build a one-line label such as ``ls -la — List files``."""
    parts: list[str] = []
    if isinstance(tool_input, dict):
        known = next(
            (tool_input[k] for k in _LABEL_KEYS if tool_input.get(k) is not None),
            None,
        )
        if isinstance(known, str) and known.strip():
            parts.append(known.strip())
        if not parts and isinstance(tool_input.get("args"), list):
            joined = " ".join(str(a) for a in tool_input["args"]).strip()
            if joined:
                parts.append(joined)
        if not parts and tool_input.get("input"):
            nested = tool_input["input"]
            parts.append(nested.strip() if isinstance(nested, str) else json.dumps(nested))
        if not description and isinstance(tool_input.get("description"), str):
            description = tool_input["description"]
    elif isinstance(tool_input, str) and tool_input.strip():
        parts.append(tool_input.strip())

    if description and description.strip():
        parts.append(f"— {description.strip()}")
    return " ".join(parts)


def _tool_result_text(payload: dict[str, Any]) -> str:
    """Flatten the many shapes a tool result's content can take."""
    content = payload.get("content")
    text = ""
    if isinstance(content, list):
        pieces: list[str] = []
        for entry in content:
            if isinstance(entry, str):
                pieces.append(entry)
            elif isinstance(entry, dict):
                if isinstance(entry.get("text"), str):
                    pieces.append(entry["text"])
                elif isinstance(entry.get("data"), str):
                    pieces.append(entry["data"])
                elif isinstance(entry.get("content"), list):
                    pieces.append(" ".join(str(c) for c in entry["content"]))
        text = " ".join(p for p in pieces if p)
    elif isinstance(content, str):
        text = content
    elif isinstance(payload.get("result"), str):
        text = payload["result"]

    text = text.strip()
    if not text and payload.get("is_error") and isinstance(payload.get("error"), str):
        text = payload["error"].strip()
    return text
