"""Shared envelope handling: structure sniffing, JSON extraction, ANSI cleanup."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Literal

logger = logging.getLogger(__name__)

#: Matches CSI escape sequences (colours, cursor movement) emitted by PTYs.
_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

#: An unterminated object larger than this is given up on and surfaced as text.
_MAX_PENDING_CHARS = 1_048_576

SegmentKind = Literal["json", "text"]


def looks_structured(content: str) -> bool:
    """Return True if *content* looks like a JSON stream envelope."""
    return content.strip().startswith("{") or '"type"' in content


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def decode_object(text: str) -> dict[str, Any] | None:
    """Parse *text* as a JSON object, retrying once without ANSI escapes.

    Returns ``None`` when the text is not valid JSON or not an object.
    """
    for candidate in (text, strip_ansi(text).strip()):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        return value if isinstance(value, dict) else None
    logger.debug("undecodable JSON fragment: %s", text[:200])
    return None


class JsonObjectScanner:
    """Split a concatenated, arbitrarily chunked stream into segments.

    Complete top-level ``{...}`` objects come out as ``"json"`` segments
    (string literals and escapes are respected while inside an object).
    Text between objects comes out as ``"text"`` segments once a line is
    complete or an object follows it; whitespace-only text is dropped.
    An unfinished object stays buffered until a later ``feed``, unless a
    later line starts with ``{``: the unfinished part is then given up on
    and emitted as text.
    """

    def __init__(self) -> None:
        self._buf = ""

    @property
    def pending(self) -> str:
        return self._buf

    def feed(self, data: str) -> list[tuple[SegmentKind, str]]:
        if data:
            self._buf += data

        buf = self._buf
        segments: list[tuple[SegmentKind, str]] = []
        consumed = 0
        start = -1
        depth = 0
        in_str = False
        escape = False

        for i, ch in enumerate(buf):
            if depth > 0 and ch == "\n" and buf[i + 1 : i + 2] == "{":
                # Compact JSON never holds a raw newline, so the candidate
                # was a stray brace in a text line; rescan from the next line.
                logger.debug("abandoning unterminated object: %s", buf[start:i][:200])
                self._emit_text(segments, buf[start : i + 1])
                consumed = i + 1
                start = -1
                depth = 0
                in_str = escape = False
                continue

            if depth > 0 and in_str:
                if escape:
                    escape = False
                elif ch == "\\":
                    escape = True
                elif ch == '"':
                    in_str = False
                continue

            if ch == "{":
                if depth == 0:
                    self._emit_text(segments, buf[consumed:i])
                    start = i
                depth += 1
            elif ch == "}" and depth > 0:
                depth -= 1
                if depth == 0:
                    segments.append(("json", buf[start : i + 1]))
                    consumed = i + 1
                    start = -1
            elif ch == '"' and depth > 0:
                in_str = True

        if depth > 0:
            rest = buf[start:]
            if len(rest) > _MAX_PENDING_CHARS:
                logger.warning(
                    "unterminated JSON object exceeds %d chars, emitting as text",
                    _MAX_PENDING_CHARS,
                )
                self._emit_text(segments, rest)
                rest = ""
            self._buf = rest
            return segments

        tail = buf[consumed:]
        newline = tail.rfind("\n")
        if newline >= 0:
            self._emit_text(segments, tail[: newline + 1])
            tail = tail[newline + 1 :]
        self._buf = tail
        return segments

    def flush(self) -> str:
        """Return and clear whatever is still buffered."""
        rest, self._buf = self._buf, ""
        return rest

    @staticmethod
    def _emit_text(segments: list[tuple[SegmentKind, str]], text: str) -> None:
        if text.strip():
            segments.append(("text", text))
