"""Capability contract shared by every agent stream parser."""

from __future__ import annotations

from typing import Literal, Protocol, runtime_checkable

from agentstream.timeline.models import ParsedMessage, TimelineEntry

#: Which wire format a session speaks; resolved once when the session opens.
AgentKind = Literal["codex", "claude", "plain"]

#: Whether ``feed()`` returns the whole rendered text or only what is new.
OutputMode = Literal["delta", "full"]


@runtime_checkable
class AgentParser(Protocol):
    """Stateful converter from raw chunks to text plus a step timeline.

    One instance serves exactly one session.  ``feed`` must never raise:
    anything it cannot decode degrades to plain text.
    """

    kind: AgentKind
    output_mode: OutputMode

    def feed(self, raw: str) -> str | None:
        """Consume one chunk; return rendered output or ``None`` if unchanged."""
        ...

    def flush(self) -> str | None:
        """Drain buffered partial input at end of stream."""
        ...

    def get_steps(self) -> list[TimelineEntry]:
        """Return copies of the current steps."""
        ...

    def to_messages(self) -> list[ParsedMessage]:
        """Project accumulated state onto UI messages."""
        ...
