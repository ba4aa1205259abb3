"""Parser registry — one parser instance per active session."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from agentstream.parsers import create_parser
from agentstream.parsers.base import AgentKind, AgentParser

logger = logging.getLogger(__name__)

ParserFactory = Callable[[AgentKind], AgentParser]


@dataclass
class _Entry:
    parser: AgentParser
    touched: float = field(default_factory=time.monotonic)


class ParserRegistry:
    """Maps session id to its parser; owned by whoever owns the message store.

    Not thread-safe on its own — callers that deliver from several threads
    serialize access (``ChunkDispatcher`` does).
    """

    def __init__(
        self,
        factory: ParserFactory = create_parser,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def session_ids(self) -> list[str]:
        return list(self._entries)

    def get(self, session_id: str) -> AgentParser | None:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        entry.touched = self._clock()
        return entry.parser

    def get_or_create(self, session_id: str, kind: AgentKind) -> AgentParser:
        """Return the session's parser, creating one of *kind* on first use."""
        entry = self._entries.get(session_id)
        if entry is None:
            parser = self._factory(kind)
            entry = _Entry(parser, touched=self._clock())
            self._entries[session_id] = entry
            logger.debug("session %s: bound %s parser", session_id, kind)
        else:
            entry.touched = self._clock()
        return entry.parser

    def evict(self, session_id: str) -> bool:
        """Drop the session's parser.  Idempotent; returns whether one existed."""
        removed = self._entries.pop(session_id, None) is not None
        if removed:
            logger.debug("session %s: parser evicted", session_id)
        return removed

    def cancel(self, session_id: str) -> bool:
        """Evict a session that was abandoned without a finished chunk."""
        return self.evict(session_id)

    def sweep(self, max_idle: float) -> list[str]:
        """Evict every parser untouched for more than *max_idle* seconds."""
        now = self._clock()
        stale = [
            sid
            for sid, entry in self._entries.items()
            if now - entry.touched > max_idle
        ]
        for sid in stale:
            self.evict(sid)
        if stale:
            logger.info("swept %d stale parser(s): %s", len(stale), ", ".join(stale))
        return stale
