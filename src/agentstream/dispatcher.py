"""Chunk dispatcher — routes stream chunks to session parsers and the store."""

from __future__ import annotations

import functools
import logging
import threading

from agentstream.config.models import AgentStreamConfig
from agentstream.parsers import create_parser, looks_structured
from agentstream.parsers.base import AgentKind, AgentParser
from agentstream.registry import ParserRegistry
from agentstream.session.models import MessageUpdate, StreamChunk
from agentstream.session.recorder import ChunkRecorder
from agentstream.store import MessageStore

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Raised when a chunk violates the delivery contract."""


class OutOfOrderChunkError(DispatchError):
    """Raised when a chunk's ``seq`` does not increase within its session."""


class ChunkDispatcher:
    """Glue between the event channel, the parser registry and a message store.

    Per session the lifecycle is NO_PARSER → CLASSIFYING (first chunk) →
    ACTIVE (parser bound) → FINISHED (parser evicted).  A finished,
    cancelled or swept session leaves no state behind, so a chunk arriving
    later for the same id is classified afresh under the default kind
    unless the session is opened again.

    Which parser variant a session uses is fixed by ``open_session``; the
    per-chunk decision is only *whether* to parse.  All public methods are
    serialized by one lock, so chunks may be delivered from any thread.
    """

    def __init__(
        self,
        store: MessageStore,
        registry: ParserRegistry | None = None,
        config: AgentStreamConfig | None = None,
        recorder: ChunkRecorder | None = None,
    ) -> None:
        self._config = config if config is not None else AgentStreamConfig()
        if registry is None:
            registry = ParserRegistry(
                factory=functools.partial(
                    create_parser, agent_label=self._config.claude_agent_label
                )
            )
        self._registry = registry
        self._store = store
        self._recorder = recorder
        self._kinds: dict[str, AgentKind] = {}
        self._last_seq: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> ParserRegistry:
        return self._registry

    # ------------------------------------------------------------------ #
    # Session binding
    # ------------------------------------------------------------------ #

    def open_session(self, session_id: str, kind: AgentKind) -> None:
        """Bind the wire format of *session_id* before its chunks arrive."""
        with self._lock:
            self._kinds[session_id] = kind
            if self._recorder is not None:
                self._recorder.record_open(session_id, kind)

    def kind_of(self, session_id: str) -> AgentKind:
        return self._kinds.get(session_id, self._config.default_kind)

    def cancel(self, session_id: str) -> bool:
        """Drop an abandoned session's parser and bindings.  Idempotent.

        Returns whether a parser was evicted.
        """
        with self._lock:
            if self._recorder is not None:
                self._recorder.record_cancel(session_id)
            return self._release(session_id)

    def _release(self, session_id: str) -> bool:
        self._kinds.pop(session_id, None)
        self._last_seq.pop(session_id, None)
        return self._registry.cancel(session_id)

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    def handle(self, chunk: StreamChunk) -> MessageUpdate:
        """Route one chunk, push the resulting update to the store, return it.

        Raises:
            OutOfOrderChunkError: If ``chunk.seq`` is set and not greater
                than the previous ``seq`` seen for the session.
        """
        with self._lock:
            self._check_order(chunk)
            if self._recorder is not None:
                self._recorder.record_chunk(chunk)

            parser, update = self._route(chunk)
            if chunk.finished:
                if parser is not None:
                    self._flush_into(parser, update)
                self._release(chunk.session_id)

            self._store.apply(update)

            if self._config.stale_after > 0:
                for session_id in self._registry.sweep(self._config.stale_after):
                    self._kinds.pop(session_id, None)
                    self._last_seq.pop(session_id, None)
        return update

    def _check_order(self, chunk: StreamChunk) -> None:
        if chunk.seq is None:
            return
        last = self._last_seq.get(chunk.session_id)
        if last is not None and chunk.seq <= last:
            msg = (
                f"Chunk seq {chunk.seq} for session '{chunk.session_id}' "
                f"does not follow {last}"
            )
            raise OutOfOrderChunkError(msg)
        self._last_seq[chunk.session_id] = chunk.seq

    def _route(self, chunk: StreamChunk) -> tuple[AgentParser | None, MessageUpdate]:
        session_id = chunk.session_id
        content = chunk.content
        flags = {
            "is_streaming": not chunk.finished,
            "status": "completed" if chunk.finished else "running",
        }

        parser = self._registry.get(session_id)

        if content.strip().startswith(self._config.announcement_prefix):
            logger.debug("session %s: announcement, flags only", session_id)
            return parser, MessageUpdate(session_id=session_id, content=None, **flags)

        kind = self.kind_of(session_id)
        if parser is None and kind != "plain" and looks_structured(content):
            parser = self._registry.get_or_create(session_id, kind)

        if parser is None:
            return None, MessageUpdate(
                session_id=session_id,
                content=content,
                output_mode="delta",
                **flags,
            )

        return parser, MessageUpdate(
            session_id=session_id,
            content=parser.feed(content),
            output_mode=parser.output_mode,
            steps=parser.get_steps(),
            **flags,
        )

    @staticmethod
    def _flush_into(parser: AgentParser, update: MessageUpdate) -> None:
        """Fold the parser's end-of-stream tail into *update*."""
        tail = parser.flush()
        if tail is not None:
            if parser.output_mode == "full":
                update.content = tail
            else:
                update.content = (update.content or "") + tail
            update.output_mode = parser.output_mode
        update.steps = parser.get_steps()
