"""Tests for chunk routing, session lifecycle and delivery checks."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import pytest

from agentstream.config.models import AgentStreamConfig
from agentstream.dispatcher import ChunkDispatcher, DispatchError, OutOfOrderChunkError
from agentstream.parsers import ClaudeStreamParser, CodexStreamParser
from agentstream.registry import ParserRegistry
from agentstream.session.models import StreamChunk
from agentstream.session.recorder import ChunkRecorder, load_recording
from agentstream.store import InMemoryMessageStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _codex(event: dict[str, Any]) -> str:
    return json.dumps({"content": json.dumps(event)})


def _command(status: str, output: str | None = None) -> str:
    item: dict[str, Any] = {
        "type": "command_execution",
        "id": "c1",
        "command": "ls",
        "status": status,
    }
    if output is not None:
        item["aggregated_output"] = output
    return _codex({"type": "item.completed", "item": item})


def _message(text: str) -> str:
    return _codex({"type": "item.completed", "item": {"type": "agent_message", "text": text}})


def _chunk(content: str = "", session_id: str = "s1", **fields: Any) -> StreamChunk:
    return StreamChunk(session_id=session_id, content=content, **fields)


def _content(store: InMemoryMessageStore, session_id: str = "s1") -> str:
    message = store.get(session_id)
    assert message is not None
    return message.content


@pytest.fixture
def store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def dispatcher(store: InMemoryMessageStore) -> ChunkDispatcher:
    return ChunkDispatcher(store)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ===================================================================
# Plain sessions
# ===================================================================


class TestPlainSessions:
    def test_text_appended_as_delta(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        update = dispatcher.handle(_chunk("Hello "))
        dispatcher.handle(_chunk("world"))
        assert update.output_mode == "delta"
        assert update.steps is None
        assert _content(store) == "Hello world"

    def test_json_in_plain_session_not_parsed(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        dispatcher.handle(_chunk('{"type":"x"}'))
        assert "s1" not in dispatcher.registry
        assert _content(store) == '{"type":"x"}'

    def test_finished_marks_completed(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        dispatcher.handle(_chunk("bye", finished=True))
        message = store.get("s1")
        assert message is not None
        assert message.status == "completed"
        assert message.is_streaming is False


# ===================================================================
# Codex sessions
# ===================================================================


class TestCodexSessions:
    def test_full_output_replaces_content(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk(_command("in_progress")))
        update = dispatcher.handle(_chunk(_command("completed", "a.txt")))

        assert update.output_mode == "full"
        assert _content(store) == "✓ ls\n\n```sh\n$ ls\na.txt\n```"
        assert update.steps is not None
        assert [(s.id, s.status) for s in update.steps] == [("c1", "completed")]
        message = store.get("s1")
        assert message is not None
        assert len(message.steps) == 1

    def test_parser_created_on_first_structured_chunk(
        self, dispatcher: ChunkDispatcher
    ) -> None:
        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk("starting up"))
        assert "s1" not in dispatcher.registry
        dispatcher.handle(_chunk(_message("hi")))
        assert isinstance(dispatcher.registry.get("s1"), CodexStreamParser)

    def test_default_kind_from_config(self, store: InMemoryMessageStore) -> None:
        dispatcher = ChunkDispatcher(store, config=AgentStreamConfig(default_kind="codex"))
        dispatcher.handle(_chunk(_message("hi")))
        assert dispatcher.kind_of("s1") == "codex"
        assert _content(store) == "hi"


# ===================================================================
# Claude sessions
# ===================================================================


class TestClaudeSessions:
    def test_deltas_appended(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        events = [
            {"type": "system", "model": "m1", "session_id": "c"},
            {"type": "assistant", "message": {"content": [{"type": "text", "text": "Hi"}]}},
            {"type": "result", "result": "Hi"},
        ]
        raw = "".join(json.dumps(e) for e in events)
        expected = ClaudeStreamParser().feed(raw)

        dispatcher.open_session("s1", "claude")
        half = len(raw) // 2
        dispatcher.handle(_chunk(raw[:half]))
        update = dispatcher.handle(_chunk(raw[half:]))

        assert update.output_mode == "delta"
        assert _content(store) == expected

    def test_agent_label_from_config(self, store: InMemoryMessageStore) -> None:
        config = AgentStreamConfig(claude_agent_label="reviewer")
        dispatcher = ChunkDispatcher(store, config=config)
        dispatcher.open_session("s1", "claude")
        dispatcher.handle(_chunk(json.dumps({"type": "message_start", "message": {}})))
        assert _content(store).startswith("Agent: reviewer | ")

    def test_finished_flushes_partial_object(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        dispatcher.open_session("s1", "claude")
        dispatcher.handle(_chunk('{"type":"assistant","message":'))
        assert _content(store) == ""
        update = dispatcher.handle(_chunk("", finished=True))
        assert update.content == '{"type":"assistant","message":\n'
        assert _content(store) == '{"type":"assistant","message":\n'


# ===================================================================
# Announcements
# ===================================================================


class TestAnnouncements:
    def test_only_flags_change(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        dispatcher.handle(_chunk("before"))
        update = dispatcher.handle(_chunk("🔗 Agent: codex (gpt-5)"))
        assert update.content is None
        assert update.is_streaming is True
        assert update.status == "running"
        assert _content(store) == "before"

    def test_announcement_does_not_bind_parser(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk('  🔗 Agent: {"type": "codex"}'))
        assert "s1" not in dispatcher.registry

    def test_custom_prefix(self, store: InMemoryMessageStore) -> None:
        dispatcher = ChunkDispatcher(store, config=AgentStreamConfig(announcement_prefix=">>"))
        assert dispatcher.handle(_chunk(">> launching")).content is None


# ===================================================================
# Lifecycle
# ===================================================================


class TestLifecycle:
    def test_finished_evicts_parser(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk(_message("first")))
        dispatcher.handle(_chunk("", finished=True))
        assert "s1" not in dispatcher.registry
        assert _content(store) == "first"

    def test_chunk_after_finished_starts_fresh(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk(_message("first")))
        old = dispatcher.registry.get("s1")
        dispatcher.handle(_chunk("", finished=True))

        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk(_message("second")))
        assert dispatcher.registry.get("s1") is not old
        # The fresh parser knows nothing about "first".
        assert _content(store) == "second"

    def test_finished_forgets_kind(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk(_message("first"), finished=True))
        assert dispatcher.kind_of("s1") == "plain"
        dispatcher.handle(_chunk(_message("again")))
        assert "s1" not in dispatcher.registry

    def test_cancel_evicts(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk(_message("x")))
        assert dispatcher.cancel("s1") is True
        assert "s1" not in dispatcher.registry
        assert dispatcher.cancel("s1") is False

    def test_cancel_forgets_kind(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.open_session("s1", "claude")
        assert dispatcher.cancel("s1") is False
        assert dispatcher.kind_of("s1") == "plain"

    def test_ended_sessions_leave_no_bookkeeping(self, dispatcher: ChunkDispatcher) -> None:
        for i in range(1000):
            sid = f"s{i}"
            dispatcher.open_session(sid, "codex")
            dispatcher.handle(_chunk(_message("x"), session_id=sid, seq=0))
            if i % 2:
                dispatcher.handle(_chunk("", session_id=sid, seq=1, finished=True))
            else:
                dispatcher.cancel(sid)
        assert len(dispatcher.registry) == 0
        assert dispatcher._kinds == {}
        assert dispatcher._last_seq == {}

    def test_sessions_do_not_share_state(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        dispatcher.open_session("a", "codex")
        dispatcher.open_session("b", "codex")
        dispatcher.handle(_chunk(_message("for a"), session_id="a"))
        dispatcher.handle(_chunk(_message("for b"), session_id="b"))
        assert _content(store, "a") == "for a"
        assert _content(store, "b") == "for b"

    def test_stale_sessions_swept(self, store: InMemoryMessageStore) -> None:
        clock = _FakeClock()
        dispatcher = ChunkDispatcher(
            store,
            registry=ParserRegistry(clock=clock),
            config=AgentStreamConfig(stale_after=10),
        )
        for sid in ("a", "b"):
            dispatcher.open_session(sid, "codex")
            dispatcher.handle(_chunk(_message(sid), session_id=sid))
        clock.now = 20.0
        dispatcher.handle(_chunk(_message("again"), session_id="a"))
        assert "a" in dispatcher.registry
        assert "b" not in dispatcher.registry
        assert dispatcher.kind_of("b") == "plain"
        assert dispatcher.kind_of("a") == "codex"

    def test_sweep_forgets_seq(self, store: InMemoryMessageStore) -> None:
        clock = _FakeClock()
        dispatcher = ChunkDispatcher(
            store,
            registry=ParserRegistry(clock=clock),
            config=AgentStreamConfig(stale_after=10),
        )
        dispatcher.open_session("b", "codex")
        dispatcher.handle(_chunk(_message("b"), session_id="b", seq=7))
        clock.now = 20.0
        dispatcher.handle(_chunk("tick", session_id="a"))
        assert "b" not in dispatcher._last_seq
        # A restarted stream for the swept session may begin at zero again.
        dispatcher.handle(_chunk(_message("b"), session_id="b", seq=0))


# ===================================================================
# Delivery order
# ===================================================================


class TestSequenceNumbers:
    def test_increasing_seq_accepted(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.handle(_chunk("a", seq=0))
        dispatcher.handle(_chunk("b", seq=3))

    def test_duplicate_seq_rejected(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.handle(_chunk("a", seq=1))
        with pytest.raises(OutOfOrderChunkError, match="seq 1"):
            dispatcher.handle(_chunk("a", seq=1))

    def test_out_of_order_is_dispatch_error(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.handle(_chunk("a", seq=5))
        with pytest.raises(DispatchError):
            dispatcher.handle(_chunk("b", seq=2))

    def test_seq_reset_after_finished(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.handle(_chunk("a", seq=5, finished=True))
        dispatcher.handle(_chunk("b", seq=0))

    def test_seq_tracked_per_session(self, dispatcher: ChunkDispatcher) -> None:
        dispatcher.handle(_chunk("a", session_id="a", seq=5))
        dispatcher.handle(_chunk("b", session_id="b", seq=0))


# ===================================================================
# Recording and threading
# ===================================================================


class TestRecording:
    def test_dispatch_is_recorded(self, store: InMemoryMessageStore, tmp_path: Path) -> None:
        recorder = ChunkRecorder(tmp_path / "stream.jsonl")
        dispatcher = ChunkDispatcher(store, recorder=recorder)
        dispatcher.open_session("s1", "codex")
        dispatcher.handle(_chunk(_message("hi"), seq=0))
        dispatcher.cancel("s1")
        recorder.close()

        recording = load_recording(tmp_path / "stream.jsonl")
        assert [r.type for r in recording.records] == ["open", "chunk", "cancel"]
        assert recording.parse_warnings == []

    def test_rejected_chunk_not_recorded(
        self, store: InMemoryMessageStore, tmp_path: Path
    ) -> None:
        recorder = ChunkRecorder(tmp_path / "stream.jsonl")
        dispatcher = ChunkDispatcher(store, recorder=recorder)
        dispatcher.handle(_chunk("a", seq=3))
        with pytest.raises(OutOfOrderChunkError):
            dispatcher.handle(_chunk("b", seq=1))
        recorder.close()

        recording = load_recording(tmp_path / "stream.jsonl")
        assert [r.content for r in recording.records] == ["a"]


class TestThreading:
    def test_concurrent_sessions(
        self, dispatcher: ChunkDispatcher, store: InMemoryMessageStore
    ) -> None:
        def worker(sid: str) -> None:
            for _ in range(50):
                dispatcher.handle(_chunk("x", session_id=sid))

        threads = [threading.Thread(target=worker, args=(f"s{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for i in range(4):
            assert _content(store, f"s{i}") == "x" * 50
