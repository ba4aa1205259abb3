"""Tests for the session-keyed parser registry."""

from __future__ import annotations

from agentstream.parsers import ClaudeStreamParser, CodexStreamParser
from agentstream.registry import ParserRegistry


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestGetOrCreate:
    def test_creates_once_per_session(self) -> None:
        registry = ParserRegistry()
        first = registry.get_or_create("s1", "codex")
        again = registry.get_or_create("s1", "codex")
        assert first is again
        assert isinstance(first, CodexStreamParser)
        assert len(registry) == 1

    def test_sessions_are_isolated(self) -> None:
        registry = ParserRegistry()
        a = registry.get_or_create("a", "claude")
        b = registry.get_or_create("b", "claude")
        assert a is not b
        assert isinstance(a, ClaudeStreamParser)
        assert registry.session_ids == ["a", "b"]

    def test_kind_ignored_once_bound(self) -> None:
        registry = ParserRegistry()
        registry.get_or_create("s1", "codex")
        assert isinstance(registry.get_or_create("s1", "claude"), CodexStreamParser)

    def test_custom_factory(self) -> None:
        calls: list[str] = []

        def factory(kind):  # type: ignore[no-untyped-def]
            calls.append(kind)
            return CodexStreamParser()

        registry = ParserRegistry(factory=factory)
        registry.get_or_create("s1", "codex")
        registry.get_or_create("s1", "codex")
        assert calls == ["codex"]

    def test_get_missing(self) -> None:
        registry = ParserRegistry()
        assert registry.get("nope") is None
        assert "nope" not in registry


class TestEviction:
    def test_evict_removes_entry(self) -> None:
        registry = ParserRegistry()
        old = registry.get_or_create("s1", "codex")
        assert registry.evict("s1") is True
        assert "s1" not in registry
        assert registry.get_or_create("s1", "codex") is not old

    def test_evict_is_idempotent(self) -> None:
        registry = ParserRegistry()
        assert registry.evict("ghost") is False
        registry.get_or_create("s1", "codex")
        registry.evict("s1")
        assert registry.evict("s1") is False

    def test_cancel_matches_evict(self) -> None:
        registry = ParserRegistry()
        registry.get_or_create("s1", "claude")
        assert registry.cancel("s1") is True
        assert len(registry) == 0


class TestSweep:
    def test_sweeps_only_idle_sessions(self) -> None:
        clock = _FakeClock()
        registry = ParserRegistry(clock=clock)
        registry.get_or_create("old", "codex")
        clock.now = 50.0
        registry.get_or_create("new", "codex")
        clock.now = 70.0

        assert registry.sweep(30.0) == ["old"]
        assert registry.session_ids == ["new"]

    def test_get_refreshes_idle_time(self) -> None:
        clock = _FakeClock()
        registry = ParserRegistry(clock=clock)
        registry.get_or_create("s1", "codex")
        clock.now = 25.0
        registry.get("s1")
        clock.now = 40.0
        assert registry.sweep(30.0) == []
        assert "s1" in registry
