"""Chunk recorder — append-only JSONL capture of an agent event stream."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from pydantic import TypeAdapter, ValidationError

from agentstream.parsers.base import AgentKind
from agentstream.session.models import (
    CancelRecord,
    ChunkRecord,
    OpenRecord,
    StreamChunk,
    StreamRecord,
)

_RECORD_ADAPTER: TypeAdapter[StreamRecord] = TypeAdapter(StreamRecord)


class RecordingError(Exception):
    """A recording file could not be read."""


class ChunkRecorder:
    """Records session opens, chunks and cancellations to a JSONL file.

    Thread-safe: all writes are serialized through a ``threading.Lock``.
    Crash-safe: the file is flushed after every record.
    """

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._path = path
        self._lock = threading.Lock()
        self._count = 0
        self._closed = False
        self._fh: IO[str] | None = path.open("a", encoding="utf-8")

    @property
    def path(self) -> Path:
        return self._path

    @property
    def record_count(self) -> int:
        """Number of records written so far."""
        return self._count

    def record_open(self, session_id: str, kind: AgentKind) -> None:
        self._write(OpenRecord(session_id=session_id, kind=kind))

    def record_chunk(self, chunk: StreamChunk) -> None:
        self._write(
            ChunkRecord(
                session_id=chunk.session_id,
                content=chunk.content,
                finished=chunk.finished,
                seq=chunk.seq,
            )
        )

    def record_cancel(self, session_id: str) -> None:
        self._write(CancelRecord(session_id=session_id))

    def _write(self, record: StreamRecord) -> None:
        """Silently drops records after the recorder has been closed."""
        with self._lock:
            if self._closed or self._fh is None:
                return
            self._fh.write(record.model_dump_json(exclude_none=True) + "\n")
            self._fh.flush()
            self._count += 1

    def close(self) -> None:
        """Close the file handle.  Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._fh is not None and not self._fh.closed:
                self._fh.close()


@dataclass
class Recording:
    """Parsed recording ready for replay."""

    path: Path
    records: list[StreamRecord] = field(default_factory=list)
    parse_warnings: list[str] = field(default_factory=list)

    @property
    def session_ids(self) -> list[str]:
        """Session ids in first-seen order."""
        return list(dict.fromkeys(r.session_id for r in self.records))


def load_recording(path: Path) -> Recording:
    """Parse a recording, collecting a warning for every malformed line.

    Raises:
        RecordingError: If the file cannot be opened.
    """
    recording = Recording(path=path)
    try:
        fh = path.open("r", encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read recording {path}: {exc}"
        raise RecordingError(msg) from exc

    with fh:
        for line_num, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                recording.records.append(_RECORD_ADAPTER.validate_json(line))
            except ValidationError as exc:
                detail = exc.errors()[0]["msg"] if exc.errors() else str(exc)
                recording.parse_warnings.append(f"Line {line_num}: {detail}")

    return recording
