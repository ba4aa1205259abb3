"""Stream session I/O — chunk/update models and the JSONL recorder."""

from agentstream.session.models import (
    CancelRecord,
    ChunkRecord,
    MessageUpdate,
    OpenRecord,
    StreamChunk,
    StreamRecord,
)
from agentstream.session.recorder import (
    ChunkRecorder,
    Recording,
    RecordingError,
    load_recording,
)

__all__ = [
    "CancelRecord",
    "ChunkRecord",
    "ChunkRecorder",
    "MessageUpdate",
    "OpenRecord",
    "Recording",
    "RecordingError",
    "StreamChunk",
    "StreamRecord",
    "load_recording",
]
