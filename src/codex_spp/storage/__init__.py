"""Storage abstractions for codex-spp."""

from .state import StateLoadError, StateStore, write_json_atomic
from .transcript import IdGenerator, TranscriptWriter, append_jsonl, read_transcript

__all__ = [
    "IdGenerator",
    "StateLoadError",
    "StateStore",
    "TranscriptWriter",
    "append_jsonl",
    "read_transcript",
    "write_json_atomic",
]
