"""Drive session recorder: history tailing, chat extraction, workspace diffing."""

from .control import ControlChannel
from .differ import FileDiff, FileSnapshotEntry, WorkspaceDiffer, guess_language
from .extractor import ChatExtractor, ChatMessage, truncate_utf8
from .loop import ErrorLog, RecorderLoop, run_recorder
from .tailer import HistoryTailer, TailResult

__all__ = [
    "ChatExtractor",
    "ChatMessage",
    "ControlChannel",
    "ErrorLog",
    "FileDiff",
    "FileSnapshotEntry",
    "HistoryTailer",
    "RecorderLoop",
    "TailResult",
    "WorkspaceDiffer",
    "guess_language",
    "run_recorder",
    "truncate_utf8",
]
