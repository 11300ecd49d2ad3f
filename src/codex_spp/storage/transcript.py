"""Append-only per-session transcript writer."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

from ..models import EventType, Mode, TranscriptEvent


class IdGenerator:
    """Monotonic id source owned by one process.

    Ids combine a creation timestamp, the process id, and a counter, so they are
    unique within a host without any shared state.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        pid: int | None = None,
    ) -> None:
        clock = clock or (lambda: datetime.now(timezone.utc))
        self._stamp = clock().strftime("%Y%m%dT%H%M%S%fZ")
        self._pid = os.getpid() if pid is None else pid
        self._counter = 0

    @property
    def counter(self) -> int:
        return self._counter

    def next_id(self, prefix: str | None = None) -> str:
        self._counter += 1
        base = f"{self._stamp}-{self._pid}-{self._counter}"
        return f"{prefix}-{base}" if prefix else base


def append_jsonl(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(line)
        handle.write("\n")


class TranscriptWriter:
    """Append :class:`TranscriptEvent` records to a session transcript file."""

    def __init__(
        self,
        path: Path,
        *,
        session_id: str,
        mode: Mode,
        log_schema_version: str = "1.0",
        ids: IdGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._session_id = session_id
        self._mode = mode
        self._schema = log_schema_version
        self._ids = ids or IdGenerator()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def path(self) -> Path:
        return self._path

    def write(
        self,
        event_type: EventType,
        *,
        payload: Any | None = None,
        notes: str | None = None,
    ) -> TranscriptEvent:
        event = TranscriptEvent(
            log_schema_version=self._schema,
            event_id=self._ids.next_id("evt"),
            session_id=self._session_id,
            event_type=event_type,
            timestamp=self._clock(),
            mode=self._mode,
            payload=payload,
            notes=notes,
        )
        append_jsonl(self._path, event.to_json_line())
        return event


def read_transcript(path: Path) -> Iterator[TranscriptEvent]:
    """Yield transcript events, skipping lines that are not valid events."""

    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                yield TranscriptEvent.model_validate(json.loads(line))
            except ValueError:
                continue


__all__ = ["IdGenerator", "TranscriptWriter", "append_jsonl", "read_transcript"]
