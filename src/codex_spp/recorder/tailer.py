"""Incremental reader for an append-only JSON-lines history file."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class TailResult:
    records: list[Any] = field(default_factory=list)
    offset: int = 0
    errors: list[str] = field(default_factory=list)


class HistoryTailer:
    """Read whole, newline-terminated, JSON-parseable records past an offset.

    The offset only advances past records that were fully consumed. A trailing
    partial line or a line that fails to parse is left for the next call, so a
    writer that is mid-append never causes a record to be skipped or read twice.
    """

    def __init__(self, path: Path, offset: int = 0) -> None:
        self._path = Path(path)
        self._offset = max(0, int(offset))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def offset(self) -> int:
        return self._offset

    def read(self) -> TailResult:
        result = TailResult(offset=self._offset)
        with self._path.open("rb") as handle:
            handle.seek(0, 2)
            size = handle.tell()
            if size < self._offset:
                result.errors.append(
                    f"history file {self._path} shrank below offset {self._offset} "
                    f"(now {size} bytes); restarting from 0"
                )
                self._offset = 0

            handle.seek(self._offset)
            while True:
                line_start = handle.tell()
                line = handle.readline()
                if not line:
                    break
                if not line.endswith(b"\n"):
                    handle.seek(line_start)
                    break
                if not line.strip():
                    self._offset = handle.tell()
                    continue
                try:
                    record = json.loads(line)
                except ValueError as exc:
                    handle.seek(line_start)
                    result.errors.append(f"unparsable history record at offset {line_start}: {exc}")
                    break
                result.records.append(record)
                self._offset = handle.tell()

        result.offset = self._offset
        return result


__all__ = ["HistoryTailer", "TailResult"]
