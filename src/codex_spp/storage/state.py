"""On-disk runtime layout: governance state, weekly reports, session directories."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from ..config import RUNTIME_DIR
from ..errors import SppError
from ..models import GovernanceState, WeeklyReport

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
SESSIONS_DIR = "sessions"
WEEKLY_DIR = "weekly"


class StateLoadError(SppError):
    """Raised when the persisted state file exists but cannot be parsed."""


def write_json_atomic(path: Path, payload: str) -> None:
    """Replace ``path`` with ``payload`` so readers never see a partial file."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


@dataclass(slots=True)
class SizedFile:
    path: Path
    size: int
    modified: float


class StateStore:
    """Read-modify-write access to ``.codex-spp/`` under a repository root."""

    def __init__(self, repo_root: Path, *, clock: Callable[[], datetime] | None = None) -> None:
        self._repo_root = Path(repo_root)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def repo_root(self) -> Path:
        return self._repo_root

    @property
    def runtime_dir(self) -> Path:
        return self._repo_root / RUNTIME_DIR

    @property
    def state_path(self) -> Path:
        return self.runtime_dir / STATE_FILE

    @property
    def sessions_dir(self) -> Path:
        return self.runtime_dir / SESSIONS_DIR

    @property
    def weekly_dir(self) -> Path:
        return self.runtime_dir / WEEKLY_DIR

    def session_dir(self, session_id: str) -> Path:
        return self.sessions_dir / session_id

    def ensure_runtime_dirs(self) -> None:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.weekly_dir.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.state_path.exists()

    def load(self) -> GovernanceState:
        if not self.state_path.exists():
            return GovernanceState()
        try:
            text = self.state_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StateLoadError(f"failed to read {self.state_path}: {exc}") from exc
        try:
            return GovernanceState.model_validate_json(text)
        except ValidationError as exc:
            raise StateLoadError(f"failed to parse state {self.state_path}: {exc}") from exc

    def save(self, state: GovernanceState) -> GovernanceState:
        state.updated_at = self._clock()
        write_json_atomic(self.state_path, state.model_dump_json(indent=2))
        return state

    def write_weekly_report(self, report: WeeklyReport) -> Path:
        path = self.weekly_dir / report.filename
        write_json_atomic(path, report.model_dump_json(indent=2))
        return path

    def read_weekly_reports(self) -> list[WeeklyReport]:
        if not self.weekly_dir.exists():
            return []
        reports: list[WeeklyReport] = []
        for path in sorted(self.weekly_dir.glob("*.json")):
            try:
                reports.append(WeeklyReport.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValidationError, json.JSONDecodeError) as exc:
                logger.warning("Skipping unreadable weekly report", extra={"path": str(path), "error": str(exc)})
        return reports

    def clear_weekly_reports(self) -> int:
        if not self.weekly_dir.exists():
            return 0
        removed = 0
        for entry in self.weekly_dir.iterdir():
            if entry.is_file():
                entry.unlink()
                removed += 1
        return removed

    def _collect_log_files(self, skip: Path | None) -> list[SizedFile]:
        files: list[SizedFile] = []
        for base in (self.sessions_dir, self.weekly_dir):
            if not base.exists():
                continue
            for path in base.rglob("*"):
                if not path.is_file():
                    continue
                if skip is not None and skip in path.parents:
                    continue
                stat = path.stat()
                files.append(SizedFile(path=path, size=stat.st_size, modified=stat.st_mtime))
        return files

    def enforce_log_size(self, max_bytes: int, *, active_session_id: str | None = None) -> list[Path]:
        """Delete the oldest log files until the total fits in ``max_bytes``.

        Files of the active drive session are never counted or removed.
        """

        skip = self.session_dir(active_session_id) if active_session_id else None
        files = self._collect_log_files(skip)
        total = sum(item.size for item in files)
        removed: list[Path] = []
        if total <= max_bytes:
            return removed

        files.sort(key=lambda item: item.modified)
        for item in files:
            if total <= max_bytes:
                break
            item.path.unlink(missing_ok=True)
            total -= item.size
            removed.append(item.path)

        for session_dir in list(self.sessions_dir.iterdir()) if self.sessions_dir.exists() else []:
            if session_dir.is_dir() and session_dir != skip and not any(session_dir.iterdir()):
                session_dir.rmdir()

        logger.info("Pruned runtime logs", extra={"removed": len(removed), "max_bytes": max_bytes})
        return removed


__all__ = ["StateLoadError", "StateStore", "write_json_atomic"]
