"""Drive session lifecycle: start and stop the detached recorder process."""

from __future__ import annotations

import itertools
import logging
import os
import signal
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .config import GovernanceConfig, SppSettings
from .errors import SppError
from .git import GitError, GitRunner
from .governance.modes import enter_drive, leave_drive
from .models import (
    ActiveDriveSession,
    EventType,
    Mode,
    RecorderDone,
    RecorderParams,
)
from .recorder.control import ControlChannel
from .storage.state import StateStore, write_json_atomic
from .storage.transcript import IdGenerator, TranscriptWriter

logger = logging.getLogger(__name__)

MIN_STOP_TIMEOUT = 15.0
STOP_REASON = "manual_stop"
STOP_REASON_TIMEOUT = "manual_stop_timeout"

TRANSCRIPT_FILE = "transcript.jsonl"
CONTROL_FILE = "control"
DONE_FILE = "done.json"
PARAMS_FILE = "recorder.json"
RECORDER_LOG = "recorder.log"


class SessionError(SppError):
    """Base class for drive session setup errors."""


class SessionAlreadyActiveError(SessionError):
    pass


class NoActiveSessionError(SessionError):
    pass


class HistoryLocationError(SessionError):
    """Raised when no assistant history location can be derived."""


class HistoryNotFoundError(SessionError):
    pass


Spawner = Callable[[Path, Path, Path], int]
Terminator = Callable[[int], None]


def stop_timeout(poll_interval: float) -> float:
    return max(poll_interval * 3, MIN_STOP_TIMEOUT)


def resolve_history_path(config: GovernanceConfig, settings: SppSettings | None = None) -> Path:
    """Explicit config path, then ``SPP_HISTORY_PATH``, then the assistant's home directory."""

    if config.recorder.history_path is not None:
        return Path(config.recorder.history_path).expanduser()
    if settings is not None and settings.history_path is not None:
        return Path(settings.history_path).expanduser()
    if settings is not None and settings.codex_home is not None:
        return Path(settings.codex_home).expanduser() / "history.jsonl"
    codex_home = os.environ.get("CODEX_HOME")
    if codex_home:
        return Path(codex_home).expanduser() / "history.jsonl"
    home = os.environ.get("HOME") or os.environ.get("USERPROFILE")
    if not home:
        raise HistoryLocationError(
            "cannot locate assistant history: set recorder.history_path, SPP_HISTORY_PATH or CODEX_HOME"
        )
    return Path(home) / ".codex" / "history.jsonl"


def spawn_recorder(params_path: Path, log_path: Path, cwd: Path) -> int:
    """Launch ``python -m codex_spp.recorder`` detached from the calling terminal."""

    log_handle = log_path.open("a", encoding="utf-8")
    kwargs: dict[str, object] = {
        "cwd": str(cwd),
        "stdin": subprocess.DEVNULL,
        "stdout": log_handle,
        "stderr": log_handle,
        "close_fds": True,
    }
    if os.name == "nt":
        kwargs["creationflags"] = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    try:
        proc = subprocess.Popen(
            [sys.executable, "-m", "codex_spp.recorder", "--params", str(params_path)],
            **kwargs,
        )
    finally:
        log_handle.close()
    return proc.pid


def terminate_process(pid: int) -> None:
    if os.name == "nt":
        completed = subprocess.run(
            ["taskkill", "/PID", str(pid), "/T", "/F"], check=False, capture_output=True, text=True
        )
        if completed.returncode != 0:
            raise OSError(completed.stderr.strip() or f"taskkill exited with {completed.returncode}")
        return
    os.kill(pid, signal.SIGTERM)


@dataclass(slots=True)
class StartResult:
    session_id: str
    transcript_path: Path
    recorder_pid: int
    mode: Mode


@dataclass(slots=True)
class StopResult:
    session_id: str
    stop_reason: str
    done: RecorderDone
    transcript_path: Path
    mode: Mode

    @property
    def timed_out(self) -> bool:
        return self.stop_reason == STOP_REASON_TIMEOUT


class SessionController:
    """Orchestrate one drive recording session per repository."""

    def __init__(
        self,
        store: StateStore,
        config: GovernanceConfig,
        *,
        settings: SppSettings | None = None,
        git: GitRunner | None = None,
        spawner: Spawner = spawn_recorder,
        terminator: Terminator = terminate_process,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._settings = settings
        self._git = git
        self._spawner = spawner
        self._terminator = terminator
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._session_counter = itertools.count(1)
        self._ids = IdGenerator(clock=self._clock)

    def next_session_id(self) -> str:
        stamp = self._clock().astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        return f"{stamp}-{os.getpid()}-{next(self._session_counter)}"

    def _channel(self, control_path: Path, done_path: Path) -> ControlChannel:
        if self._sleep is None:
            return ControlChannel(control_path, done_path)
        return ControlChannel(control_path, done_path, sleep=self._sleep)

    def _git_snapshot(self) -> dict[str, str | None]:
        if self._git is None:
            return {"branch": "unknown", "commit": None}
        try:
            return {"branch": self._git.current_branch(), "commit": self._git.head_commit()}
        except GitError as exc:
            logger.warning("Git snapshot unavailable", extra={"error": str(exc)})
            return {"branch": "unknown", "commit": None}

    def start(self) -> StartResult:
        state = self._store.load()
        if state.active_drive_session is not None:
            raise SessionAlreadyActiveError(
                f"drive session {state.active_drive_session.session_id} is already active"
            )

        history_path = resolve_history_path(self._config, self._settings)
        if not history_path.is_file():
            raise HistoryNotFoundError(f"assistant history file not found: {history_path}")
        history_stat = history_path.stat()
        offset = history_stat.st_size

        started_at = self._clock()
        session_id = self.next_session_id()
        session_dir = self._store.session_dir(session_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        transcript_path = session_dir / TRANSCRIPT_FILE
        control_path = session_dir / CONTROL_FILE
        done_path = session_dir / DONE_FILE

        channel = self._channel(control_path, done_path)
        channel.request_run()

        enter_drive(state)
        recorder = self._config.recorder
        writer = TranscriptWriter(
            transcript_path,
            session_id=session_id,
            mode=state.mode,
            log_schema_version=self._config.log_schema_version,
            ids=self._ids,
            clock=self._clock,
        )
        writer.write(
            EventType.SESSION_START,
            payload={
                "config": self._config.model_dump(mode="json"),
                "history": {
                    "path": str(history_path),
                    "offset": offset,
                    "inode": history_stat.st_ino,
                },
                "git": self._git_snapshot(),
                "drive_reason": state.drive_reason.value if state.drive_reason else None,
            },
        )

        params = RecorderParams(
            session_id=session_id,
            repo_root=self._store.repo_root,
            history_path=history_path,
            history_offset=offset,
            transcript_path=transcript_path,
            control_path=control_path,
            done_path=done_path,
            mode=state.mode,
            log_schema_version=self._config.log_schema_version,
            poll_interval_seconds=recorder.poll_interval_seconds,
            max_event_bytes=recorder.max_event_bytes,
            diff_enabled=self._config.diff_snapshot_enabled,
            max_file_bytes=recorder.max_file_bytes,
            exclude_paths=list(recorder.exclude_paths),
            log_level=self._settings.log_level if self._settings else "INFO",
        )
        params_path = session_dir / PARAMS_FILE
        write_json_atomic(params_path, params.model_dump_json(indent=2))

        pid = self._spawner(params_path, session_dir / RECORDER_LOG, self._store.repo_root)

        state.active_drive_session = ActiveDriveSession(
            session_id=session_id,
            started_at=started_at,
            history_path=history_path,
            history_offset=offset,
            history_inode=history_stat.st_ino,
            transcript_path=transcript_path,
            control_path=control_path,
            done_path=done_path,
            recorder_pid=pid,
        )
        self._store.save(state)
        logger.info(
            "Drive session started",
            extra={"session_id": session_id, "recorder_pid": pid, "offset": offset},
        )
        return StartResult(
            session_id=session_id,
            transcript_path=transcript_path,
            recorder_pid=pid,
            mode=state.mode,
        )

    def stop(self, *, timeout: float | None = None) -> StopResult:
        state = self._store.load()
        session = state.active_drive_session
        if session is None:
            raise NoActiveSessionError("no active drive session")

        channel = self._channel(session.control_path, session.done_path)
        channel.request_stop()
        wait = timeout if timeout is not None else stop_timeout(
            self._config.recorder.poll_interval_seconds
        )
        done = channel.wait_for_done(wait)

        notes: str | None = None
        if done is not None:
            stop_reason = STOP_REASON
        else:
            stop_reason = STOP_REASON_TIMEOUT
            errors = [f"recorder did not acknowledge stop within {wait:.1f}s"]
            if session.recorder_pid is not None:
                try:
                    self._terminator(session.recorder_pid)
                except (OSError, subprocess.SubprocessError) as exc:
                    errors.append(f"failed to terminate recorder pid {session.recorder_pid}: {exc}")
            else:
                errors.append("no recorder pid recorded; nothing to terminate")
            notes = "; ".join(errors)
            done = RecorderDone(
                session_id=session.session_id,
                finished_at=self._clock(),
                history_offset=session.history_offset,
                errors=errors,
            )
            logger.warning(
                "Recorder stop timed out",
                extra={"session_id": session.session_id, "recorder_pid": session.recorder_pid},
            )

        ended_at = self._clock()
        writer = TranscriptWriter(
            session.transcript_path,
            session_id=session.session_id,
            mode=state.mode,
            log_schema_version=self._config.log_schema_version,
            ids=self._ids,
            clock=self._clock,
        )
        writer.write(
            EventType.SESSION_END,
            payload={
                "chat_events": done.chat_events,
                "diff_events": done.diff_events,
                "duration_seconds": max(0.0, (ended_at - session.started_at).total_seconds()),
                "stop_reason": stop_reason,
                "history_offset": done.history_offset,
                "errors": list(done.errors),
            },
            notes=notes,
        )

        if stop_reason == STOP_REASON:
            channel.clear()

        leave_drive(state)
        state.active_drive_session = None
        self._store.save(state)
        logger.info(
            "Drive session stopped",
            extra={"session_id": session.session_id, "stop_reason": stop_reason},
        )
        return StopResult(
            session_id=session.session_id,
            stop_reason=stop_reason,
            done=done,
            transcript_path=session.transcript_path,
            mode=state.mode,
        )


__all__ = [
    "HistoryLocationError",
    "HistoryNotFoundError",
    "NoActiveSessionError",
    "SessionAlreadyActiveError",
    "SessionController",
    "SessionError",
    "StartResult",
    "StopResult",
    "resolve_history_path",
    "spawn_recorder",
    "stop_timeout",
    "terminate_process",
]
