from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from codex_spp.config import GovernanceConfig, RecorderConfig
from codex_spp.models import DriveReason, EventType, GovernanceState, Mode, RecorderDone, RecorderParams
from codex_spp.recorder.control import ControlChannel
from codex_spp.session import (
    STOP_REASON,
    STOP_REASON_TIMEOUT,
    HistoryNotFoundError,
    NoActiveSessionError,
    SessionAlreadyActiveError,
    SessionController,
    resolve_history_path,
    stop_timeout,
)
from codex_spp.storage import StateStore, read_transcript


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class RecordingSpawner:
    """Stand-in for the detached recorder; optionally finishes immediately."""

    def __init__(self, *, finish: bool = True, pid: int = 4242) -> None:
        self.finish = finish
        self.pid = pid
        self.calls: list[RecorderParams] = []

    def __call__(self, params_path: Path, log_path: Path, cwd: Path) -> int:
        params = RecorderParams.model_validate_json(params_path.read_text(encoding="utf-8"))
        self.calls.append(params)
        if self.finish:
            ControlChannel(params.control_path, params.done_path).write_done(
                RecorderDone(
                    session_id=params.session_id,
                    finished_at=datetime(2026, 10, 19, 9, 5, tzinfo=timezone.utc),
                    history_offset=params.history_offset + 10,
                    chat_events=3,
                    diff_events=2,
                )
            )
        return self.pid


def _setup(tmp_path: Path, *, spawner=None, terminator=None):
    history = tmp_path / "history.jsonl"
    history.write_text('{"role": "user", "content": "earlier"}\n', encoding="utf-8")
    repo = tmp_path / "repo"
    repo.mkdir()
    config = GovernanceConfig(recorder=RecorderConfig(history_path=history, poll_interval_seconds=1.0))
    store = StateStore(repo)
    store.ensure_runtime_dirs()
    killed: list[int] = []
    controller = SessionController(
        store,
        config,
        spawner=spawner or RecordingSpawner(),
        terminator=terminator or killed.append,
        clock=Clock(),
        sleep=lambda _seconds: None,
    )
    return controller, store, history, killed


def test_start_then_stop_records_session(tmp_path: Path) -> None:
    spawner = RecordingSpawner()
    controller, store, history, _killed = _setup(tmp_path, spawner=spawner)

    started = controller.start()

    state = store.load()
    assert state.mode is Mode.DRIVE
    assert state.drive_reason is DriveReason.MANUAL
    session = state.active_drive_session
    assert session is not None
    assert session.session_id == started.session_id
    assert session.recorder_pid == 4242
    assert session.history_offset == history.stat().st_size
    assert spawner.calls[0].history_offset == history.stat().st_size
    assert spawner.calls[0].poll_interval_seconds == 1.0

    stopped = controller.stop(timeout=1)

    assert stopped.stop_reason == STOP_REASON
    assert not stopped.timed_out
    assert stopped.done.chat_events == 3
    assert stopped.mode is Mode.NORMAL
    state = store.load()
    assert state.active_drive_session is None
    assert state.drive_reason is None
    assert not session.control_path.exists()
    assert not session.done_path.exists()

    events = list(read_transcript(started.transcript_path))
    assert [event.event_type for event in events] == [EventType.SESSION_START, EventType.SESSION_END]
    start_payload = events[0].payload
    assert start_payload["history"]["offset"] == session.history_offset
    assert start_payload["git"] == {"branch": "unknown", "commit": None}
    assert start_payload["drive_reason"] == "manual"
    end_payload = events[1].payload
    assert end_payload["stop_reason"] == STOP_REASON
    assert end_payload["chat_events"] == 3
    assert end_payload["diff_events"] == 2
    assert end_payload["errors"] == []
    assert end_payload["duration_seconds"] > 0
    assert events[0].event_id != events[1].event_id


def test_second_start_fails_without_touching_state(tmp_path: Path) -> None:
    controller, store, _history, _killed = _setup(tmp_path)
    controller.start()
    before = store.state_path.read_text(encoding="utf-8")

    with pytest.raises(SessionAlreadyActiveError):
        controller.start()

    assert store.state_path.read_text(encoding="utf-8") == before
    assert len([path for path in store.sessions_dir.iterdir()]) == 1


def test_stop_without_session_raises(tmp_path: Path) -> None:
    controller, _store, _history, _killed = _setup(tmp_path)

    with pytest.raises(NoActiveSessionError):
        controller.stop()


def test_missing_history_file_refuses_start(tmp_path: Path) -> None:
    controller, store, history, _killed = _setup(tmp_path)
    history.unlink()

    with pytest.raises(HistoryNotFoundError):
        controller.start()

    assert store.load().mode is Mode.NORMAL
    assert not any(store.sessions_dir.iterdir())


def test_stop_timeout_terminates_recorder_and_keeps_files(tmp_path: Path) -> None:
    controller, store, _history, killed = _setup(tmp_path, spawner=RecordingSpawner(finish=False, pid=777))
    started = controller.start()
    session = store.load().active_drive_session

    stopped = controller.stop(timeout=0)

    assert stopped.stop_reason == STOP_REASON_TIMEOUT
    assert stopped.timed_out
    assert killed == [777]
    assert stopped.done.errors
    assert stopped.done.history_offset == session.history_offset
    assert session.control_path.exists()
    assert store.load().active_drive_session is None

    end = list(read_transcript(started.transcript_path))[-1]
    assert end.payload["stop_reason"] == STOP_REASON_TIMEOUT
    assert end.notes


def test_stop_timeout_records_terminate_failure(tmp_path: Path) -> None:
    def failing_terminator(pid: int) -> None:
        raise ProcessLookupError(f"no such process {pid}")

    controller, _store, _history, _killed = _setup(
        tmp_path, spawner=RecordingSpawner(finish=False), terminator=failing_terminator
    )
    controller.start()

    stopped = controller.stop(timeout=0)

    assert len(stopped.done.errors) == 2
    assert "failed to terminate" in stopped.done.errors[1]


def test_stop_keeps_gate_forced_drive(tmp_path: Path) -> None:
    controller, store, _history, _killed = _setup(tmp_path)
    store.save(GovernanceState(mode=Mode.DRIVE, drive_reason=DriveReason.GATE))

    controller.start()
    assert store.load().drive_reason is DriveReason.GATE
    stopped = controller.stop(timeout=1)

    assert stopped.mode is Mode.DRIVE
    state = store.load()
    assert state.mode is Mode.DRIVE
    assert state.drive_reason is DriveReason.GATE


def test_stop_timeout_scales_with_poll_interval() -> None:
    assert stop_timeout(1) == 15
    assert stop_timeout(10) == 30


def test_resolve_history_path_prefers_config_then_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    explicit = tmp_path / "explicit.jsonl"
    config = GovernanceConfig(recorder=RecorderConfig(history_path=explicit))
    assert resolve_history_path(config) == explicit

    monkeypatch.setenv("CODEX_HOME", str(tmp_path / "codex"))
    assert resolve_history_path(GovernanceConfig()) == tmp_path / "codex" / "history.jsonl"

    monkeypatch.delenv("CODEX_HOME")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert resolve_history_path(GovernanceConfig()) == tmp_path / ".codex" / "history.jsonl"
