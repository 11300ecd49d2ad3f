from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from codex_spp.models import Actor, DriveReason, GovernanceState, Mode, WeeklyReport
from codex_spp.storage import StateLoadError, StateStore, write_json_atomic

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _report(week: int) -> WeeklyReport:
    return WeeklyReport(
        log_schema_version="1.0",
        generated_at=NOW,
        year=2026,
        iso_week=week,
        human_lines_added=7,
        ai_lines_added=3,
        human_commit_count=1,
        ai_commit_count=1,
        ratio=0.7,
        target_ratio=0.7,
        gate_passed=True,
        mode_after_evaluation=Mode.NORMAL,
    )


def test_load_missing_state_returns_default(tmp_path: Path) -> None:
    state = StateStore(tmp_path).load()

    assert state.mode is Mode.NORMAL
    assert state.active_drive_session is None


def test_save_round_trips_and_stamps_updated_at(tmp_path: Path) -> None:
    store = StateStore(tmp_path, clock=lambda: NOW)
    state = GovernanceState(mode=Mode.DRIVE, drive_reason=DriveReason.GATE)
    state.attribution_overrides["f" * 40] = Actor.HUMAN

    store.save(state)
    loaded = store.load()

    assert loaded.mode is Mode.DRIVE
    assert loaded.drive_reason is DriveReason.GATE
    assert loaded.attribution_overrides == {"f" * 40: Actor.HUMAN}
    assert loaded.updated_at == NOW
    assert [path.name for path in store.runtime_dir.iterdir()] == ["state.json"]


def test_corrupt_state_raises(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.runtime_dir.mkdir(parents=True)
    store.state_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StateLoadError):
        store.load()


def test_write_json_atomic_replaces_existing(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "file.json"
    write_json_atomic(target, '{"a": 1}')
    write_json_atomic(target, '{"a": 2}')

    assert target.read_text(encoding="utf-8") == '{"a": 2}'
    assert [path.name for path in target.parent.iterdir()] == ["file.json"]


def test_weekly_reports_are_named_by_iso_week(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.ensure_runtime_dirs()

    path = store.write_weekly_report(_report(3))
    store.write_weekly_report(_report(42))
    (store.weekly_dir / "garbage.json").write_text("[]", encoding="utf-8")

    assert path.name == "2026-W03.json"
    assert [report.iso_week for report in store.read_weekly_reports()] == [3, 42]
    assert store.clear_weekly_reports() == 3
    assert store.read_weekly_reports() == []


def _write_sized(path: Path, size: int, mtime: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    os.utime(path, (mtime, mtime))


def test_enforce_log_size_removes_oldest_first(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.ensure_runtime_dirs()
    old = store.session_dir("old") / "transcript.jsonl"
    newer = store.session_dir("newer") / "transcript.jsonl"
    weekly = store.weekly_dir / "2026-W42.json"
    _write_sized(old, 400, 1_000)
    _write_sized(newer, 400, 2_000)
    _write_sized(weekly, 100, 3_000)

    removed = store.enforce_log_size(600)

    assert removed == [old]
    assert not store.session_dir("old").exists()
    assert newer.exists()
    assert weekly.exists()


def test_enforce_log_size_never_touches_active_session(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.ensure_runtime_dirs()
    active = store.session_dir("active") / "transcript.jsonl"
    other = store.session_dir("other") / "transcript.jsonl"
    _write_sized(active, 5_000, 1_000)
    _write_sized(other, 300, 2_000)

    assert store.enforce_log_size(500, active_session_id="active") == []

    removed = store.enforce_log_size(100, active_session_id="active")

    assert removed == [other]
    assert active.exists()


def test_enforce_log_size_noop_under_budget(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    _write_sized(store.session_dir("s") / "transcript.jsonl", 10, 1_000)

    assert store.enforce_log_size(1_000) == []
