from __future__ import annotations

import json
from pathlib import Path

import pytest

from codex_spp.models import EventType, RecorderDone, RecorderParams
from codex_spp.recorder import loop as loop_module
from codex_spp.recorder.control import ControlChannel
from codex_spp.recorder.loop import ERRORS_TRUNCATED, ErrorLog, RecorderLoop, run_recorder
from codex_spp.storage.transcript import read_transcript


def _params(tmp_path: Path, **overrides) -> RecorderParams:
    repo = tmp_path / "repo"
    repo.mkdir(exist_ok=True)
    session_dir = repo / ".codex-spp" / "sessions" / "s1"
    session_dir.mkdir(parents=True, exist_ok=True)
    history = tmp_path / "history.jsonl"
    if not history.exists():
        history.write_text(json.dumps({"role": "user", "content": "before session"}) + "\n", encoding="utf-8")
    values = dict(
        session_id="s1",
        repo_root=repo,
        history_path=history,
        history_offset=history.stat().st_size,
        transcript_path=session_dir / "transcript.jsonl",
        control_path=session_dir / "control",
        done_path=session_dir / "done.json",
        poll_interval_seconds=0.01,
        max_event_bytes=4096,
        diff_enabled=True,
    )
    values.update(overrides)
    return RecorderParams(**values)


def _append(path: Path, record: dict) -> None:
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record) + "\n")


def test_loop_records_chat_and_diffs_until_stopped(tmp_path: Path) -> None:
    params = _params(tmp_path)
    source = params.repo_root / "main.py"
    source.write_text("x = 1\n", encoding="utf-8")
    channel = ControlChannel(params.control_path, params.done_path)
    channel.request_run()
    _append(params.history_path, {"role": "user", "content": "add y"})

    sleeps: list[float] = []

    def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 1:
            source.write_text("x = 1\ny = 2\n", encoding="utf-8")
            _append(
                params.history_path,
                {"messages": [{"role": "assistant", "content": "added y"}, {"role": "tool", "content": "-"}]},
            )
        else:
            channel.request_stop()

    done = RecorderLoop(params, channel=channel, sleep=fake_sleep).run()

    assert done.chat_events == 2
    assert done.diff_events == 1
    assert done.errors == []
    assert done.history_offset == params.history_path.stat().st_size
    assert sleeps == [0.25, 0.25]
    assert channel.read_done() == done

    events = list(read_transcript(params.transcript_path))
    assert [event.event_type for event in events] == [
        EventType.CHAT_USER,
        EventType.CHAT_ASSISTANT,
        EventType.FILE_DIFF,
    ]
    assert events[0].payload["content"] == "add y"
    assert events[2].payload["path"] == "main.py"
    assert "+y = 2" in events[2].payload["diff"]
    assert len({event.event_id for event in events}) == 3


def test_missing_control_file_stops_after_one_iteration(tmp_path: Path) -> None:
    params = _params(tmp_path, diff_enabled=False)
    sleeps: list[float] = []

    done = RecorderLoop(params, sleep=sleeps.append).run()

    assert sleeps == []
    assert done.chat_events == 0
    assert params.done_path.exists()


def test_history_errors_are_collected_not_fatal(tmp_path: Path) -> None:
    params = _params(tmp_path, history_path=tmp_path / "missing.jsonl", history_offset=0, diff_enabled=False)
    channel = ControlChannel(params.control_path, params.done_path)
    channel.request_run()
    calls = iter(range(3))

    def fake_sleep(_seconds: float) -> None:
        if next(calls) == 2:
            channel.request_stop()

    done = RecorderLoop(params, channel=channel, sleep=fake_sleep).run()

    assert len(done.errors) == 1
    assert done.errors[0].startswith("history read failed")


def test_run_recorder_writes_synthetic_done_on_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    params = _params(tmp_path)

    def explode(self) -> None:
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(loop_module.RecorderLoop, "prime", explode)

    done = run_recorder(params)

    assert done.errors == ["recorder failed: disk on fire"]
    stored = RecorderDone.model_validate_json(params.done_path.read_text(encoding="utf-8"))
    assert stored.errors == done.errors
    assert stored.history_offset == params.history_offset


def test_main_reads_params_file(tmp_path: Path) -> None:
    params = _params(tmp_path, diff_enabled=False)
    params_path = tmp_path / "recorder.json"
    params_path.write_text(params.model_dump_json(), encoding="utf-8")

    assert loop_module.main(["--params", str(params_path)]) == 0
    assert params.done_path.exists()


def test_error_log_dedupes_and_caps() -> None:
    log = ErrorLog(cap=3)

    for message in ["a", "b", "a", "c", "d", "e", "c"]:
        log.add(message)

    assert log.errors == ["a", "b", "c", ERRORS_TRUNCATED]
