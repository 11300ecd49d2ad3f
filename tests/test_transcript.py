from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from codex_spp.models import EventType, Mode
from codex_spp.storage import IdGenerator, TranscriptWriter, read_transcript

NOW = datetime(2026, 10, 19, 12, 0, 0, 123456, tzinfo=timezone.utc)


def test_id_generator_is_monotonic_per_process() -> None:
    ids = IdGenerator(clock=lambda: NOW, pid=321)

    first = ids.next_id("evt")
    second = ids.next_id("evt")

    assert first == "evt-20261019T120000123456Z-321-1"
    assert second.endswith("-321-2")
    assert ids.counter == 2
    assert IdGenerator(clock=lambda: NOW, pid=322).next_id() != first.removeprefix("evt-")


def test_writer_appends_events_and_omits_empty_fields(tmp_path: Path) -> None:
    path = tmp_path / "sessions" / "s1" / "transcript.jsonl"
    writer = TranscriptWriter(
        path,
        session_id="s1",
        mode=Mode.DRIVE,
        ids=IdGenerator(clock=lambda: NOW, pid=1),
        clock=lambda: NOW,
    )

    writer.write(EventType.SESSION_START, payload={"git": {"branch": "main"}})
    writer.write(EventType.SESSION_END, payload={"stop_reason": "manual_stop"}, notes="slow stop")

    lines = path.read_text(encoding="utf-8").splitlines()
    first = json.loads(lines[0])
    assert first["event_type"] == "session_start"
    assert first["mode"] == "drive"
    assert first["log_schema_version"] == "1.0"
    assert "notes" not in first
    assert json.loads(lines[1])["notes"] == "slow stop"


def test_read_transcript_skips_bad_lines(tmp_path: Path) -> None:
    path = tmp_path / "transcript.jsonl"
    writer = TranscriptWriter(path, session_id="s1", mode=Mode.NORMAL, clock=lambda: NOW)
    writer.write(EventType.CHAT_USER, payload={"role": "user", "content": "hi"})
    with path.open("a", encoding="utf-8") as handle:
        handle.write("not json\n\n{\"event_type\": \"bogus\"}\n")
    writer.write(EventType.CHAT_ASSISTANT, payload={"role": "assistant", "content": "hello"})

    events = list(read_transcript(path))

    assert [event.event_type for event in events] == [EventType.CHAT_USER, EventType.CHAT_ASSISTANT]
    assert list(read_transcript(tmp_path / "missing.jsonl")) == []
