"""Recorder loop: the body of the detached drive recording process."""

from __future__ import annotations

import argparse
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from ..config import configure_logging
from ..models import EventType, RecorderDone, RecorderParams
from ..storage.transcript import IdGenerator, TranscriptWriter
from .control import ControlChannel
from .differ import FileSnapshotEntry, WorkspaceDiffer
from .extractor import ChatExtractor
from .tailer import HistoryTailer

logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL = 0.25
MAX_ERRORS = 20
ERRORS_TRUNCATED = "error list truncated"


class ErrorLog:
    """Deduplicated error messages capped at ``cap`` entries plus one truncation marker."""

    def __init__(self, cap: int = MAX_ERRORS) -> None:
        self._cap = cap
        self._errors: list[str] = []
        self._truncated = False

    def add(self, message: str) -> None:
        if message in self._errors:
            return
        if len(self._errors) < self._cap:
            self._errors.append(message)
            logger.warning("Recorder error", extra={"error": message})
            return
        if not self._truncated:
            self._errors.append(ERRORS_TRUNCATED)
            self._truncated = True

    @property
    def errors(self) -> list[str]:
        return list(self._errors)


class RecorderLoop:
    """Poll the history file and workspace until the control channel says stop."""

    def __init__(
        self,
        params: RecorderParams,
        *,
        channel: ControlChannel | None = None,
        writer: TranscriptWriter | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._params = params
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._channel = channel or ControlChannel(params.control_path, params.done_path)
        self._writer = writer or TranscriptWriter(
            params.transcript_path,
            session_id=params.session_id,
            mode=params.mode,
            log_schema_version=params.log_schema_version,
            ids=IdGenerator(clock=self._clock),
            clock=self._clock,
        )
        self._tailer = HistoryTailer(params.history_path, params.history_offset)
        self._extractor = ChatExtractor(params.max_event_bytes)
        self._differ = (
            WorkspaceDiffer(
                params.repo_root,
                exclude_paths=params.exclude_paths,
                max_file_bytes=params.max_file_bytes,
                max_diff_bytes=params.max_event_bytes,
            )
            if params.diff_enabled
            else None
        )
        self._snapshot: dict[str, FileSnapshotEntry] = {}
        self._errors = ErrorLog()
        self.chat_events = 0
        self.diff_events = 0
        self.iterations = 0

    @property
    def errors(self) -> list[str]:
        return self._errors.errors

    @property
    def poll_interval(self) -> float:
        return max(self._params.poll_interval_seconds, MIN_POLL_INTERVAL)

    def prime(self) -> None:
        """Capture the baseline workspace snapshot."""

        if self._differ is None:
            return
        try:
            result = self._differ.snapshot()
        except Exception as exc:
            self._errors.add(f"snapshot failed: {exc}")
            return
        for error in result.errors:
            self._errors.add(error)
        self._snapshot = result.entries

    def poll_history(self) -> None:
        try:
            result = self._tailer.read()
        except OSError as exc:
            self._errors.add(f"history read failed: {exc}")
            return
        for error in result.errors:
            self._errors.add(error)

        for record in result.records:
            for message in self._extractor.extract(record):
                try:
                    self._writer.write(message.event_type, payload=message.payload())
                except (OSError, ValueError) as exc:
                    self._errors.add(f"event write failed: {exc}")
                    continue
                self.chat_events += 1

    def poll_workspace(self) -> None:
        if self._differ is None:
            return
        try:
            result = self._differ.snapshot(self._snapshot)
            diffs = self._differ.diff(self._snapshot, result.entries)
        except Exception as exc:
            self._errors.add(f"snapshot failed: {exc}")
            return
        for error in result.errors:
            self._errors.add(error)

        for file_diff in diffs:
            try:
                self._writer.write(EventType.FILE_DIFF, payload=file_diff.payload())
            except (OSError, ValueError) as exc:
                self._errors.add(f"event write failed: {exc}")
                continue
            self.diff_events += 1
        self._snapshot = result.entries

    def iterate(self) -> None:
        self.poll_history()
        self.poll_workspace()
        self.iterations += 1

    def _stop_requested(self) -> bool:
        try:
            return self._channel.stop_requested()
        except OSError as exc:
            self._errors.add(f"control read failed: {exc}")
            return False

    def summary(self) -> RecorderDone:
        return RecorderDone(
            session_id=self._params.session_id,
            finished_at=self._clock(),
            history_offset=self._tailer.offset,
            chat_events=self.chat_events,
            diff_events=self.diff_events,
            errors=self.errors,
        )

    def run(self) -> RecorderDone:
        """Run until stop is requested, write the done file, and return it."""

        logger.info(
            "Recorder started",
            extra={"session_id": self._params.session_id, "offset": self._params.history_offset},
        )
        self.prime()
        while True:
            self.iterate()
            if self._stop_requested():
                break
            self._sleep(self.poll_interval)

        done = self.summary()
        self._channel.write_done(done)
        logger.info(
            "Recorder stopped",
            extra={
                "session_id": done.session_id,
                "chat_events": done.chat_events,
                "diff_events": done.diff_events,
                "error_count": len(done.errors),
            },
        )
        return done


def run_recorder(params: RecorderParams, **kwargs) -> RecorderDone:
    """Run the loop; any unrecoverable failure still leaves a done file behind."""

    channel = kwargs.pop("channel", None) or ControlChannel(params.control_path, params.done_path)
    try:
        return RecorderLoop(params, channel=channel, **kwargs).run()
    except Exception as exc:
        logger.exception("Recorder failed", extra={"session_id": params.session_id})
        done = RecorderDone(
            session_id=params.session_id,
            finished_at=datetime.now(timezone.utc),
            history_offset=params.history_offset,
            errors=[f"recorder failed: {exc}"],
        )
        channel.write_done(done)
        return done


def load_params(path: Path) -> RecorderParams:
    return RecorderParams.model_validate_json(Path(path).read_text(encoding="utf-8"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="codex-spp drive session recorder")
    parser.add_argument("--params", required=True, help="Path to the recorder parameters JSON file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    params = load_params(Path(args.params))
    configure_logging(params.log_level)
    run_recorder(params)
    return 0


__all__ = [
    "ERRORS_TRUNCATED",
    "ErrorLog",
    "MAX_ERRORS",
    "MIN_POLL_INTERVAL",
    "RecorderLoop",
    "build_parser",
    "load_params",
    "main",
    "run_recorder",
]
