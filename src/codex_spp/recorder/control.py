"""File-based control channel between the session controller and the recorder process."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from ..models import RecorderDone
from ..storage.state import write_json_atomic

logger = logging.getLogger(__name__)

RUN = "run"
STOP = "stop"


class ControlChannel:
    """Two sentinel files: ``control`` carries run/stop, ``done`` reports completion.

    A missing control file means stop.
    """

    def __init__(
        self,
        control_path: Path,
        done_path: Path,
        *,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._control_path = Path(control_path)
        self._done_path = Path(done_path)
        self._sleep = sleep
        self._monotonic = monotonic

    @property
    def control_path(self) -> Path:
        return self._control_path

    @property
    def done_path(self) -> Path:
        return self._done_path

    def _write_control(self, value: str) -> None:
        self._control_path.parent.mkdir(parents=True, exist_ok=True)
        self._control_path.write_text(f"{value}\n", encoding="utf-8")

    def request_run(self) -> None:
        self._write_control(RUN)
        self._done_path.unlink(missing_ok=True)

    def request_stop(self) -> None:
        self._write_control(STOP)

    def stop_requested(self) -> bool:
        try:
            content = self._control_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return True
        return content.strip() == STOP

    def write_done(self, done: RecorderDone) -> None:
        write_json_atomic(self._done_path, done.model_dump_json(indent=2))

    def read_done(self) -> RecorderDone | None:
        try:
            text = self._done_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return RecorderDone.model_validate_json(text)
        except ValidationError as exc:
            logger.warning("Unreadable recorder done file", extra={"path": str(self._done_path), "error": str(exc)})
            return None

    def wait_for_done(self, timeout: float, *, interval: float = 0.2) -> RecorderDone | None:
        """Poll for the done file until ``timeout`` seconds elapse."""

        deadline = self._monotonic() + max(0.0, timeout)
        while True:
            done = self.read_done()
            if done is not None:
                return done
            remaining = deadline - self._monotonic()
            if remaining <= 0:
                return None
            self._sleep(min(interval, remaining))

    def clear(self) -> None:
        self._control_path.unlink(missing_ok=True)
        self._done_path.unlink(missing_ok=True)


__all__ = ["ControlChannel", "RUN", "STOP"]
