"""Shared data model for governance state, reports, and drive transcripts."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Mode(str, Enum):
    NORMAL = "normal"
    DRIVE = "drive"


class Actor(str, Enum):
    HUMAN = "human"
    AI = "ai"


class DriveReason(str, Enum):
    """Why drive mode was entered; only manual sessions may be cleared by a stop."""

    MANUAL = "manual"
    GATE = "gate"


class EventType(str, Enum):
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    CHAT_USER = "chat_user"
    CHAT_ASSISTANT = "chat_assistant"
    FILE_DIFF = "file_diff"


class ActiveDriveSession(BaseModel):
    """The single in-flight drive recording session of a repository."""

    session_id: str
    started_at: datetime
    history_path: Path
    history_offset: int = Field(..., ge=0)
    history_inode: int | None = None
    transcript_path: Path
    control_path: Path
    done_path: Path
    recorder_pid: int | None = None


class GovernanceState(BaseModel):
    mode: Mode = Mode.NORMAL
    drive_reason: DriveReason | None = None
    pause_until: datetime | None = None
    attribution_overrides: dict[str, Actor] = Field(default_factory=dict)
    active_drive_session: ActiveDriveSession | None = None
    updated_at: datetime = Field(default_factory=utcnow)


class WeeklyReport(BaseModel):
    log_schema_version: str
    generated_at: datetime
    year: int
    iso_week: int = Field(..., ge=1, le=53)
    human_lines_added: int = 0
    ai_lines_added: int = 0
    human_commit_count: int = 0
    ai_commit_count: int = 0
    ratio: float
    target_ratio: float
    gate_passed: bool
    mode_after_evaluation: Mode
    notes: list[str] = Field(default_factory=list)

    @property
    def filename(self) -> str:
        return f"{self.year}-W{self.iso_week:02d}.json"


class TranscriptEvent(BaseModel):
    log_schema_version: str
    event_id: str
    session_id: str
    event_type: EventType
    timestamp: datetime
    mode: Mode
    payload: Any | None = None
    notes: str | None = None

    def to_json_line(self) -> str:
        return self.model_dump_json(exclude_none=True)


class RecorderDone(BaseModel):
    """Completion summary written once by the recorder process."""

    session_id: str
    finished_at: datetime
    history_offset: int = 0
    chat_events: int = 0
    diff_events: int = 0
    errors: list[str] = Field(default_factory=list)


class RecorderParams(BaseModel):
    """Resolved parameters handed from the session controller to the recorder process."""

    session_id: str
    repo_root: Path
    history_path: Path
    history_offset: int = Field(..., ge=0)
    transcript_path: Path
    control_path: Path
    done_path: Path
    mode: Mode = Mode.DRIVE
    log_schema_version: str = "1.0"
    poll_interval_seconds: float = 2.0
    max_event_bytes: int = 65_536
    diff_enabled: bool = False
    max_file_bytes: int = 1_048_576
    exclude_paths: list[str] = Field(default_factory=list)
    log_level: str = "INFO"


__all__ = [
    "ActiveDriveSession",
    "Actor",
    "DriveReason",
    "EventType",
    "GovernanceState",
    "Mode",
    "RecorderDone",
    "RecorderParams",
    "TranscriptEvent",
    "WeeklyReport",
    "utcnow",
]
