"""Mode state machine: Normal, Drive(manual), Drive(gate)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ..models import DriveReason, GovernanceState, Mode, WeeklyReport

PAUSE_BYPASS_NOTE = "gate evaluation bypassed due to active pause"
GATE_FORCED_NOTE = "ratio below target, forced drive mode"

MIN_PAUSE_HOURS = 1
MAX_PAUSE_HOURS = 24


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def pause_active(state: GovernanceState, *, now: datetime | None = None) -> bool:
    return state.pause_until is not None and _now(now) < state.pause_until


def refresh_pause(state: GovernanceState, *, now: datetime | None = None) -> None:
    """Drop an expired pause window."""

    if state.pause_until is not None and _now(now) >= state.pause_until:
        state.pause_until = None


def apply_gate(state: GovernanceState, report: WeeklyReport, *, paused: bool) -> None:
    """Apply a gate verdict to ``state`` and record the resulting mode on ``report``."""

    if paused:
        report.notes.append(PAUSE_BYPASS_NOTE)
        report.mode_after_evaluation = state.mode
        return

    if report.gate_passed:
        if state.mode is Mode.DRIVE and state.drive_reason is DriveReason.GATE:
            state.mode = Mode.NORMAL
            state.drive_reason = None
    else:
        # Drive(manual) is left as is; only `drive stop` ends it.
        if not (state.mode is Mode.DRIVE and state.drive_reason is DriveReason.MANUAL):
            state.mode = Mode.DRIVE
            state.drive_reason = DriveReason.GATE
        report.notes.append(GATE_FORCED_NOTE)

    report.mode_after_evaluation = state.mode


def enter_drive(state: GovernanceState) -> None:
    """Manual drive start; a gate-forced drive keeps its reason."""

    if state.mode is Mode.DRIVE and state.drive_reason is DriveReason.GATE:
        return
    state.mode = Mode.DRIVE
    state.drive_reason = DriveReason.MANUAL


def leave_drive(state: GovernanceState) -> bool:
    """Manual drive stop. Only a manually entered drive mode is cleared."""

    if state.drive_reason is not DriveReason.MANUAL:
        return False
    state.mode = Mode.NORMAL
    state.drive_reason = None
    return True


def pause_gate(state: GovernanceState, hours: int, *, now: datetime | None = None) -> int:
    clamped = max(MIN_PAUSE_HOURS, min(MAX_PAUSE_HOURS, int(hours)))
    state.pause_until = _now(now) + timedelta(hours=clamped)
    return clamped


def resume_gate(state: GovernanceState) -> None:
    state.pause_until = None


__all__ = [
    "GATE_FORCED_NOTE",
    "PAUSE_BYPASS_NOTE",
    "apply_gate",
    "enter_drive",
    "leave_drive",
    "pause_active",
    "pause_gate",
    "refresh_pause",
    "resume_gate",
]
