"""Commit attribution, weekly gate evaluation, and mode transitions."""

from .attribution import Attribution, CommitSource, classify_commit
from .gate import GateEvaluator, WeeklyMetrics, compute_ratio, iso_week_bounds, parse_numstat_added
from .modes import (
    apply_gate,
    enter_drive,
    leave_drive,
    pause_active,
    pause_gate,
    refresh_pause,
    resume_gate,
)

__all__ = [
    "Attribution",
    "CommitSource",
    "GateEvaluator",
    "WeeklyMetrics",
    "apply_gate",
    "classify_commit",
    "compute_ratio",
    "enter_drive",
    "iso_week_bounds",
    "leave_drive",
    "parse_numstat_added",
    "pause_active",
    "pause_gate",
    "refresh_pause",
    "resume_gate",
]
