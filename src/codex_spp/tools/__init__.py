"""Tool registration for the codex-spp MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from fastmcp import Context, FastMCP

from ..service import GovernanceService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    governance_status: Any
    drive_start: Any
    drive_stop: Any
    pause_gate: Any
    resume_gate: Any
    attribution_fix: Any


def register_tools(server: FastMCP, *, service: GovernanceService) -> ToolHandles:
    """Register codex-spp's MCP tools on the server."""

    def _governance_status(context: Context | None = None) -> dict[str, Any]:
        """Evaluate the weekly gate and report the resulting mode."""

        result = service.status()
        _emit_log(
            context,
            "info",
            "Evaluated governance gate",
            extra={
                "ratio": result.report.ratio,
                "gate_passed": result.report.gate_passed,
                "mode": result.state.mode.value,
            },
        )
        return result.to_dict()

    def _drive_start(context: Context | None = None) -> dict[str, Any]:
        """Start a drive recording session."""

        result = service.drive_start()
        _emit_log(
            context,
            "info",
            "Drive session started",
            extra={"session_id": result.session_id, "recorder_pid": result.recorder_pid},
        )
        return {
            "session_id": result.session_id,
            "transcript_path": str(result.transcript_path),
            "recorder_pid": result.recorder_pid,
            "mode": result.mode.value,
        }

    def _drive_stop(
        timeout_seconds: float | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Stop the active drive recording session."""

        result = service.drive_stop(timeout=timeout_seconds)
        _emit_log(
            context,
            "warning" if result.timed_out else "info",
            "Drive session stopped",
            extra={"session_id": result.session_id, "stop_reason": result.stop_reason},
        )
        return {
            "session_id": result.session_id,
            "stop_reason": result.stop_reason,
            "transcript_path": str(result.transcript_path),
            "mode": result.mode.value,
            "summary": result.done.model_dump(mode="json"),
        }

    def _pause_gate(hours: int = 24, context: Context | None = None) -> dict[str, Any]:
        """Bypass gate evaluation for up to 24 hours."""

        applied, until = service.pause(hours)
        _emit_log(context, "info", "Gate paused", extra={"hours": applied})
        return {"hours": applied, "pause_until": until.isoformat()}

    def _resume_gate(context: Context | None = None) -> dict[str, Any]:
        """Clear an active gate pause."""

        service.resume()
        _emit_log(context, "info", "Gate pause cleared")
        return {"paused": False}

    def _attribution_fix(
        commit: str,
        actor: Literal["human", "ai"],
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Force the attribution of a commit."""

        full_commit = service.attrib_fix(commit, actor)
        _emit_log(
            context,
            "info",
            "Attribution override saved",
            extra={"commit": full_commit, "actor": actor},
        )
        return {"commit": full_commit, "actor": actor}

    tool_status = server.tool(
        name="governance_status",
        description=(
            "Recompute this ISO week's human/AI added-line ratio, apply the gate to the "
            "governance mode, and return the mode, pause window, and weekly report."
        ),
    )(_governance_status)

    tool_start = server.tool(
        name="drive_start",
        description="Enter drive mode and start recording assistant chat and workspace diffs.",
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Spawns a background recorder process in the repository",
            }
        },
    )(_drive_start)

    tool_stop = server.tool(
        name="drive_stop",
        description=(
            "Stop the active drive recording session. A gate-forced drive mode stays in "
            "effect until a passing gate evaluation."
        ),
    )(_drive_stop)

    tool_pause = server.tool(
        name="pause_gate",
        description="Pause gate evaluation for 1-24 hours.",
    )(_pause_gate)

    tool_resume = server.tool(
        name="resume_gate",
        description="Resume gate evaluation immediately.",
    )(_resume_gate)

    tool_attrib = server.tool(
        name="attribution_fix",
        description="Record a human or ai attribution override for a commit.",
    )(_attribution_fix)

    return ToolHandles(
        governance_status=tool_status,
        drive_start=tool_start,
        drive_stop=tool_stop,
        pause_gate=tool_pause,
        resume_gate=tool_resume,
        attribution_fix=tool_attrib,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["ToolHandles", "register_tools"]
