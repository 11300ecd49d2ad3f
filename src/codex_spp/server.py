"""FastMCP server bootstrap for codex-spp."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .cli import detect_repo_root
from .config import SppSettings, configure_logging, get_settings
from .service import GovernanceService
from .storage.state import StateLoadError
from .tools import register_tools


def create_server(
    settings: Optional[SppSettings] = None,
    service: GovernanceService | None = None,
    repo_root: Path | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server over one repository's governance service."""

    settings = settings or get_settings()
    if service is None:
        root = repo_root or detect_repo_root()
        service = GovernanceService(root, settings=settings)

    server = FastMCP(
        name="codex-spp",
        version=__version__,
        instructions=(
            "codex-spp tracks the human/AI share of this repository's weekly changes, "
            "gates drive mode on that ratio, and records drive sessions. Use the tools "
            "to check status, start or stop recording, and correct commit attribution."
        ),
    )

    handles = register_tools(server, service=service)

    @server.resource(
        "resource://codex-spp/status",
        name="spp_status",
        title="codex-spp Status",
        description="Current governance mode, pause window, and drive session without re-running the gate.",
        mime_type="application/json",
        tags={"status", "governance"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing persisted governance state."""

        state_error: str | None = None
        try:
            state = service.store.load()
        except StateLoadError as exc:
            state = None
            state_error = str(exc)

        reports = service.store.read_weekly_reports()
        session = state.active_drive_session if state else None
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "repo_root": str(service.store.repo_root),
            "state": {
                "mode": state.mode.value if state else None,
                "drive_reason": state.drive_reason.value if state and state.drive_reason else None,
                "pause_until": state.pause_until.isoformat() if state and state.pause_until else None,
                "override_count": len(state.attribution_overrides) if state else 0,
                "error": state_error,
            },
            "drive_session": session.model_dump(mode="json") if session else None,
            "latest_report": reports[-1].model_dump(mode="json") if reports else None,
            "config": {
                "weekly_ratio_target": service.config.weekly_ratio_target,
                "diff_snapshot_enabled": service.config.diff_snapshot_enabled,
                "poll_interval_seconds": service.config.recorder.poll_interval_seconds,
            },
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "governance_service", service)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the codex-spp MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching codex-spp MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "repo_root": str(getattr(server, "governance_service").store.repo_root),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
