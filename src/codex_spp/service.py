"""Governance operations shared by the command line and the MCP tools."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .config import (
    RUNTIME_CONFIG,
    TEMPLATE_CONFIG,
    GovernanceConfig,
    SppSettings,
    dump_config,
    load_config,
)
from .errors import SppError
from .git import GitRunner
from .governance.gate import GateEvaluator, GateSource
from .governance.modes import apply_gate, pause_active, pause_gate, refresh_pause, resume_gate
from .models import Actor, GovernanceState, WeeklyReport
from .session import SessionController, StartResult, StopResult
from .storage.state import StateStore

logger = logging.getLogger(__name__)


class ServiceError(SppError):
    """Raised when a governance operation is refused."""


@dataclass(slots=True)
class StatusResult:
    state: GovernanceState
    report: WeeklyReport
    paused: bool
    pruned: list[Path]

    def to_dict(self) -> dict[str, Any]:
        session = self.state.active_drive_session
        return {
            "mode": self.state.mode.value,
            "drive_reason": self.state.drive_reason.value if self.state.drive_reason else None,
            "pause_until": self.state.pause_until.isoformat() if self.state.pause_until else None,
            "paused": self.paused,
            "active_session": session.session_id if session else None,
            "report": self.report.model_dump(mode="json"),
        }


class GovernanceService:
    """Wire config, state, git, the gate, and the session controller for one repository."""

    def __init__(
        self,
        repo_root: Path,
        *,
        settings: SppSettings | None = None,
        config: GovernanceConfig | None = None,
        git: GateSource | None = None,
        store: StateStore | None = None,
        controller: SessionController | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo_root = Path(repo_root)
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._config = config or load_config(
            self._repo_root, settings.config_path if settings else None
        )
        self._git = git if git is not None else GitRunner(self._repo_root)
        self._store = store or StateStore(self._repo_root, clock=self._clock)
        self._controller = controller or SessionController(
            self._store,
            self._config,
            settings=settings,
            git=self._git if isinstance(self._git, GitRunner) else None,
            clock=self._clock,
        )

    @property
    def config(self) -> GovernanceConfig:
        return self._config

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def controller(self) -> SessionController:
        return self._controller

    def init(self) -> list[Path]:
        """Create runtime directories, the runtime config, and a default state file."""

        created: list[Path] = []
        self._store.ensure_runtime_dirs()
        runtime_cfg = self._repo_root / RUNTIME_CONFIG
        if not runtime_cfg.exists():
            runtime_cfg.parent.mkdir(parents=True, exist_ok=True)
            template = self._repo_root / TEMPLATE_CONFIG
            if template.exists():
                shutil.copyfile(template, runtime_cfg)
            else:
                runtime_cfg.write_text(dump_config(self._config), encoding="utf-8")
            created.append(runtime_cfg)
        if not self._store.exists():
            self._store.save(GovernanceState())
            created.append(self._store.state_path)
        return created

    def status(self) -> StatusResult:
        """Evaluate this week's gate, apply mode transitions, and persist the outcome."""

        self._store.ensure_runtime_dirs()
        state = self._store.load()
        now = self._clock()
        refresh_pause(state, now=now)

        report = GateEvaluator(self._git, self._config, clock=self._clock).evaluate(state, now=now)
        paused = pause_active(state, now=now)
        apply_gate(state, report, paused=paused)

        self._store.save(state)
        self._store.write_weekly_report(report)
        active = state.active_drive_session
        pruned = self._store.enforce_log_size(
            self._config.max_log_bytes,
            active_session_id=active.session_id if active else None,
        )
        logger.info(
            "Gate evaluated",
            extra={
                "ratio": report.ratio,
                "target": report.target_ratio,
                "gate_passed": report.gate_passed,
                "mode": state.mode.value,
                "paused": paused,
            },
        )
        return StatusResult(state=state, report=report, paused=paused, pruned=pruned)

    def drive_start(self) -> StartResult:
        self._store.ensure_runtime_dirs()
        return self._controller.start()

    def drive_stop(self, *, timeout: float | None = None) -> StopResult:
        return self._controller.stop(timeout=timeout)

    def pause(self, hours: int = 24) -> tuple[int, datetime]:
        state = self._store.load()
        applied = pause_gate(state, hours, now=self._clock())
        self._store.save(state)
        return applied, state.pause_until  # type: ignore[return-value]

    def resume(self) -> None:
        state = self._store.load()
        resume_gate(state)
        self._store.save(state)

    def reset(self) -> int:
        """Restore the default state and remove weekly reports."""

        state = self._store.load()
        if state.active_drive_session is not None:
            raise ServiceError(
                f"cannot reset while drive session {state.active_drive_session.session_id} is active"
            )
        self._store.save(GovernanceState())
        return self._store.clear_weekly_reports()

    def attrib_fix(self, commit: str, actor: Actor | str) -> str:
        if not isinstance(self._git, GitRunner):
            raise ServiceError("commit resolution requires a git repository")
        full_commit = self._git.resolve_commit(commit)
        if not full_commit:
            raise ServiceError(f"commit not found: {commit}")
        state = self._store.load()
        state.attribution_overrides[full_commit] = Actor(actor)
        self._store.save(state)
        return full_commit


__all__ = ["GovernanceService", "ServiceError", "StatusResult"]
