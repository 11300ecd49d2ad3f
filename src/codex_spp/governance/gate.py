"""Weekly human/AI line-ratio gate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Protocol

from ..config import GovernanceConfig
from ..models import Actor, GovernanceState, WeeklyReport
from .attribution import CommitSource, classify_commit

logger = logging.getLogger(__name__)


class GateSource(CommitSource, Protocol):
    def list_commits(self, since: datetime, until: datetime) -> list[str]:
        ...

    def numstat(self, commit: str) -> str:
        ...


@dataclass(slots=True)
class WeeklyMetrics:
    human_lines_added: int = 0
    ai_lines_added: int = 0
    human_commit_count: int = 0
    ai_commit_count: int = 0
    notes: list[str] = field(default_factory=list)

    def add(self, actor: Actor, added_lines: int) -> None:
        if actor is Actor.AI:
            self.ai_commit_count += 1
            self.ai_lines_added += added_lines
        else:
            self.human_commit_count += 1
            self.human_lines_added += added_lines


def iso_week_bounds(year: int, iso_week: int) -> tuple[datetime, datetime]:
    """Return the half-open UTC window ``[monday 00:00, monday + 7 days)``."""

    monday = date.fromisocalendar(year, iso_week, 1)
    start = datetime.combine(monday, time(0, 0, 0), tzinfo=timezone.utc)
    return start, start + timedelta(days=7)


def parse_numstat_added(numstat: str) -> int:
    """Sum the added-lines column of ``git show --numstat`` output.

    Binary files report ``-`` and contribute nothing.
    """

    total = 0
    for line in numstat.splitlines():
        line = line.strip()
        if not line:
            continue
        added = line.split("\t", 1)[0].strip()
        if added == "-":
            continue
        if added.isdigit():
            total += int(added)
    return total


def compute_ratio(human_lines: int, ai_lines: int) -> float:
    total = human_lines + ai_lines
    if total == 0:
        return 1.0
    return human_lines / total


class GateEvaluator:
    """Aggregate one ISO week of commits into a :class:`WeeklyReport`."""

    def __init__(
        self,
        source: GateSource,
        config: GovernanceConfig,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._source = source
        self._config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def collect_metrics(self, year: int, iso_week: int, state: GovernanceState) -> WeeklyMetrics:
        since, until = iso_week_bounds(year, iso_week)
        metrics = WeeklyMetrics()
        attribution = self._config.attribution
        for commit in self._source.list_commits(since, until):
            result = classify_commit(
                commit,
                self._source,
                overrides=state.attribution_overrides,
                ai_emails=attribution.codex_author_emails,
                trailer_marker=attribution.trailer_marker,
            )
            added = parse_numstat_added(self._source.numstat(commit))
            metrics.add(result.actor, added)
            logger.debug(
                "Classified commit",
                extra={"commit": commit, "actor": result.actor.value, "signal": result.signal, "added": added},
            )
        return metrics

    def evaluate(self, state: GovernanceState, *, now: datetime | None = None) -> WeeklyReport:
        """Recompute the report for the ISO week containing ``now``.

        ``mode_after_evaluation`` carries the current mode; mode transitions are
        applied separately by :func:`codex_spp.governance.modes.apply_gate`.
        """

        now = now or self._clock()
        iso = now.astimezone(timezone.utc).isocalendar()
        metrics = self.collect_metrics(iso.year, iso.week, state)
        ratio = compute_ratio(metrics.human_lines_added, metrics.ai_lines_added)
        target = self._config.weekly_ratio_target
        return WeeklyReport(
            log_schema_version=self._config.log_schema_version,
            generated_at=now,
            year=iso.year,
            iso_week=iso.week,
            human_lines_added=metrics.human_lines_added,
            ai_lines_added=metrics.ai_lines_added,
            human_commit_count=metrics.human_commit_count,
            ai_commit_count=metrics.ai_commit_count,
            ratio=ratio,
            target_ratio=target,
            gate_passed=ratio >= target,
            mode_after_evaluation=state.mode,
            notes=list(metrics.notes),
        )


__all__ = [
    "GateEvaluator",
    "GateSource",
    "WeeklyMetrics",
    "compute_ratio",
    "iso_week_bounds",
    "parse_numstat_added",
]
