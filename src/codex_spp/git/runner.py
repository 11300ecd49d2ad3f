"""Synchronous runner for git queries."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Mapping

from ..errors import SppError
from .utils import sanitize_environment


class GitError(SppError):
    """Base class for git runner errors."""


class GitNotFoundError(GitError):
    """Raised when the git executable cannot be located."""


class GitCommandError(GitError):
    """Raised when a git command exits unsuccessfully."""

    def __init__(self, args: tuple[str, ...], returncode: int, stderr: str) -> None:
        self.args_ = args
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"git {' '.join(args)} failed: {stderr.strip() or f'exit {returncode}'}")


@dataclass(slots=True)
class GitResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitRunner:
    """Execute git commands against a single repository."""

    def __init__(self, repo_root: Path, executable: Path | None = None) -> None:
        self._repo_root = Path(repo_root)
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def repo_root(self) -> Path:
        return self._repo_root

    @property
    def executable(self) -> Path:
        return self._executable_path

    def run(self, *args: str) -> GitResult:
        return self._invoke(*args)

    def output(self, *args: str) -> str:
        """Run git and return stdout, raising :class:`GitCommandError` on failure."""

        result = self._invoke(*args)
        if not result.ok:
            raise GitCommandError(tuple(args), result.returncode, result.stderr)
        return result.stdout

    def _invoke(self, *args: str) -> GitResult:
        cmd = [str(self._executable_path), *args]
        try:
            completed = subprocess.run(
                cmd,
                cwd=str(self._repo_root),
                capture_output=True,
                env=sanitize_environment(),
                check=False,
            )
        except OSError as exc:
            raise GitError(f"failed to execute git {' '.join(args)}: {exc}") from exc
        stdout = completed.stdout.decode("utf-8", errors="replace")
        stderr = completed.stderr.decode("utf-8", errors="replace")
        return GitResult(args=tuple(cmd), returncode=completed.returncode, stdout=stdout, stderr=stderr)

    # Repository queries

    def show_toplevel(self) -> Path:
        root = self.output("rev-parse", "--show-toplevel").strip()
        if not root:
            raise GitError("failed to resolve git repo root")
        return Path(root)

    def resolve_commit(self, ref: str) -> str:
        return self.output("rev-parse", "--verify", f"{ref}^{{commit}}").strip()

    def current_branch(self) -> str:
        result = self._invoke("rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip() if result.ok and result.stdout.strip() else "unknown"

    def head_commit(self) -> str | None:
        result = self._invoke("rev-parse", "HEAD")
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def list_commits(self, since: datetime, until: datetime) -> list[str]:
        """Return non-merge commit ids authored in ``[since, until)``."""

        raw = self.output(
            "log",
            "--no-merges",
            "--since",
            since.isoformat(),
            "--until",
            until.isoformat(),
            "--pretty=format:%H %at",
        )
        lower = since.timestamp()
        upper = until.timestamp()
        commits: list[str] = []
        for line in raw.splitlines():
            parts = line.split()
            if not parts:
                continue
            # --since/--until are inclusive on committer date; re-check the author time.
            if len(parts) > 1 and parts[1].isdigit():
                authored = int(parts[1])
                if not lower <= authored < upper:
                    continue
            commits.append(parts[0])
        return commits

    def commit_message(self, commit: str) -> str:
        return self.output("show", "-s", "--format=%B", commit)

    def author_email(self, commit: str) -> str:
        return self.output("show", "-s", "--format=%ae", commit).strip()

    def commit_note(self, commit: str) -> str | None:
        result = self._invoke("notes", "show", commit)
        return result.stdout if result.ok else None

    def numstat(self, commit: str) -> str:
        return self.output("show", "--numstat", "--format=", commit)


class FakeGitRunner(GitRunner):
    """Test double that answers git invocations from a canned mapping."""

    def __init__(  # type: ignore[override]
        self,
        responses: Mapping[tuple[str, ...], GitResult | str] | None = None,
        repo_root: Path = Path("."),
    ) -> None:
        self._responses = dict(responses or {})
        self._invocations: list[tuple[str, ...]] = []
        self._repo_root = Path(repo_root)
        self._executable_path = Path("/usr/bin/git")

    def _invoke(self, *args: str) -> GitResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        response = self._responses.get(tuple(args))
        if response is None:
            return GitResult(args=tuple(args), returncode=128, stdout="", stderr="unexpected invocation")
        if isinstance(response, str):
            return GitResult(args=tuple(args), returncode=0, stdout=response, stderr="")
        return response

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = [
    "FakeGitRunner",
    "GitCommandError",
    "GitError",
    "GitNotFoundError",
    "GitResult",
    "GitRunner",
]
