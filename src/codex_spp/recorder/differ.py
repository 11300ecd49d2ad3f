"""Snapshot text files under a repository and diff successive snapshots."""

from __future__ import annotations

import difflib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .extractor import truncate_utf8

ALWAYS_EXCLUDED = (".git", ".codex-spp")

_LANGUAGES = {
    ".py": "python",
    ".pyi": "python",
    ".rs": "rust",
    ".go": "go",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".kt": "kotlin",
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".sh": "shell",
    ".bash": "shell",
    ".zsh": "shell",
    ".md": "markdown",
    ".rst": "rst",
    ".json": "json",
    ".jsonl": "json",
    ".toml": "toml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".html": "html",
    ".css": "css",
    ".sql": "sql",
    ".txt": "text",
}


def guess_language(path: str) -> str:
    name = os.path.basename(path)
    if name == "Dockerfile":
        return "dockerfile"
    if name == "Makefile":
        return "make"
    return _LANGUAGES.get(os.path.splitext(name)[1].lower(), "text")


@dataclass(slots=True)
class FileSnapshotEntry:
    size: int
    mtime_ns: int
    content: str


@dataclass(slots=True)
class FileDiff:
    path: str
    diff: str
    byte_length: int
    language: str
    truncated: bool = False

    def payload(self) -> dict[str, object]:
        body: dict[str, object] = {
            "path": self.path,
            "diff": self.diff,
            "byte_length": self.byte_length,
            "language": self.language,
        }
        if self.truncated:
            body["truncated"] = True
        return body


@dataclass(slots=True)
class SnapshotResult:
    entries: dict[str, FileSnapshotEntry] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    reads: int = 0


class WorkspaceDiffer:
    """Walk a repository and compute unified diffs between snapshots.

    Snapshot entries are reused when a file's size and modification time are
    unchanged, so only touched files are re-read on each poll.
    """

    def __init__(
        self,
        repo_root: Path,
        *,
        exclude_paths: Iterable[str] = (),
        max_file_bytes: int = 1_048_576,
        max_diff_bytes: int = 65_536,
    ) -> None:
        self._root = Path(repo_root)
        prefixes = {p.strip().strip("/") for p in (*ALWAYS_EXCLUDED, *exclude_paths)}
        self._excludes = tuple(sorted(p for p in prefixes if p))
        self._max_file_bytes = max_file_bytes
        self._max_diff_bytes = max_diff_bytes

    def is_excluded(self, rel_path: str) -> bool:
        for prefix in self._excludes:
            if rel_path == prefix or rel_path.startswith(prefix + "/"):
                return True
        return False

    def snapshot(self, previous: dict[str, FileSnapshotEntry] | None = None) -> SnapshotResult:
        previous = previous or {}
        result = SnapshotResult()

        def _walk_error(exc: OSError) -> None:
            result.errors.append(f"walk failed: {exc}")

        for dirpath, dirnames, filenames in os.walk(self._root, onerror=_walk_error):
            rel_dir = os.path.relpath(dirpath, self._root)
            rel_dir = "" if rel_dir == "." else rel_dir.replace(os.sep, "/")
            dirnames[:] = sorted(
                name
                for name in dirnames
                if not self.is_excluded(f"{rel_dir}/{name}" if rel_dir else name)
            )
            for name in sorted(filenames):
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if self.is_excluded(rel_path):
                    continue
                full_path = os.path.join(dirpath, name)
                try:
                    entry = self._snapshot_file(full_path, previous.get(rel_path), result)
                except OSError as exc:
                    result.errors.append(f"snapshot failed for {rel_path}: {exc}")
                    continue
                if entry is not None:
                    result.entries[rel_path] = entry
        return result

    def _snapshot_file(
        self,
        full_path: str,
        cached: FileSnapshotEntry | None,
        result: SnapshotResult,
    ) -> FileSnapshotEntry | None:
        if not os.path.isfile(full_path):
            return None
        stat = os.stat(full_path)
        if stat.st_size > self._max_file_bytes:
            return None
        if cached is not None and cached.size == stat.st_size and cached.mtime_ns == stat.st_mtime_ns:
            return cached

        with open(full_path, "rb") as handle:
            data = handle.read(self._max_file_bytes + 1)
        result.reads += 1
        if len(data) > self._max_file_bytes or b"\x00" in data:
            return None
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError:
            return None
        return FileSnapshotEntry(size=stat.st_size, mtime_ns=stat.st_mtime_ns, content=content)

    def diff(
        self,
        previous: dict[str, FileSnapshotEntry],
        current: dict[str, FileSnapshotEntry],
    ) -> list[FileDiff]:
        diffs: list[FileDiff] = []
        for path in sorted(set(previous) | set(current)):
            before = previous.get(path)
            after = current.get(path)
            old_text = before.content if before is not None else ""
            new_text = after.content if after is not None else ""
            if before is not None and after is not None and old_text == new_text:
                continue
            if before is None and after is None:
                continue

            lines = difflib.unified_diff(
                old_text.splitlines(keepends=True),
                new_text.splitlines(keepends=True),
                fromfile=f"a/{path}" if before is not None else "/dev/null",
                tofile=f"b/{path}" if after is not None else "/dev/null",
            )
            text = "".join(line if line.endswith("\n") else line + "\n" for line in lines)
            if not text:
                continue
            text, truncated = truncate_utf8(text, self._max_diff_bytes)
            diffs.append(
                FileDiff(
                    path=path,
                    diff=text,
                    byte_length=after.size if after is not None else 0,
                    language=guess_language(path),
                    truncated=truncated,
                )
            )
        return diffs


__all__ = [
    "FileDiff",
    "FileSnapshotEntry",
    "SnapshotResult",
    "WorkspaceDiffer",
    "guess_language",
]
