"""Git query surface used by the gate evaluator and session controller."""

from .runner import GitCommandError, GitError, GitNotFoundError, GitResult, GitRunner

__all__ = [
    "GitCommandError",
    "GitError",
    "GitNotFoundError",
    "GitResult",
    "GitRunner",
]
