"""Commit attribution: decide whether a commit was authored by a human or the assistant."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol

from ..models import Actor

DEFAULT_TRAILER_MARKER = "co-authored-by: codex"
AI_NOTE_MARKER = "spp:ai"
HUMAN_NOTE_MARKER = "spp:human"


class CommitSource(Protocol):
    """Minimal repository query surface needed for attribution and gate evaluation."""

    def commit_message(self, commit: str) -> str:
        ...

    def author_email(self, commit: str) -> str:
        ...

    def commit_note(self, commit: str) -> str | None:
        ...


@dataclass(slots=True, frozen=True)
class Attribution:
    actor: Actor
    signal: str


def classify_commit(
    commit: str,
    source: CommitSource,
    *,
    overrides: Mapping[str, Actor] | None = None,
    ai_emails: Iterable[str] = (),
    trailer_marker: str = DEFAULT_TRAILER_MARKER,
) -> Attribution:
    """Classify ``commit``; the first matching signal wins.

    Order: explicit override, co-author trailer in the message, configured
    assistant author email, ``spp:ai``/``spp:human`` git note, default human.
    """

    if overrides and commit in overrides:
        return Attribution(Actor(overrides[commit]), "override")

    message = source.commit_message(commit).lower()
    if trailer_marker and trailer_marker.lower() in message:
        return Attribution(Actor.AI, "trailer")

    email = source.author_email(commit).strip().lower()
    if email and any(candidate.strip().lower() == email for candidate in ai_emails):
        return Attribution(Actor.AI, "author_email")

    note = source.commit_note(commit)
    if note:
        note_lc = note.lower()
        if AI_NOTE_MARKER in note_lc:
            return Attribution(Actor.AI, "note")
        if HUMAN_NOTE_MARKER in note_lc:
            return Attribution(Actor.HUMAN, "note")

    return Attribution(Actor.HUMAN, "default")


__all__ = [
    "AI_NOTE_MARKER",
    "Attribution",
    "CommitSource",
    "DEFAULT_TRAILER_MARKER",
    "HUMAN_NOTE_MARKER",
    "classify_commit",
]
