"""codex-spp diagnostics CLI."""

from __future__ import annotations

import argparse
import json
from collections import Counter
from pathlib import Path

from codex_spp.config import get_settings
from codex_spp.storage import StateLoadError, StateStore, read_transcript


def load_store(args: argparse.Namespace) -> StateStore:
    root = getattr(args, "repo_root", None) or get_settings().repo_root or Path.cwd()
    return StateStore(Path(root))


def cmd_state(args: argparse.Namespace) -> None:
    store = load_store(args)
    try:
        state = store.load()
    except StateLoadError as exc:
        print(f"State unavailable: {exc}")
        raise SystemExit(1)
    print(json.dumps(state.model_dump(mode="json"), indent=2))


def cmd_sessions(args: argparse.Namespace) -> None:
    store = load_store(args)
    if not store.sessions_dir.exists():
        print("[]")
        return

    try:
        active = store.load().active_drive_session
    except StateLoadError:
        active = None

    sessions = []
    for session_dir in sorted(path for path in store.sessions_dir.iterdir() if path.is_dir()):
        counts = Counter(event.event_type.value for event in read_transcript(session_dir / "transcript.jsonl"))
        end = next(
            (
                event
                for event in read_transcript(session_dir / "transcript.jsonl")
                if event.event_type.value == "session_end"
            ),
            None,
        )
        sessions.append(
            {
                "session_id": session_dir.name,
                "active": active is not None and active.session_id == session_dir.name,
                "event_counts": dict(counts),
                "stop_reason": (end.payload or {}).get("stop_reason") if end else None,
                "errors": (end.payload or {}).get("errors", []) if end else [],
            }
        )

    if args.limit is not None and args.limit > 0:
        sessions = sessions[-args.limit :]
    print(json.dumps(sessions, indent=2))


def cmd_transcript(args: argparse.Namespace) -> None:
    store = load_store(args)
    path = store.session_dir(args.session_id) / "transcript.jsonl"
    if not path.exists():
        print(f"Transcript not found: {path}")
        raise SystemExit(1)

    events = [event for event in read_transcript(path) if not args.type or event.event_type.value == args.type]
    if args.json:
        print(json.dumps([event.model_dump(mode="json", exclude_none=True) for event in events], indent=2))
        return
    for event in events:
        payload = event.payload or {}
        detail = payload.get("path") or payload.get("role") or payload.get("stop_reason") or ""
        print(f"{event.timestamp.isoformat()} {event.event_type.value} {detail}".rstrip())


def cmd_weekly(args: argparse.Namespace) -> None:
    store = load_store(args)
    reports = store.read_weekly_reports()
    if args.json:
        print(json.dumps([report.model_dump(mode="json") for report in reports], indent=2))
        return
    for report in reports:
        verdict = "pass" if report.gate_passed else "fail"
        print(
            f"{report.year}-W{report.iso_week:02d} ratio={report.ratio:.3f} "
            f"target={report.target_ratio:.3f} {verdict} mode={report.mode_after_evaluation.value}"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="codex-spp diagnostics")
    parser.add_argument("--repo-root", help="Repository root (default: SPP_REPO_ROOT or cwd)")
    sub = parser.add_subparsers(dest="cmd")

    p_state = sub.add_parser("state", help="Show the persisted governance state")
    p_state.set_defaults(func=cmd_state)

    p_sessions = sub.add_parser("sessions", help="List recorded drive sessions")
    p_sessions.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N sessions",
    )
    p_sessions.set_defaults(func=cmd_sessions)

    p_transcript = sub.add_parser("transcript", help="Show a session transcript")
    p_transcript.add_argument("session_id")
    p_transcript.add_argument(
        "--type",
        choices=["session_start", "session_end", "chat_user", "chat_assistant", "file_diff"],
        default=None,
    )
    p_transcript.add_argument("--json", action="store_true", help="Output JSON")
    p_transcript.set_defaults(func=cmd_transcript)

    p_weekly = sub.add_parser("weekly", help="List weekly gate reports")
    p_weekly.add_argument("--json", action="store_true", help="Output JSON")
    p_weekly.set_defaults(func=cmd_weekly)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
