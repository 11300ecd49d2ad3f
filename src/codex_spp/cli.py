"""Command line entry point for codex-spp."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable

from .config import configure_logging, get_settings
from .errors import SppError
from .git import GitRunner
from .service import GovernanceService

ServiceFactory = Callable[[argparse.Namespace], GovernanceService]


def detect_repo_root(cwd: Path | None = None) -> Path:
    settings = get_settings()
    if settings.repo_root is not None:
        return settings.repo_root.expanduser().resolve()
    return GitRunner(cwd or Path.cwd()).show_toplevel()


def default_service(args: argparse.Namespace) -> GovernanceService:
    root = Path(args.repo_root).resolve() if args.repo_root else detect_repo_root()
    return GovernanceService(root, settings=get_settings())


def cmd_init(service: GovernanceService, args: argparse.Namespace) -> None:
    service.init()
    print("initialized codex-spp runtime")


def cmd_status(service: GovernanceService, args: argparse.Namespace) -> None:
    result = service.status()
    report = result.report
    print(f"mode: {result.state.mode.value}")
    print(
        f"ratio: {report.ratio:.3f} (target: {report.target_ratio:.3f}) "
        f"gate_passed: {str(report.gate_passed).lower()}"
    )
    if result.state.pause_until is not None:
        print(f"pause_until: {result.state.pause_until.isoformat()}")
    if result.state.active_drive_session is not None:
        print(f"drive_session: {result.state.active_drive_session.session_id}")


def cmd_drive_start(service: GovernanceService, args: argparse.Namespace) -> None:
    result = service.drive_start()
    print(f"drive session {result.session_id} started (recorder pid {result.recorder_pid})")
    print(f"transcript: {result.transcript_path}")


def cmd_drive_stop(service: GovernanceService, args: argparse.Namespace) -> None:
    result = service.drive_stop(timeout=args.timeout)
    done = result.done
    print(
        f"drive session {result.session_id} stopped ({result.stop_reason}): "
        f"{done.chat_events} chat events, {done.diff_events} diff events"
    )
    for error in done.errors:
        print(f"  error: {error}")
    print(f"mode: {result.mode.value}")


def cmd_pause(service: GovernanceService, args: argparse.Namespace) -> None:
    hours, _until = service.pause(args.hours)
    print(f"gate checks paused for {hours} hour(s)")


def cmd_resume(service: GovernanceService, args: argparse.Namespace) -> None:
    service.resume()
    print("pause cleared")


def cmd_reset(service: GovernanceService, args: argparse.Namespace) -> None:
    service.reset()
    print("weekly state reset")


def cmd_attrib_fix(service: GovernanceService, args: argparse.Namespace) -> None:
    full_commit = service.attrib_fix(args.commit, args.actor)
    print(f"attribution override saved: {full_commit} => {args.actor}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spp", description="codex-spp session governance")
    parser.add_argument("--repo-root", help="Repository root (defaults to the enclosing git repository)")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("init", help="Create the runtime directory and config").set_defaults(func=cmd_init)
    sub.add_parser("status", help="Evaluate the weekly gate and show the mode").set_defaults(
        func=cmd_status
    )

    p_drive = sub.add_parser("drive", help="Start or stop a drive recording session")
    drive_sub = p_drive.add_subparsers(dest="drive_cmd")
    drive_sub.add_parser("start", help="Start the recorder").set_defaults(func=cmd_drive_start)
    p_stop = drive_sub.add_parser("stop", help="Stop the recorder")
    p_stop.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the recorder (default: max(3 x poll interval, 15))",
    )
    p_stop.set_defaults(func=cmd_drive_stop)

    p_pause = sub.add_parser("pause", help="Bypass gate evaluation for a while")
    p_pause.add_argument("--hours", type=int, default=24, help="Pause length, clamped to 1..24")
    p_pause.set_defaults(func=cmd_pause)

    sub.add_parser("resume", help="Clear an active pause").set_defaults(func=cmd_resume)
    sub.add_parser("reset", help="Reset state and weekly reports").set_defaults(func=cmd_reset)

    p_attrib = sub.add_parser("attrib", help="Attribution overrides")
    attrib_sub = p_attrib.add_subparsers(dest="attrib_cmd")
    p_fix = attrib_sub.add_parser("fix", help="Force the actor of a commit")
    p_fix.add_argument("commit")
    p_fix.add_argument("--actor", choices=["human", "ai"], required=True)
    p_fix.set_defaults(func=cmd_attrib_fix)

    return parser


def main(argv: list[str] | None = None, *, service_factory: ServiceFactory = default_service) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 2

    configure_logging(get_settings().log_level)
    try:
        service = service_factory(args)
        args.func(service, args)
    except SppError as exc:
        print(f"spp: {exc}", file=sys.stderr)
        return 1
    return 0


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    run()
