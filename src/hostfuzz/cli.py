"""Command line interface.

Subcommands:
    run      Fuzz the reference sandbox (default when no subcommand is given)
    replay   Re-execute saved finding buffers, rebuilding the host state from
             the saved run settings
    catalog  List every operation with its syscall name and operand kinds

Exit codes:
    0 - Success (replay: no buffer aborted)
    1 - replay: at least one buffer aborted
    2 - Usage error, or the telemetry log could not be written

Python 3.13+.
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import random
import sys
from typing import Any

from hostfuzz import __version__
from hostfuzz.catalog import all_operations
from hostfuzz.constants import BUFFER_SIZE, DEFAULT_LOG_PATH, DEFAULT_RUNS
from hostfuzz.errors import InsufficientInput, PersistenceError
from hostfuzz.isolation import Aborted, Completed
from hostfuzz.runner import (
    FuzzRunner,
    RunConfig,
    build_stats_dict,
    emit_report,
    execute_buffer,
    replay_prefix,
)
from hostfuzz.sandbox import SandboxHost

__all__ = ["build_parser", "main"]

logger = logging.getLogger(__name__)

_COMMANDS = frozenset({"run", "replay", "catalog"})
_TOP_LEVEL_FLAGS = frozenset({"-h", "--help", "--version"})


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="hostfuzz",
        description="Randomized syscall fuzzer for a smart-contract host environment",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    common = argparse.ArgumentParser(add_help=False)
    verbosity = common.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log skipped iterations")

    commands = parser.add_subparsers(dest="command")

    run = commands.add_parser("run", parents=[common], help="Fuzz the reference sandbox")
    run.add_argument(
        "--runs",
        type=int,
        default=DEFAULT_RUNS,
        help=f"Number of iterations (default: {DEFAULT_RUNS})",
    )
    run.add_argument(
        "--buffer-size",
        type=int,
        default=BUFFER_SIZE,
        help=f"Random bytes per iteration (default: {BUFFER_SIZE})",
    )
    run.add_argument(
        "--log",
        type=pathlib.Path,
        default=pathlib.Path(DEFAULT_LOG_PATH),
        help=f"Telemetry log, appended to (default: {DEFAULT_LOG_PATH})",
    )
    run.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Byte source and sandbox seed (default: drawn at random and printed)",
    )
    run.add_argument(
        "--reset-every",
        type=int,
        default=None,
        metavar="N",
        help="Reset the sandbox every N iterations (default: never)",
    )
    run.add_argument(
        "--operation",
        metavar="SYSCALL",
        default=None,
        help="Pin every iteration to one syscall, e.g. syscalls::buf::bytes_append",
    )
    run.add_argument(
        "--findings-dir",
        type=pathlib.Path,
        default=None,
        help="Save buffers of aborted iterations here",
    )
    run.add_argument(
        "--report",
        type=pathlib.Path,
        default=None,
        help="Also write the JSON summary to this file",
    )

    replay = commands.add_parser("replay", parents=[common], help="Re-execute saved finding buffers")
    replay.add_argument(
        "paths",
        nargs="+",
        type=pathlib.Path,
        metavar="PATH",
        help="Finding .bin file, or a directory of them",
    )
    replay.add_argument(
        "--fresh",
        action="store_true",
        help="Run against a fresh sandbox instead of rebuilding the run's host state",
    )

    catalog = commands.add_parser("catalog", parents=[common], help="List operations")
    catalog.add_argument("--category", default=None, help="Only list this category")

    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    if args.quiet:
        level = logging.WARNING
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(stream=sys.stdout, level=level, format="%(levelname)s %(message)s")


# --- run ---


def _cmd_run(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    try:
        config = RunConfig(
            runs=args.runs,
            buffer_size=args.buffer_size,
            log_path=args.log,
            seed=args.seed if args.seed is not None else random.SystemRandom().getrandbits(32),
            operation=args.operation,
            findings_dir=args.findings_dir,
            host_reset_interval=args.reset_every,
        )
    except ValueError as exc:
        parser.error(str(exc))

    print()
    print("=" * 80)
    print("Host Syscall Fuzzer")
    print("=" * 80)
    print("Target:     SandboxHost (reference sandbox)")
    print(f"Catalog:    {len(all_operations())} operations")
    print(f"Operation:  {config.operation or 'uniform over catalog'}")
    print(f"Runs:       {config.runs} x {config.buffer_size} bytes")
    print(f"Seed:       {config.seed}")
    interval = config.host_reset_interval
    print(f"Host reset: {'never' if interval is None else f'every {interval} iterations'}")
    print(f"Telemetry:  {config.log_path}")
    print(f"Findings:   {config.findings_dir or 'not saved'}")
    print("=" * 80)
    print()

    runner = FuzzRunner(SandboxHost(seed=config.seed or 0), config)
    status = 0
    try:
        runner.run()
    except PersistenceError as exc:
        logger.error("Telemetry log failed: %s", exc)
        status = 2
    finally:
        emit_report(runner.stats, build_stats_dict(runner.stats), args.report)
    return status


# --- replay ---


def _replay_targets(paths: list[pathlib.Path]) -> list[pathlib.Path]:
    targets: list[pathlib.Path] = []
    for path in paths:
        if path.is_dir():
            targets.extend(sorted(path.glob("*.bin")))
        else:
            targets.append(path)
    return targets


def _load_meta(path: pathlib.Path) -> dict[str, Any] | None:
    """Metadata saved next to a finding buffer, or None if there is none."""
    meta_path = path.with_name(f"{path.stem}_meta.json")
    if not meta_path.is_file():
        return None
    try:
        meta = json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        print(f"  [{path.name}] Ignoring unreadable metadata: {exc}")
        return None
    return meta if isinstance(meta, dict) else None


def _replay_host(label: str, meta: dict[str, Any] | None, *, fresh: bool) -> SandboxHost:
    """Sandbox in the state the original run had before the finding."""
    if meta is None:
        return SandboxHost()
    seed = meta.get("seed")
    host = SandboxHost(seed=seed or 0)
    iteration = meta.get("iteration", 1)
    if fresh or seed is None or iteration <= 1:
        return host

    try:
        config = RunConfig(
            runs=0,
            buffer_size=meta.get("buffer_size", BUFFER_SIZE),
            seed=seed,
            operation=meta.get("operation"),
            host_reset_interval=meta.get("host_reset_interval"),
        )
    except (TypeError, ValueError) as exc:
        print(f"  [{label}] Ignoring metadata: {exc}")
        return host
    executed = replay_prefix(host, config, iteration - 1)
    print(f"  [{label}] Rebuilt host from seed {seed}: {executed} earlier buffer(s)")
    return host


def _replay_file(path: pathlib.Path, *, fresh: bool = False) -> bool:
    """Replay one buffer, return True if it aborted."""
    label = path.name
    try:
        data = path.read_bytes()
    except OSError as exc:
        print(f"  [{label}] Cannot read: {exc}")
        return False

    host = _replay_host(label, _load_meta(path), fresh=fresh)
    try:
        result = execute_buffer(host, data)
    except InsufficientInput as exc:
        print(f"  [{label}] Skipped: {exc}")
        return False

    print(f"  [{label}] {result.decoded!r}")
    match result.outcome:
        case Aborted(exception=exc):
            print(f"  [{label}] [CONFIRMED] Aborted: {type(exc).__name__}: {exc}")
            return True
        case Completed(error=error) if error is not None:
            print(f"  [{label}] Host error: {error}")
        case Completed(value=value):
            print(f"  [{label}] Completed: {value!r}")
    return False


def _cmd_replay(args: argparse.Namespace) -> int:
    targets = _replay_targets(args.paths)
    if not targets:
        print("No finding buffers found")
        return 0

    print(f"Replaying {len(targets)} buffer(s)")
    print()
    any_aborted = False
    for target in targets:
        if _replay_file(target, fresh=args.fresh):
            any_aborted = True

    print()
    if any_aborted:
        print("[RESULT] At least one buffer ABORTED the host")
        return 1
    print("[RESULT] No buffer aborted the host")
    return 0


# --- catalog ---


def _cmd_catalog(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    operations = all_operations()
    if args.category is not None:
        operations = tuple(op for op in operations if op.category == args.category)
        if not operations:
            parser.error(f"unknown category: {args.category}")
    width = max(len(op.syscall) for op in operations)
    for op in operations:
        print(f"{op.syscall:<{width}}  {op.signature}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point. Returns the process exit code."""
    args_list = list(sys.argv[1:] if argv is None else argv)
    if not args_list or (args_list[0] not in _COMMANDS and args_list[0] not in _TOP_LEVEL_FLAGS):
        args_list.insert(0, "run")

    parser = build_parser()
    args = parser.parse_args(args_list)
    _configure_logging(args)

    match args.command:
        case "replay":
            return _cmd_replay(args)
        case "catalog":
            return _cmd_catalog(args, parser)
        case _:
            return _cmd_run(args, parser)


if __name__ == "__main__":
    sys.exit(main())
