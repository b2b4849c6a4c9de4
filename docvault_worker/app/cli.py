"""Operator CLI: `docvault-worker run|sweep|stuck-tasks|statistics|retry`.

Exit codes: 0 success, 1 hard failure (service unavailable, find step failed,
unknown document), 2 usage error, 3 degraded sweep (some resets failed).
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Callable, Sequence

from loguru import logger

from docvault_worker.app.composition import WorkerDependencies
from docvault_worker.app.config.settings import Settings
from docvault_worker.app.constants import DEFAULT_STUCK_TIMEOUT_MINUTES
from docvault_worker.app.domain.error_categorizer import describe
from docvault_worker.app.domain.models import SweepOutcome
from docvault_worker.app.domain.outcome import Terminal

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_DEGRADED = 3

DependenciesFactory = Callable[[], WorkerDependencies]


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a whole number of minutes, got {raw!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"timeout must be positive, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docvault-worker", description="Document OCR worker and operator tools.")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("run", help="consume the processing queue (default)")

    sweep = commands.add_parser("sweep", help="reset OCR tasks stuck in processing")
    sweep.add_argument("--timeout", type=_positive_int, default=DEFAULT_STUCK_TIMEOUT_MINUTES, help="minutes (default: %(default)s)")
    sweep.add_argument("--dry-run", action="store_true", help="report without resetting")
    sweep.add_argument("-v", "--verbose", action="store_true", dest="verbose", default=argparse.SUPPRESS)

    stuck = commands.add_parser("stuck-tasks", help="list OCR tasks stuck in processing")
    stuck.add_argument("--timeout", type=_positive_int, default=DEFAULT_STUCK_TIMEOUT_MINUTES)

    commands.add_parser("statistics", help="print OCR queue statistics")

    retry = commands.add_parser("retry", help="manually retry a failed document")
    retry.add_argument("document_id")
    retry.add_argument("--reason", default=None)
    return parser


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _sweep(deps: WorkerDependencies, args: argparse.Namespace) -> int:
    try:
        await deps.connect(consume=False, persistence=False)
        report = await deps.recovery.sweep(args.timeout, dry_run=args.dry_run)
    except Exception as exc:
        print(f"sweep failed: {describe(exc)}", file=sys.stderr)
        return EXIT_FAILURE
    _emit(report.to_dict())
    return EXIT_DEGRADED if report.outcome is SweepOutcome.DEGRADED else EXIT_OK


async def _stuck_tasks(deps: WorkerDependencies, args: argparse.Namespace) -> int:
    try:
        await deps.connect(consume=False, persistence=False)
        view = await deps.monitor.stuck_tasks(args.timeout)
    except Exception as exc:
        print(f"stuck task lookup failed: {describe(exc)}", file=sys.stderr)
        return EXIT_FAILURE
    _emit(view)
    return EXIT_OK


async def _statistics(deps: WorkerDependencies, args: argparse.Namespace) -> int:
    try:
        await deps.connect(consume=False, persistence=False)
        stats = await deps.monitor.statistics()
    except Exception as exc:
        print(f"statistics unavailable: {describe(exc)}", file=sys.stderr)
        return EXIT_FAILURE
    _emit(stats.to_dict())
    return EXIT_OK


async def _retry(deps: WorkerDependencies, args: argparse.Namespace) -> int:
    try:
        await deps.connect(consume=False)
        outcome = await deps.retry_coordinator.retry(args.document_id, args.reason)
    except Exception as exc:
        print(f"retry failed: {describe(exc)}", file=sys.stderr)
        return EXIT_FAILURE
    _emit({"document_id": args.document_id, "outcome": type(outcome).__name__})
    if isinstance(outcome, Terminal) and outcome.error is not None:
        print(f"retry ended terminally: {outcome.error}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK


_COMMANDS = {
    "sweep": _sweep,
    "stuck-tasks": _stuck_tasks,
    "statistics": _statistics,
    "retry": _retry,
}


async def _run_command(factory: DependenciesFactory, args: argparse.Namespace) -> int:
    deps = factory()
    try:
        return await _COMMANDS[args.command](deps, args)
    finally:
        await deps.close()


def main(argv: Sequence[str] | None = None, *, deps_factory: DependenciesFactory | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return int(exc.code or 0)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if getattr(args, "verbose", False) else "INFO")

    if args.command in (None, "run"):
        from docvault_worker.app.main import main as run_main

        run_main()
        return EXIT_OK

    factory = deps_factory or (lambda: WorkerDependencies(settings=Settings()))
    return asyncio.run(_run_command(factory, args))


if __name__ == "__main__":
    sys.exit(main())
