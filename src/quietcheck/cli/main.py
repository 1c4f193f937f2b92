# src/quietcheck/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs one subcommand:
- run:      worker loop (reconciles desired work first) until SIGINT/SIGTERM
- run-once: a single poll pass over due work
- boot:     boot listener; re-registers desired work, never runs it
- enqueue:  register the configured task (keep existing, or --replace)
- cancel:   cancel a named task
- status:   show registry entries and recent runs
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from datetime import datetime

from ..cli.bootstrap import create_initial_state
from ..config import get_settings, parse_duration
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..work.boot import BOOT_COMPLETED, BootListener, reconcile
from ..work.errors import SchedulerError
from ..work.models import RegistrationPolicy

logger = logging.getLogger(__name__)


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


async def _run_worker(state: AppState) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    for signum in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, stop.set)

    reconcile(state.scheduler, state.definitions)
    await state.runner.run_forever(stop)


def cmd_run(state: AppState, _args: argparse.Namespace) -> int:
    asyncio.run(_run_worker(state))
    return 0


def cmd_run_once(state: AppState, _args: argparse.Namespace) -> int:
    outcomes = asyncio.run(state.runner.run_once())
    if not outcomes:
        print("Nothing due.")
    for name, outcome in outcomes.items():
        print(f"{name}: {outcome.value}")
    return 0


def cmd_boot(state: AppState, _args: argparse.Namespace) -> int:
    BootListener(state.scheduler, state.definitions).on_receive(BOOT_COMPLETED)
    return 0


def cmd_enqueue(state: AppState, args: argparse.Namespace) -> int:
    policy = RegistrationPolicy.REPLACE if args.replace else RegistrationPolicy.KEEP_EXISTING
    for d in state.definitions:
        interval = d.interval
        flex = d.flex_window
        if args.interval:
            parsed = parse_duration(args.interval)
            if parsed is None:
                print(f"Invalid interval: {args.interval}")
                return 2
            interval = parsed
        if args.flex:
            parsed = parse_duration(args.flex)
            if parsed is None:
                print(f"Invalid flex window: {args.flex}")
                return 2
            flex = parsed
        entry = state.scheduler.enqueue_periodic(d.name, interval, flex, policy)
        print(f"{entry.name}: next fire at {_fmt_ts(entry.next_fire_at)}")
    return 0


def cmd_cancel(state: AppState, args: argparse.Namespace) -> int:
    if state.scheduler.cancel(args.name):
        print(f"Cancelled {args.name}")
        return 0
    print(f"No active task named {args.name}")
    return 1


def cmd_status(state: AppState, args: argparse.Namespace) -> int:
    entries = state.scheduler.list_entries()
    if not entries:
        print("No periodic work registered.")
        return 0

    for e in entries:
        status = "cancelled" if e.cancelled else ("running" if e.running_since else "idle")
        print(
            f"{e.name} [{status}] every {e.interval} (flex {e.flex_window}) "
            f"state={e.retry_state.value} attempts={e.attempt_count} "
            f"next={_fmt_ts(e.next_fire_at)} last={e.last_outcome.value if e.last_outcome else '-'} "
            f"last_success={_fmt_ts(e.last_success_at)}"
        )
        for run in state.registry.list_runs(e.name, limit=args.runs):
            outcome = run.outcome.value if run.outcome else "-"
            line = f"  {_fmt_ts(run.started_at)} attempt={run.attempt} {outcome}"
            if run.error:
                line += f" ({run.error})"
            print(line)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quietcheck", description="Periodic background work")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="run the worker loop").set_defaults(func=cmd_run)
    sub.add_parser("run-once", help="run all due work once").set_defaults(func=cmd_run_once)
    sub.add_parser("boot", help="re-register work after a restart").set_defaults(func=cmd_boot)

    p_enqueue = sub.add_parser("enqueue", help="register the configured task")
    p_enqueue.add_argument("--replace", action="store_true", help="reset an existing schedule")
    p_enqueue.add_argument("--interval", help="override interval, e.g. 6h")
    p_enqueue.add_argument("--flex", help="override flex window, e.g. 15m")
    p_enqueue.set_defaults(func=cmd_enqueue)

    p_cancel = sub.add_parser("cancel", help="cancel a task by name")
    p_cancel.add_argument("name")
    p_cancel.set_defaults(func=cmd_cancel)

    p_status = sub.add_parser("status", help="show registered work")
    p_status.add_argument("--runs", type=int, default=5, help="recent runs to show per task")
    p_status.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    try:
        state = create_initial_state(settings=settings)
        return int(args.func(state, args))
    except SchedulerError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
