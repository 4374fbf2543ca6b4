"""CLI entry point: run, scheduler, status."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import threading

from auditlogs.config import load_config
from auditlogs.errors import CheckpointIOError
from auditlogs.harvester import build_store, harvest, identity_jobs
from auditlogs.logging_config import configure_logging
from auditlogs.models import format_timestamp

logger = logging.getLogger("auditlogs.cli")


def _install_signal_handlers(cancel_event: threading.Event) -> None:
    """SIGINT/SIGTERM abort in-flight runs before their checkpoint write."""

    def signal_handler(signum: int, frame: object) -> None:
        logger.info("Received signal %d, cancelling runs", signum)
        cancel_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def cmd_run(args: argparse.Namespace) -> None:
    """Run a one-shot harvest for the configured (or given) identities."""
    config = load_config()
    store = build_store(config)
    cancel_event = threading.Event()
    _install_signal_handlers(cancel_event)

    jobs = identity_jobs(config, args.workspace, args.organization)
    results = harvest(config, store, jobs=jobs, cancel_event=cancel_event)
    for r in results:
        if r.ok:
            logger.info("Harvest results for %s %s: %s", r.category.value, r.identity, r.summary)
        else:
            logger.error("Harvest failed for %s %s: %s", r.category.value, r.identity, r.error)


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Start the APScheduler-based scheduling loop."""
    from auditlogs.scheduler import start_scheduler

    config = load_config()
    start_scheduler(config, build_store(config))


def cmd_status(args: argparse.Namespace) -> None:
    """Show the stored checkpoint for every configured identity."""
    config = load_config()
    store = build_store(config)

    fmt = "{:<13}  {:<40}  {:<28}  {}"
    print(fmt.format("CATEGORY", "IDENTITY", "LAST TIMESTAMP", "LAST CURSOR"))
    print("-" * 120)
    for category, identity in identity_jobs(config):
        try:
            cp = store.load_checkpoint(category, identity)
        except CheckpointIOError as exc:
            logger.error("Checkpoint read failed for %s %s: %s", category.value, identity, exc)
            print(fmt.format(category.value, identity, f"(error: {exc})", ""))
            continue
        if cp is None:
            print(fmt.format(category.value, identity, "(none)", ""))
            continue
        print(fmt.format(
            category.value,
            identity,
            format_timestamp(cp.last_timestamp, cp.last_timestamp_nanos),
            cp.last_cursor,
        ))


def main() -> None:
    """Main CLI entry point."""
    configure_logging(
        os.environ.get("LOG_LEVEL", "INFO"),
        os.environ.get("LOG_FORMAT", "json"),
    )

    parser = argparse.ArgumentParser(
        prog="auditlogs",
        description="Render audit log harvester",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # run command
    run_parser = subparsers.add_parser("run", help="Run one-shot harvest")
    run_parser.add_argument(
        "--workspace", "-w",
        action="append",
        default=None,
        help="Workspace id to harvest (repeatable; default: WORKSPACE_IDS)",
    )
    run_parser.add_argument(
        "--organization", "-o",
        default=None,
        help="Organization id to harvest (default: ORGANIZATION_ID)",
    )
    run_parser.set_defaults(func=cmd_run)

    # scheduler command
    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled harvest loop")
    sched_parser.set_defaults(func=cmd_scheduler)

    # status command
    status_parser = subparsers.add_parser("status", help="Show stored checkpoints")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
