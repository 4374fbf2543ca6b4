"""APScheduler-based interval scheduling for harvest runs."""

from __future__ import annotations

import logging

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from auditlogs.config import HarvestConfig
from auditlogs.harvester import harvest
from auditlogs.storage import S3Store

logger = logging.getLogger("auditlogs.scheduler")


def _run_harvest(config: HarvestConfig, store: S3Store) -> None:
    """One scheduled harvest. Failed identities are picked up again next tick."""
    results = harvest(config, store)
    failed = [r.identity for r in results if not r.ok]
    if failed:
        logger.warning("Harvest finished with failures: %s", failed)


def _on_job_error(event) -> None:
    """Log job execution errors."""
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def build_scheduler(config: HarvestConfig, store: S3Store) -> BlockingScheduler:
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    sched = config.scheduler

    # max_instances=1 keeps two runs from racing on the same checkpoint
    scheduler.add_job(
        _run_harvest,
        "interval",
        minutes=sched.interval_min,
        args=[config, store],
        id="harvest",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=sched.misfire_grace_time,
    )
    return scheduler


def start_scheduler(config: HarvestConfig, store: S3Store) -> None:
    """Start the blocking scheduler with the harvest interval job."""
    scheduler = build_scheduler(config, store)
    logger.info("Starting scheduler with jobs: %s",
                [j.id for j in scheduler.get_jobs()])
    scheduler.start()
