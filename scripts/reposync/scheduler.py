"""APScheduler-based interval scheduling: one job per configured provider."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from scripts.reposync.config import SyncConfig
from scripts.reposync.engine import SyncEngine
from scripts.reposync.models import PassState, SyncJob

logger = logging.getLogger("reposync.scheduler")


def _sync_job(
    engine: SyncEngine,
    job: SyncJob,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """Run every organisation pass of one job and log a summary."""
    statuses = engine.run_job(job, cancel_event)
    failed = [s.organization for s in statuses if s.state is PassState.FAILED]
    logger.info(
        "Scheduled sync finished: %d passes, %d failed %s",
        len(statuses),
        len(failed),
        failed,
        extra={"provider": job.provider.value},
    )


def _on_job_error(event) -> None:
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def build_scheduler(
    config: SyncConfig,
    engine: SyncEngine,
    cancel_event: Optional[threading.Event] = None,
) -> BlockingScheduler:
    """Register one interval job per configured provider."""
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)

    for job in config.jobs:
        if not job.organizations:
            logger.warning(
                "No organizations configured, skipping",
                extra={"provider": job.provider.value},
            )
            continue
        scheduler.add_job(
            _sync_job,
            "interval",
            minutes=job.interval_minutes,
            args=[engine, job, cancel_event],
            id=job.provider.value,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=config.engine.misfire_grace_time,
        )
    return scheduler


def start_scheduler(config: SyncConfig, engine: SyncEngine) -> None:
    """Start the blocking scheduler. Returns after shutdown."""
    cancel_event = threading.Event()
    scheduler = build_scheduler(config, engine, cancel_event)
    logger.info("Starting scheduler with jobs: %s",
                [j.id for j in scheduler.get_jobs()])
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopping, cancelling in-flight passes")
        cancel_event.set()
        scheduler.shutdown(wait=True)
