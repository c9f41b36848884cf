"""Scheduler for the periodic sync jobs.

This module provides:
- Push queue processing at a fixed interval
- Pull enqueue and drain at a fixed interval
- Delete reconciliation at a fixed interval
- run_now for a single manual pass of every job
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from apisync.service import SyncService

logger = logging.getLogger(__name__)

DEFAULT_PUSH_INTERVAL = 60  # seconds
DEFAULT_PULL_INTERVAL = 300
DEFAULT_DELETE_INTERVAL = 3600


class SyncScheduler:
    """Runs the push, pull and delete jobs of a SyncService periodically.

    Jobs never overlap with themselves (max_instances=1); each mapping
    still applies its own push and pull frequency.
    """

    def __init__(
        self,
        service: SyncService,
        push_interval: int = DEFAULT_PUSH_INTERVAL,
        pull_interval: int = DEFAULT_PULL_INTERVAL,
        delete_interval: int = DEFAULT_DELETE_INTERVAL,
    ) -> None:
        """Initialize the scheduler.

        Args:
            service: Service whose jobs are scheduled.
            push_interval: Seconds between push runs (0 disables the job).
            pull_interval: Seconds between pull runs (0 disables the job).
            delete_interval: Seconds between delete runs (0 disables the job).
        """
        self._service = service
        self._push_interval = push_interval
        self._pull_interval = pull_interval
        self._delete_interval = delete_interval
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def _push_job(self) -> None:
        """Job function for scheduled push."""
        try:
            self._service.push()
        except Exception:
            logger.exception("Error during scheduled push")

    def _pull_job(self) -> None:
        """Job function for scheduled pull."""
        try:
            self._service.pull()
        except Exception:
            logger.exception("Error during scheduled pull")

    def _delete_job(self) -> None:
        """Job function for scheduled delete reconciliation."""
        try:
            self._service.delete()
        except Exception:
            logger.exception("Error during scheduled delete reconciliation")

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        jobs = (
            ("push", "Push queue processing", self._push_job, self._push_interval),
            ("pull", "Pull enqueue and drain", self._pull_job, self._pull_interval),
            ("delete", "Delete reconciliation", self._delete_job, self._delete_interval),
        )
        for job_id, name, func, interval in jobs:
            if interval <= 0:
                continue
            self._scheduler.add_job(
                func,
                trigger=IntervalTrigger(seconds=interval),
                id=job_id,
                name=name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        self._scheduler.start()
        logger.info(
            "Sync scheduler started (push every %ds, pull every %ds, delete every %ds)",
            self._push_interval,
            self._pull_interval,
            self._delete_interval,
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync scheduler stopped")

    def job_ids(self) -> list[str]:
        """Ids of the scheduled jobs."""
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    def run_now(self) -> None:
        """Run every job once, immediately (manual trigger)."""
        self._push_job()
        self._pull_job()
        self._delete_job()
