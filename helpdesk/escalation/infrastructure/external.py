"""
Escalation External Integrations
================================

Background scheduling of the escalation sweep and the auto-close job.
"""

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[None]]


class EscalationScheduler:
    """
    Wrapper for APScheduler for background escalation jobs.

    Manages the lifecycle of the scheduler and its two interval jobs. Each
    job runs at most one instance at a time, so a slow sweep is never
    overlapped by the next one.
    """

    SWEEP_JOB_ID = "escalation_sweep"
    AUTO_CLOSE_JOB_ID = "auto_close_resolved"

    def __init__(
        self,
        sweep_interval_minutes: int = 30,
        auto_close_interval_minutes: int = 60,
    ):
        self.sweep_interval_minutes = sweep_interval_minutes
        self.auto_close_interval_minutes = auto_close_interval_minutes
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, sweep_job: Job, auto_close_job: Optional[Job] = None) -> None:
        """Start the scheduler with the given job functions."""
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            sweep_job,
            "interval",
            minutes=self.sweep_interval_minutes,
            id=self.SWEEP_JOB_ID,
            name="Escalation Sweep Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        if auto_close_job is not None:
            self._scheduler.add_job(
                auto_close_job,
                "interval",
                minutes=self.auto_close_interval_minutes,
                id=self.AUTO_CLOSE_JOB_ID,
                name="Auto-close Resolved Tickets Job",
                misfire_grace_time=60,
                max_instances=1,
                coalesce=True,
                replace_existing=True
            )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Escalation scheduler started",
            extra={
                "sweep_interval_minutes": self.sweep_interval_minutes,
                "auto_close_interval_minutes": self.auto_close_interval_minutes,
            }
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    def job_ids(self) -> list:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]
