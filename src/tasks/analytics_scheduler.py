"""
Analytics Scheduler

APScheduler jobs for the batch side of the analytics engine:
- Cohort job: daily at ANALYTICS_SCHEDULER_HOUR:00 UTC
  (assign unassigned wallets, recompute weekly + monthly retention, refresh counts)

Disabled unless ANALYTICS_SCHEDULER_ENABLED=true. Every job is also
callable directly through WalletAnalyticsService.
"""
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from config.config import ANALYTICS_SCHEDULER_HOUR
from src.database.engine import get_session_maker
from src.services.analytics import WalletAnalyticsService


class AnalyticsScheduler:
    """Owns the AsyncIOScheduler and the nightly cohort job."""

    def __init__(self, hour: int = ANALYTICS_SCHEDULER_HOUR, redis=None):
        self.hour = hour
        self.redis = redis
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        if self._running:
            logger.warning("Analytics scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            self._job_cohorts,
            CronTrigger(hour=self.hour, minute=0, timezone="UTC"),
            id="analytics_nightly_cohorts",
            name="Nightly cohort assignment and retention",
            replace_existing=True,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Analytics scheduler started: cohort job at {self.hour:02d}:00 UTC")

    def stop(self):
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Analytics scheduler stopped")

    async def trigger_cohorts_now(self) -> dict:
        """Manual run of the cohort job."""
        logger.info("Manual cohort job triggered")
        return await self._job_cohorts()

    async def _job_cohorts(self) -> dict:
        try:
            async with get_session_maker()() as session:
                service = WalletAnalyticsService(session, redis=self.redis)
                return await service.run_nightly_cohort_job()
        except Exception as e:
            logger.exception(f"Nightly cohort job failed: {e}")
            return {"error": str(e)}
