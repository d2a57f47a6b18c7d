import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.services.freshness_cache import FreshnessCache


logger = logging.getLogger(__name__)

class StalenessScheduler:
    """Polls cache slots and refreshes the stale ones in the background"""

    def __init__(self):
        self.scheduler: AsyncIOScheduler | None = None

    async def refresh_if_stale(self, cache: FreshnessCache) -> bool:
        """Background job body. Returns True when a refresh was attempted."""
        if not cache.is_stale() or cache.is_refreshing():
            return False

        logger.info("%s is stale, fetching new one", cache.name.capitalize())
        try:
            await cache.refresh()
        except Exception as e:
            logger.error(f"Exception in scheduled {cache.name} refresh: {e}", exc_info=True)
        return True

    def start(self, caches: list[FreshnessCache], interval_seconds: int) -> None:
        """Start the scheduler with one polling job per cache"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        for cache in caches:
            self.scheduler.add_job(
                self.refresh_if_stale,
                trigger=IntervalTrigger(seconds=interval_seconds),
                args=[cache],
                id=self._job_id(cache),
                max_instances=1,
                coalesce=True,
            )

        self.scheduler.start()
        logger.info(
            "Scheduler started. Polling %s every %ss",
            ", ".join(cache.name for cache in caches),
            interval_seconds,
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    def is_running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self, cache: FreshnessCache) -> datetime | None:
        """Get next staleness check for a cache"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(self._job_id(cache))
        return job.next_run_time if job else None

    @staticmethod
    def _job_id(cache: FreshnessCache) -> str:
        return f"{cache.name}_staleness"


staleness_scheduler = StalenessScheduler()
