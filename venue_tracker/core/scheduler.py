"""
Background jobs for the venue tracker server.

Only housekeeping that never mutates the registry runs here: the registry is
the authoritative store, and liveness is computed on read, so the scheduler
just keeps the Prometheus size gauges fresh and logs a periodic summary.

Scheduler: APScheduler AsyncIOScheduler, started and stopped by the FastAPI
lifespan.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from venue_tracker.core import metrics

logger = logging.getLogger(__name__)


class RegistryScheduler:
    """Periodic registry housekeeping jobs."""

    def __init__(self, registry, interval_seconds: int = 30):
        self.registry = registry
        self.interval_seconds = interval_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': self.interval_seconds,
            }
        )
        self._schedule_stats_refresh()

        self.scheduler.start()
        self.running = True
        logger.info("Scheduler started with %d jobs", len(self.scheduler.get_jobs()))

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Scheduler stopped")

    def refresh_stats(self):
        """Refresh registry gauges and log the current registry size."""
        metrics.update_registry_metrics(self.registry)
        stats = self.registry.stats()
        logger.info(
            f"Registry: {stats.groups} groups, {stats.users} users, {stats.online_users} online",
            extra={"groups": stats.groups, "users": stats.users, "online_users": stats.online_users},
        )

    def _schedule_stats_refresh(self):
        """
        Schedule: refresh registry gauges.

        Frequency: every ``interval_seconds`` (STATS_REFRESH_SECONDS)
        """
        if self.scheduler is None:
            return

        self.scheduler.add_job(
            self.refresh_stats,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id='registry_stats',
            name='Refresh registry gauges',
        )
