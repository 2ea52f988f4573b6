import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from import_session import ImportSessionRegistry


logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, registry: ImportSessionRegistry) -> None:
        settings = get_settings()
        self.registry = registry
        self.max_idle = timedelta(minutes=settings.import_session_ttl_minutes)
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        purged = self.registry.purge_idle(self.max_idle)
        logger.info(
            f"scheduler_run: source={source} sessions_purged={purged} "
            f"sessions_live={len(self.registry)}"
        )
        return purged

    def start(self) -> None:
        trigger = IntervalTrigger(minutes=15)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval_15m"],
            id="import_session_purge",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with 15 minute import session purge")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
