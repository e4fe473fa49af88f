import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from core.database import async_session_maker
from core.exceptions import RefreshException
from refresh.clients import build_fetch_clients
from refresh.orchestrator import RefreshOrchestrator

logger = logging.getLogger(__name__)


class RefreshScheduler:
    def __init__(
        self,
        orchestrator: Optional[RefreshOrchestrator] = None,
        interval_minutes: Optional[int] = None
    ):
        self.scheduler = AsyncIOScheduler()
        self.orchestrator = orchestrator or RefreshOrchestrator(
            session_factory=async_session_maker,
            clients=build_fetch_clients(settings),
        )
        self.interval_minutes = interval_minutes or settings.REFRESH_INTERVAL_MINUTES

    async def run_refresh_job(self):
        """Job to run one refresh cycle"""
        logger.info("Scheduler: Starting refresh cycle")
        try:
            report = await self.orchestrator.run_cycle()
            logger.info(f"Scheduler: Refresh cycle {report.run_id} finished - {report.summary()}")
        except RefreshException as e:
            logger.error(f"Scheduler: Refresh cycle failed - {e.message}", extra={"error_context": e.to_dict()})
        except Exception as e:
            logger.exception(f"Scheduler: Refresh cycle failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_refresh_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="refresh_cycle",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"Refresh scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Refresh scheduler stopped")
