"""Background scheduler for the daily post and the health ping."""

import asyncio
import time
from datetime import datetime
from typing import Optional

import aiohttp
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from daily_reflections_bot.config import SchedulerConfig
from daily_reflections_bot.delivery.service import DailyReflectionService
from daily_reflections_bot.utils.logging import get_logger, log_http_response

DAILY_JOB_ID = "daily_reflection"
PING_JOB_ID = "health_ping"


class ReflectionScheduler:
    """
    Manages the scheduled jobs.

    - daily_reflection: posts the day's reflection at the configured time,
      after a random jitter delay
    - health_ping: periodically requests the bot's own /reflection
      endpoint with the bearer token
    """

    def __init__(
        self,
        config: SchedulerConfig,
        service: DailyReflectionService,
        session: aiohttp.ClientSession,
    ) -> None:
        self.config = config
        self.service = service
        self.session = session
        self.logger = get_logger(__name__)
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._started = False

    def configure(self) -> AsyncIOScheduler:
        """Create the scheduler and register the enabled jobs."""
        scheduler = AsyncIOScheduler(timezone=self.config.tzinfo)

        if self.config.enabled:
            scheduler.add_job(
                self.run_daily_reflection,
                trigger=CronTrigger(
                    hour=self.config.hour,
                    minute=self.config.minute,
                    timezone=self.config.tzinfo,
                ),
                id=DAILY_JOB_ID,
                name="Daily reflection post",
                replace_existing=True,
                max_instances=1,
            )
            self.logger.info(
                "Scheduled daily reflection",
                hour=self.config.hour,
                minute=self.config.minute,
                timezone=self.config.timezone,
            )

        if self.config.ping_enabled:
            scheduler.add_job(
                self.ping,
                trigger=IntervalTrigger(minutes=self.config.ping_interval_minutes),
                id=PING_JOB_ID,
                name="Health ping",
                replace_existing=True,
                max_instances=1,
            )
            self.logger.info("Scheduled health ping", interval_minutes=self.config.ping_interval_minutes)

        self._scheduler = scheduler
        return scheduler

    async def start(self) -> None:
        """Start the scheduler with configured jobs."""
        if self._started:
            self.logger.warning("Scheduler already started")
            return

        self.configure().start()
        self._started = True
        self.logger.info("Scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self._started = False
            self.logger.info("Scheduler stopped")

    async def run_daily_reflection(self) -> None:
        """Scheduled job: post today's reflection."""
        report = await self.service.run_scheduled()
        if report.ok:
            self.logger.info("Scheduled reflection posted", results=report.body.get("results"))
        else:
            self.logger.error("Scheduled reflection failed", details=report.body.get("details"))

    async def ping(self) -> bool:
        """
        Request the bot's own /reflection endpoint.

        Returns:
            True if the endpoint answered with a success status
        """
        self.logger.info("Health check ping", at=datetime.now(self.config.tzinfo).isoformat())
        url = f"{self.config.app_url.rstrip('/')}/reflection"
        headers = {"Authorization": f"Bearer {self.config.bot_token or ''}"}
        start_time = time.time()

        try:
            async with self.session.get(url, headers=headers) as response:
                log_http_response(
                    status_code=response.status,
                    response_time_ms=(time.time() - start_time) * 1000,
                    service="ping",
                )
                if not 200 <= response.status < 300:
                    self.logger.error("Failed to ping bot", status=response.status)
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("Failed to ping bot", error=str(e), error_type=type(e).__name__)
            return False

        self.logger.info("Bot pinged successfully")
        return True

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        """Next run of a job, or None if it is not scheduled."""
        if not self._scheduler:
            return None
        job = self._scheduler.get_job(job_id)
        return getattr(job, "next_run_time", None) if job else None

    @property
    def is_running(self) -> bool:
        return self._started and self._scheduler is not None
