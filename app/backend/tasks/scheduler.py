import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config.config import settings
from ..db.db_client import AsyncPostgresClient
from .cron import diary_reminder_task, notification_cleanup_task

logger = logging.getLogger(__name__)

DIARY_REMINDER_JOB_ID = "diary_reminders"
NOTIFICATION_CLEANUP_JOB_ID = "notification_cleanup"


class NotificationScheduler:
    """
    Owns the background notification jobs. It is started and stopped
    explicitly by the application lifespan and shares nothing with requests
    except the database client.
    """
    def __init__(self, db_client: AsyncPostgresClient, scheduler: Optional[AsyncIOScheduler] = None):
        self.db_client = db_client
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self):
        if self._scheduler.running:
            return

        self._scheduler.add_job(
            diary_reminder_task, "cron",
            hour=settings.DIARY_REMINDER_HOUR, minute=settings.DIARY_REMINDER_MINUTE,
            args=[self.db_client], id=DIARY_REMINDER_JOB_ID, replace_existing=True
        )
        self._scheduler.add_job(
            notification_cleanup_task, "interval",
            hours=settings.NOTIFICATION_CLEANUP_INTERVAL_HOURS,
            args=[self.db_client], id=NOTIFICATION_CLEANUP_JOB_ID, replace_existing=True
        )
        self._scheduler.start()
        logger.info(
            f"Notification scheduler started: diary reminders daily at "
            f"{settings.DIARY_REMINDER_HOUR:02d}:{settings.DIARY_REMINDER_MINUTE:02d} UTC, "
            f"cleanup every {settings.NOTIFICATION_CLEANUP_INTERVAL_HOURS} hours."
        )

    def shutdown(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Notification scheduler stopped.")
