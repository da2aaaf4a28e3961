import logging

from ..db.db_client import AsyncPostgresClient
from ..services.notification_service import NotificationService

logger = logging.getLogger(__name__)


async def diary_reminder_task(db_client: AsyncPostgresClient):
    """
    Daily job: reminds students about today's missing diary entry and warns
    about yesterday's. Failures are logged so the scheduler keeps running.
    """
    logger.info("Running diary_reminder_task...")
    try:
        result = await NotificationService(db_client).send_diary_reminders()
        logger.info(f"diary_reminder_task finished: {result.reminders} reminders, {result.warnings} warnings.")
    except Exception as e:
        logger.error(f"diary_reminder_task failed: {e}", exc_info=True)


async def notification_cleanup_task(db_client: AsyncPostgresClient):
    """Periodic job: deletes notifications whose expiry time has passed."""
    logger.info("Running notification_cleanup_task...")
    try:
        deleted = await NotificationService(db_client).cleanup_expired_notifications()
        logger.info(f"notification_cleanup_task finished: {deleted} notifications removed.")
    except Exception as e:
        logger.error(f"notification_cleanup_task failed: {e}", exc_info=True)
