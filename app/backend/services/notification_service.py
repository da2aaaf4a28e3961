import logging
import math
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import date, datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field

# --- Required clients and models ---
from ..db.db_client import AsyncPostgresClient
from ..models.db_models import (
    User, Role, Notification, NotificationType, NotificationPriority,
    DiaryEntry, InternshipProgram,
)
from ..modules.program_calendar import is_valid_program_day
from .errors import ServiceError

logger = logging.getLogger(__name__)

ALL_ROLES = [Role.STUDENT, Role.TEACHER, Role.SUPER_ADMIN]


# --- Result models ---
class NotificationPage(BaseModel):
    notifications: List[Notification]
    total: int
    page: int
    total_pages: int = Field(alias="totalPages")
    has_more: bool = Field(alias="hasMore")

    model_config = ConfigDict(populate_by_name=True)


class NotificationStats(BaseModel):
    total: int
    unread: int
    by_type: Dict[str, int] = Field(alias="byType")

    model_config = ConfigDict(populate_by_name=True)


class ReminderRunResult(BaseModel):
    reminders: int = 0
    warnings: int = 0
    skipped: int = 0
    failed: int = 0


class NotificationService:
    """
    Decides who receives which notification and manages read and expiry state.
    """
    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    async def create_notification(self, user_id: UUID, type: NotificationType, title: str, message: str,
                                  priority: NotificationPriority = NotificationPriority.MEDIUM,
                                  action_url: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                                  expires_at: Optional[datetime] = None) -> Notification:
        """Creates one notification row. Identical calls create identical, separate rows."""
        return await self.db_client.add_notification(
            user_id=user_id, type=type, title=title, message=message, priority=priority,
            action_url=action_url, metadata=metadata or {}, expires_at=expires_at
        )

    async def notify_entry_marked(self, entry: DiaryEntry) -> Notification:
        return await self.create_notification(
            user_id=entry.student_id,
            type=NotificationType.ENTRY_MARKED,
            title="Diary Entry Marked",
            message=f"Your diary entry for {entry.entry_date.isoformat()} has been marked. Score: {entry.mark}/100",
            priority=NotificationPriority.MEDIUM,
            action_url="/student/diary",
            metadata={"entryId": str(entry.id), "mark": entry.mark, "date": entry.entry_date.isoformat()},
        )

    # ===== Scheduled dispatch =====

    async def send_diary_reminders(self, now: Optional[datetime] = None) -> ReminderRunResult:
        """
        Reminds every active student about today's missing report and warns
        about yesterday's. Days are taken on the UTC date boundary.

        The two checks are independent, so one run may produce both kinds for
        the same student. Students without a group or without an active
        program are skipped. Nothing is memoised between runs: a second run on
        the same day only differs when a student submitted in between.
        """
        now = now or datetime.now(timezone.utc)
        today = now.astimezone(timezone.utc).date()
        yesterday = today - timedelta(days=1)
        logger.info(f"Checking diary reminders for {today.isoformat()}...")

        result = ReminderRunResult()
        students = await self.db_client.get_active_users_by_roles([Role.STUDENT])
        programs_by_group: Dict[UUID, List[InternshipProgram]] = {}

        for student in students:
            try:
                if student.group_id is None:
                    result.skipped += 1
                    continue
                if student.group_id not in programs_by_group:
                    programs_by_group[student.group_id] = await self.db_client.get_programs_for_group(student.group_id, active_only=True)
                programs = programs_by_group[student.group_id]
                if not programs:
                    result.skipped += 1
                    continue

                if self._is_program_day(today, programs) and not await self.db_client.has_submitted_entry(student.id, today):
                    await self._send_today_reminder(student, today)
                    result.reminders += 1

                if self._is_program_day(yesterday, programs) and not await self.db_client.has_submitted_entry(student.id, yesterday):
                    await self._send_missing_entry_warning(student, yesterday)
                    result.warnings += 1
            except Exception:
                result.failed += 1
                logger.error(f"Failed to process diary reminders for student {student.id}.", exc_info=True)

        logger.info(
            f"Diary reminder check completed: {result.reminders} reminders, {result.warnings} warnings, "
            f"{result.skipped} skipped, {result.failed} failed."
        )
        return result

    @staticmethod
    def _is_program_day(day: date, programs: List[InternshipProgram]) -> bool:
        return any(is_valid_program_day(day, program) for program in programs)

    async def _send_today_reminder(self, student: User, today: date) -> Notification:
        return await self.create_notification(
            user_id=student.id,
            type=NotificationType.DIARY_REMINDER,
            title="Daily Diary Reminder",
            message=f"Don't forget to submit your diary entry for today ({today.isoformat()}).",
            priority=NotificationPriority.MEDIUM,
            action_url="/student/diary/entry",
            metadata={"date": today.isoformat()},
        )

    async def _send_missing_entry_warning(self, student: User, day: date) -> Notification:
        return await self.create_notification(
            user_id=student.id,
            type=NotificationType.DEADLINE_WARNING,
            title="Missing Diary Entry",
            message=f"You haven't submitted your diary entry for {day.isoformat()}. Please submit it as soon as possible.",
            priority=NotificationPriority.HIGH,
            action_url=f"/student/diary/entry/{day.isoformat()}",
            metadata={"date": day.isoformat()},
        )

    async def send_system_announcement(self, title: str, message: str,
                                       priority: NotificationPriority = NotificationPriority.MEDIUM,
                                       user_roles: Optional[List[Role]] = None,
                                       action_url: Optional[str] = None) -> int:
        """
        Creates one announcement per active user of the given roles.

        Delivery is best effort: rows are written one by one and an error in
        the middle leaves the users before it notified.
        """
        roles = user_roles or ALL_ROLES
        users = await self.db_client.get_active_users_by_roles(roles)

        sent = 0
        for user in users:
            await self.create_notification(
                user_id=user.id,
                type=NotificationType.SYSTEM_ANNOUNCEMENT,
                title=title,
                message=message,
                priority=priority,
                action_url=action_url,
            )
            sent += 1

        logger.info(f"System announcement sent to {sent} users.")
        return sent

    async def cleanup_expired_notifications(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        deleted = await self.db_client.delete_expired_notifications(now)
        logger.info(f"Cleaned up {deleted} expired notifications.")
        return deleted

    # ===== Per-user reads and read state =====

    async def get_user_notifications(self, user_id: UUID, page: int = 1, limit: int = 20, unread_only: bool = False) -> NotificationPage:
        try:
            notifications, total = await self.db_client.get_notifications(
                user_id=user_id, now=datetime.now(timezone.utc), unread_only=unread_only,
                limit=limit, offset=(page - 1) * limit
            )
        except Exception as e:
            logger.error(f"Error getting notifications of user {user_id}.", exc_info=True)
            raise ServiceError("A server error occurred while loading notifications.") from e

        return NotificationPage(
            notifications=notifications,
            total=total,
            page=page,
            total_pages=math.ceil(total / limit) if limit else 0,
            has_more=page * limit < total,
        )

    async def mark_as_read(self, notification_id: UUID, user_id: UUID) -> bool:
        return await self.db_client.mark_notification_read(notification_id, user_id) > 0

    async def mark_all_as_read(self, user_id: UUID) -> int:
        return await self.db_client.mark_all_notifications_read(user_id)

    async def get_notification_stats(self, user_id: UUID) -> NotificationStats:
        total, unread, by_type = await self.db_client.get_notification_stats(user_id)
        return NotificationStats(total=total, unread=unread, by_type=by_type)
