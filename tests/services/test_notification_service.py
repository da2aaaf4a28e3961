import pytest
import pytest_asyncio
import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

from app.backend.services.notification_service import NotificationService, ALL_ROLES
from app.backend.services.errors import ServiceError
from app.backend.models.db_models import (
    User, Role, Notification, NotificationType, NotificationPriority, DiaryEntry, InternshipProgram,
)

GROUP_ID = uuid.uuid4()
# Tuesday 2024-06-04, the program starts on Monday 2024-06-03.
TUESDAY_MORNING = datetime(2024, 6, 4, 9, 0, tzinfo=timezone.utc)
SATURDAY_MORNING = datetime(2024, 6, 8, 9, 0, tzinfo=timezone.utc)


def make_student(group_id=GROUP_ID) -> User:
    return User(id=uuid.uuid4(), name="Student", email=f"{uuid.uuid4().hex}@example.com", role=Role.STUDENT, group_id=group_id)


def stored_notification(**kwargs) -> Notification:
    return Notification(id=uuid.uuid4(), **kwargs)


# --- Test Fixtures ---

@pytest.fixture
def program() -> InternshipProgram:
    return InternshipProgram(
        id=uuid.uuid4(), name="Summer Internship", start_date=date(2024, 6, 3), end_date=date(2024, 6, 28), group_ids=[GROUP_ID]
    )

@pytest_asyncio.fixture
async def service_instance():
    """Creates a NotificationService whose database client echoes created rows back."""
    mock_db_client = AsyncMock()
    mock_db_client.add_notification.side_effect = lambda **kwargs: stored_notification(**kwargs)
    service = NotificationService(db_client=mock_db_client)
    return service, mock_db_client


def created_types(mock_db_client):
    return [call.kwargs["type"] for call in mock_db_client.add_notification.call_args_list]


# --- Test Scenarios ---

@pytest.mark.asyncio
class TestDiaryReminders:

    async def test_reminder_and_warning_for_missing_entries(self, service_instance, program):
        """Scenario: A student with nothing submitted gets a reminder for today and a warning for yesterday."""
        service, mock_db_client = service_instance
        student = make_student()
        mock_db_client.get_active_users_by_roles.return_value = [student]
        mock_db_client.get_programs_for_group.return_value = [program]
        mock_db_client.has_submitted_entry.return_value = False

        result = await service.send_diary_reminders(now=TUESDAY_MORNING)

        assert (result.reminders, result.warnings, result.failed) == (1, 1, 0)
        assert created_types(mock_db_client) == [NotificationType.DIARY_REMINDER, NotificationType.DEADLINE_WARNING]
        warning = mock_db_client.add_notification.call_args_list[1].kwargs
        assert warning["priority"] == NotificationPriority.HIGH
        assert warning["action_url"] == "/student/diary/entry/2024-06-03"
        assert warning["metadata"] == {"date": "2024-06-03"}

    async def test_no_reminder_after_submission(self, service_instance, program):
        """Scenario: A run after the student submitted today's entry creates no new reminder."""
        service, mock_db_client = service_instance
        student = make_student()
        mock_db_client.get_active_users_by_roles.return_value = [student]
        mock_db_client.get_programs_for_group.return_value = [program]

        submitted = set()
        mock_db_client.has_submitted_entry.side_effect = lambda student_id, day: (student_id, day) in submitted

        first = await service.send_diary_reminders(now=TUESDAY_MORNING)
        submitted.add((student.id, TUESDAY_MORNING.date()))
        submitted.add((student.id, date(2024, 6, 3)))
        mock_db_client.add_notification.reset_mock()

        second = await service.send_diary_reminders(now=TUESDAY_MORNING)

        assert first.reminders == 1
        assert second.reminders == 0 and second.warnings == 0
        mock_db_client.add_notification.assert_not_called()

    async def test_weekend_only_warns_about_friday(self, service_instance, program):
        service, mock_db_client = service_instance
        mock_db_client.get_active_users_by_roles.return_value = [make_student()]
        mock_db_client.get_programs_for_group.return_value = [program]
        mock_db_client.has_submitted_entry.return_value = False

        result = await service.send_diary_reminders(now=SATURDAY_MORNING)

        assert (result.reminders, result.warnings) == (0, 1)
        assert mock_db_client.add_notification.call_args.kwargs["metadata"] == {"date": "2024-06-07"}

    async def test_students_without_group_or_program_are_skipped(self, service_instance):
        service, mock_db_client = service_instance
        other_group = uuid.uuid4()
        mock_db_client.get_active_users_by_roles.return_value = [make_student(group_id=None), make_student(group_id=other_group)]
        mock_db_client.get_programs_for_group.return_value = []

        result = await service.send_diary_reminders(now=TUESDAY_MORNING)

        assert result.skipped == 2
        mock_db_client.add_notification.assert_not_called()
        mock_db_client.get_programs_for_group.assert_called_once_with(other_group, active_only=True)

    async def test_programs_are_loaded_once_per_group(self, service_instance, program):
        service, mock_db_client = service_instance
        mock_db_client.get_active_users_by_roles.return_value = [make_student(), make_student(), make_student()]
        mock_db_client.get_programs_for_group.return_value = [program]
        mock_db_client.has_submitted_entry.return_value = True

        await service.send_diary_reminders(now=TUESDAY_MORNING)

        mock_db_client.get_programs_for_group.assert_called_once()

    async def test_failure_for_one_student_does_not_stop_the_run(self, service_instance, program):
        service, mock_db_client = service_instance
        broken, healthy = make_student(), make_student()
        mock_db_client.get_active_users_by_roles.return_value = [broken, healthy]
        mock_db_client.get_programs_for_group.return_value = [program]
        mock_db_client.has_submitted_entry.return_value = False

        def add_notification(**kwargs):
            if kwargs["user_id"] == broken.id:
                raise RuntimeError("insert failed")
            return stored_notification(**kwargs)

        mock_db_client.add_notification.side_effect = add_notification

        result = await service.send_diary_reminders(now=TUESDAY_MORNING)

        assert result.failed == 1
        assert (result.reminders, result.warnings) == (1, 1)


@pytest.mark.asyncio
class TestAnnouncementsAndCleanup:

    async def test_announcement_to_every_role_by_default(self, service_instance):
        service, mock_db_client = service_instance
        mock_db_client.get_active_users_by_roles.return_value = [make_student(), make_student()]

        sent = await service.send_system_announcement("Maintenance", "The system is down tonight.")

        assert sent == 2
        mock_db_client.get_active_users_by_roles.assert_called_once_with(ALL_ROLES)
        assert created_types(mock_db_client) == [NotificationType.SYSTEM_ANNOUNCEMENT] * 2

    async def test_announcement_to_selected_roles(self, service_instance):
        service, mock_db_client = service_instance
        mock_db_client.get_active_users_by_roles.return_value = []

        sent = await service.send_system_announcement("Teachers", "Marking deadline.", user_roles=[Role.TEACHER])

        assert sent == 0
        mock_db_client.get_active_users_by_roles.assert_called_once_with([Role.TEACHER])

    async def test_cleanup_twice_deletes_nothing_the_second_time(self, service_instance):
        service, mock_db_client = service_instance
        mock_db_client.delete_expired_notifications.side_effect = [3, 0]
        now = datetime(2024, 6, 20, tzinfo=timezone.utc)

        assert await service.cleanup_expired_notifications(now=now) == 3
        assert await service.cleanup_expired_notifications(now=now) == 0
        mock_db_client.delete_expired_notifications.assert_called_with(now)

    async def test_entry_marked_notification(self, service_instance):
        service, mock_db_client = service_instance
        entry = DiaryEntry(id=uuid.uuid4(), student_id=uuid.uuid4(), entry_date=date(2024, 6, 3), is_submitted=True, mark=88)

        notification = await service.notify_entry_marked(entry)

        assert notification.type == NotificationType.ENTRY_MARKED
        assert notification.user_id == entry.student_id
        assert "88/100" in notification.message
        assert notification.metadata == {"entryId": str(entry.id), "mark": 88, "date": "2024-06-03"}


@pytest.mark.asyncio
class TestReadState:

    async def test_pagination(self, service_instance):
        service, mock_db_client = service_instance
        user_id = uuid.uuid4()
        mock_db_client.get_notifications.return_value = ([], 45)

        page = await service.get_user_notifications(user_id, page=2, limit=20)

        assert page.total_pages == 3
        assert page.has_more is True
        kwargs = mock_db_client.get_notifications.call_args.kwargs
        assert kwargs["offset"] == 20 and kwargs["limit"] == 20
        assert page.model_dump(by_alias=True)["totalPages"] == 3

    async def test_last_page_has_no_more(self, service_instance):
        service, mock_db_client = service_instance
        mock_db_client.get_notifications.return_value = ([], 45)

        page = await service.get_user_notifications(uuid.uuid4(), page=3, limit=20)

        assert page.has_more is False

    async def test_store_failure_is_wrapped(self, service_instance):
        service, mock_db_client = service_instance
        mock_db_client.get_notifications.side_effect = ConnectionError("pool closed")

        with pytest.raises(ServiceError):
            await service.get_user_notifications(uuid.uuid4())

    async def test_mark_all_as_read_twice(self, service_instance):
        service, mock_db_client = service_instance
        mock_db_client.mark_all_notifications_read.side_effect = [5, 0]
        user_id = uuid.uuid4()

        assert await service.mark_all_as_read(user_id) == 5
        assert await service.mark_all_as_read(user_id) == 0

    async def test_mark_as_read_of_foreign_notification(self, service_instance):
        service, mock_db_client = service_instance
        mock_db_client.mark_notification_read.return_value = 0

        assert await service.mark_as_read(uuid.uuid4(), uuid.uuid4()) is False

    async def test_stats(self, service_instance):
        service, mock_db_client = service_instance
        mock_db_client.get_notification_stats.return_value = (4, 1, {"diary_reminder": 3, "entry_marked": 1})

        stats = await service.get_notification_stats(uuid.uuid4())

        assert stats.unread == 1
        assert stats.model_dump(by_alias=True)["byType"]["diary_reminder"] == 3
