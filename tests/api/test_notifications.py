import uuid
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from app.backend.main import app
from app.backend.api.dependencies import get_notification_service
from app.backend.services.notification_service import NotificationPage, ReminderRunResult

GROUP_ID = uuid.uuid4()


@pytest_asyncio.fixture
async def notification_service(http_client):
    mock_service = AsyncMock()
    app.dependency_overrides[get_notification_service] = lambda: mock_service
    return mock_service


@pytest.mark.asyncio
class TestNotificationRoutes:

    async def test_list_uses_camel_case_paging_fields(self, http_client, notification_service, login_as, student_user):
        login_as(student_user)
        notification_service.get_user_notifications.return_value = NotificationPage(
            notifications=[], total=0, page=1, total_pages=0, has_more=False
        )

        response = await http_client.get("/api/v1/notifications/", params={"page": 1, "unreadOnly": "true"})

        assert response.status_code == 200
        assert response.json()["hasMore"] is False
        assert "totalPages" in response.json()
        notification_service.get_user_notifications.assert_called_once_with(student_user.id, page=1, limit=20, unread_only=True)

    async def test_mark_unknown_notification(self, http_client, notification_service, login_as, student_user):
        login_as(student_user)
        notification_service.mark_as_read.return_value = False

        response = await http_client.patch(f"/api/v1/notifications/{uuid.uuid4()}/read")

        assert response.status_code == 404

    async def test_read_all(self, http_client, notification_service, login_as, student_user):
        login_as(student_user)
        notification_service.mark_all_as_read.return_value = 0

        response = await http_client.patch("/api/v1/notifications/read-all")

        assert response.json() == {"updated": 0}

    async def test_announcement_requires_super_admin(self, http_client, notification_service, login_as, teacher_user):
        login_as(teacher_user, [GROUP_ID])

        response = await http_client.post("/api/v1/notifications/announcement", json={"title": "Hi", "message": "All"})

        assert response.status_code == 403
        notification_service.send_system_announcement.assert_not_called()

    async def test_manual_reminder_run(self, http_client, notification_service, login_as, admin_user):
        login_as(admin_user)
        notification_service.send_diary_reminders.return_value = ReminderRunResult(reminders=3, warnings=1)

        response = await http_client.post("/api/v1/notifications/diary-reminders")

        assert response.status_code == 200
        assert response.json()["reminders"] == 3
