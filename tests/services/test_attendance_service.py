import pytest
import pytest_asyncio
import uuid
from datetime import date
from unittest.mock import AsyncMock

from app.backend.services.attendance_service import AttendanceService
from app.backend.services.errors import ValidationError, NotFoundError, ForbiddenError
from app.backend.models.db_models import User, Role, Attendance, AttendanceStatus
from app.backend.modules.access import SuperAdminPrincipal, TeacherPrincipal

GROUP_ID = uuid.uuid4()
OTHER_GROUP_ID = uuid.uuid4()
DAY = date(2024, 6, 4)


def make_student(group_id=GROUP_ID) -> User:
    return User(id=uuid.uuid4(), name="Student", email=f"{uuid.uuid4().hex}@example.com", role=Role.STUDENT, group_id=group_id)


@pytest.fixture
def teacher() -> TeacherPrincipal:
    return TeacherPrincipal(user_id=uuid.uuid4(), assigned_group_ids=frozenset({GROUP_ID}))

@pytest_asyncio.fixture
async def service_instance():
    mock_db_client = AsyncMock()
    return AttendanceService(db_client=mock_db_client), mock_db_client


@pytest.mark.asyncio
class TestAttendanceService:

    async def test_save_attendance_for_own_students(self, service_instance, teacher):
        service, mock_db_client = service_instance
        students = [make_student(), make_student()]
        mock_db_client.get_users_by_ids.return_value = students
        records = [(students[0].id, AttendanceStatus.PRESENT), (students[1].id, AttendanceStatus.EXCUSED)]

        saved = await service.save_attendance(teacher, DAY, records)

        assert saved == 2
        mock_db_client.upsert_attendance.assert_called_once_with(records, DAY)

    async def test_save_attendance_requires_records(self, service_instance, teacher):
        service, _ = service_instance
        with pytest.raises(ValidationError):
            await service.save_attendance(teacher, DAY, [])

    async def test_save_attendance_with_unknown_student(self, service_instance, teacher):
        service, mock_db_client = service_instance
        mock_db_client.get_users_by_ids.return_value = []

        with pytest.raises(NotFoundError):
            await service.save_attendance(teacher, DAY, [(uuid.uuid4(), AttendanceStatus.PRESENT)])

    async def test_save_attendance_outside_groups_is_forbidden(self, service_instance, teacher):
        """Scenario: One foreign student in the batch rejects the whole batch."""
        service, mock_db_client = service_instance
        own, foreign = make_student(), make_student(group_id=OTHER_GROUP_ID)
        mock_db_client.get_users_by_ids.return_value = [own, foreign]

        with pytest.raises(ForbiddenError, match="some students"):
            await service.save_attendance(teacher, DAY, [(own.id, AttendanceStatus.PRESENT), (foreign.id, AttendanceStatus.PRESENT)])

        mock_db_client.upsert_attendance.assert_not_called()

    async def test_group_attendance_defaults_to_absent(self, service_instance, teacher):
        service, mock_db_client = service_instance
        present, missing = make_student(), make_student()
        mock_db_client.get_users_in_groups.return_value = [present, missing]
        mock_db_client.get_attendance_for_students.return_value = [
            Attendance(id=uuid.uuid4(), student_id=present.id, date=DAY, status=AttendanceStatus.PRESENT)
        ]

        result = await service.get_group_attendance(teacher, GROUP_ID, DAY)

        statuses = {item.student.id: item.status for item in result}
        assert statuses == {present.id: AttendanceStatus.PRESENT, missing.id: AttendanceStatus.ABSENT}

    async def test_group_attendance_of_foreign_group(self, service_instance, teacher):
        service, mock_db_client = service_instance
        with pytest.raises(ForbiddenError):
            await service.get_group_attendance(teacher, OTHER_GROUP_ID, DAY)
        mock_db_client.get_users_in_groups.assert_not_called()

    async def test_update_attendance(self, service_instance):
        service, mock_db_client = service_instance
        student = make_student()
        record = Attendance(id=uuid.uuid4(), student_id=student.id, date=DAY, status=AttendanceStatus.ABSENT)
        mock_db_client.get_attendance_by_id.return_value = record
        mock_db_client.get_user_by_id.return_value = student
        mock_db_client.update_attendance_status.return_value = record.model_copy(update={"status": AttendanceStatus.EXCUSED})

        updated = await service.update_attendance(SuperAdminPrincipal(user_id=uuid.uuid4()), record.id, AttendanceStatus.EXCUSED)

        assert updated.status == AttendanceStatus.EXCUSED

    async def test_update_missing_record(self, service_instance, teacher):
        service, mock_db_client = service_instance
        mock_db_client.get_attendance_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await service.update_attendance(teacher, uuid.uuid4(), AttendanceStatus.PRESENT)

    async def test_student_history_outside_groups(self, service_instance, teacher):
        service, mock_db_client = service_instance
        mock_db_client.get_user_by_id.return_value = make_student(group_id=OTHER_GROUP_ID)

        with pytest.raises(ForbiddenError):
            await service.get_student_attendance(teacher, uuid.uuid4())
