import logging
from typing import List, Optional, Tuple
from uuid import UUID
from datetime import date

from pydantic import BaseModel

# --- Required clients and models ---
from ..db.db_client import AsyncPostgresClient
from ..models.db_models import User, Role, Attendance, AttendanceStatus
from ..modules.access import Principal, can_access_group, can_access_student
from .errors import ValidationError, NotFoundError, ForbiddenError

logger = logging.getLogger(__name__)


class StudentAttendance(BaseModel):
    """A group member together with the status recorded for the requested day."""
    student: User
    status: AttendanceStatus


class AttendanceService:
    """
    Service layer for the daily attendance teachers record for their groups.
    """
    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    async def save_attendance(self, principal: Principal, day: date, records: List[Tuple[UUID, AttendanceStatus]]) -> int:
        """Upserts one status per student for ``day``. Every student must be within the principal's groups."""
        if not records:
            raise ValidationError("At least one attendance record is required.")

        student_ids = list({student_id for student_id, _ in records})
        students = await self.db_client.get_users_by_ids(student_ids)
        if len(students) != len(student_ids):
            raise NotFoundError("Some students were not found.")
        if not all(can_access_student(principal, student) for student in students):
            logger.warning(f"User '{principal.user_id}' tried to record attendance outside their groups.")
            raise ForbiddenError("Access denied to some students.")

        await self.db_client.upsert_attendance(records, day)
        logger.info(f"Attendance for {day.isoformat()} saved for {len(records)} students.")
        return len(records)

    async def get_group_attendance(self, principal: Principal, group_id: UUID, day: date) -> List[StudentAttendance]:
        """Students without a record for the day are reported as absent."""
        if not can_access_group(principal, group_id):
            raise ForbiddenError("Access denied.")

        students = await self.db_client.get_users_in_groups([group_id], role=Role.STUDENT)
        records = await self.db_client.get_attendance_for_students([s.id for s in students], day)
        status_by_student = {record.student_id: record.status for record in records}

        return [
            StudentAttendance(student=student, status=status_by_student.get(student.id, AttendanceStatus.ABSENT))
            for student in students
        ]

    async def get_student_attendance(self, principal: Principal, student_id: UUID,
                                     start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[Attendance]:
        student = await self.db_client.get_user_by_id(student_id)
        if not student or not can_access_student(principal, student):
            raise ForbiddenError("Access denied.")
        return await self.db_client.get_attendance_for_student(student_id, start_date, end_date)

    async def get_my_attendance(self, student_id: UUID, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[Attendance]:
        return await self.db_client.get_attendance_for_student(student_id, start_date, end_date)

    async def update_attendance(self, principal: Principal, attendance_id: UUID, status: AttendanceStatus) -> Attendance:
        record = await self.db_client.get_attendance_by_id(attendance_id)
        if not record:
            raise NotFoundError("Attendance record not found.")

        student = await self.db_client.get_user_by_id(record.student_id)
        if not student or not can_access_student(principal, student):
            raise ForbiddenError("Access denied.")

        updated = await self.db_client.update_attendance_status(attendance_id, status)
        if not updated:
            raise NotFoundError("Attendance record not found.")
        return updated
