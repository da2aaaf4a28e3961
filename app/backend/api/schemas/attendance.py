from pydantic import BaseModel
from typing import List
from uuid import UUID
import datetime

from ...models.db_models import AttendanceStatus
from .user import UserResponse


class AttendanceRecordRequest(BaseModel):
    student_id: UUID
    status: AttendanceStatus = AttendanceStatus.PRESENT

class AttendanceSaveRequest(BaseModel):
    date: datetime.date
    records: List[AttendanceRecordRequest]

class AttendanceSaveResponse(BaseModel):
    date: datetime.date
    saved: int

class AttendanceUpdateRequest(BaseModel):
    status: AttendanceStatus

class StudentAttendanceResponse(BaseModel):
    student: UserResponse
    status: AttendanceStatus
