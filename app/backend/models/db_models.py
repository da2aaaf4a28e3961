# app/backend/models/db_models.py

from enum import Enum
from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    TEACHER = "teacher"
    STUDENT = "student"


class NotificationType(str, Enum):
    DIARY_REMINDER = "diary_reminder"
    ENTRY_MARKED = "entry_marked"
    DEADLINE_WARNING = "deadline_warning"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
    PASSWORD_CHANGED = "password_changed"
    ACCOUNT_UPDATE = "account_update"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    EXCUSED = "excused"


class User(BaseModel):
    """
    Represents a user in the system, mapping to the 'users' table.
    """
    id: UUID
    name: str
    email: str
    password: Optional[str] = Field(None, description="bcrypt hash, never returned by the API")
    role: Role
    is_active: bool = True
    last_login: Optional[datetime] = None
    profile_image: Optional[str] = None
    group_id: Optional[UUID] = Field(None, description="The student's single group. Teachers use teacher_groups instead.")
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Group(BaseModel):
    """
    Represents a student group, mapping to the 'groups' table.
    """
    id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class InternshipProgram(BaseModel):
    """
    Represents an internship program, mapping to 'internship_programs' joined
    with its 'program_groups' rows.
    """
    id: UUID
    name: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    disabled_days: List[date] = Field(default_factory=list, description="Literal calendar dates on which no report is accepted.")
    is_active: bool = True
    group_ids: List[UUID] = Field(default_factory=list, description="Linked groups, the primary group first.")
    created_at: Optional[datetime] = None

    @property
    def group_id(self) -> Optional[UUID]:
        return self.group_ids[0] if self.group_ids else None


class DiaryEntry(BaseModel):
    """
    Represents one student's daily report, mapping to the 'diary_entries' table.
    """
    id: UUID
    student_id: UUID
    entry_date: date
    text_report: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    is_submitted: bool = False
    submitted_at: Optional[datetime] = None
    mark: Optional[int] = Field(None, ge=0, le=100)
    teacher_comment: Optional[str] = None
    marked_at: Optional[datetime] = None
    teacher_id: Optional[UUID] = None
    created_at: Optional[datetime] = None


class Notification(BaseModel):
    """
    Represents a notification addressed to a single user, mapping to the 'notifications' table.
    """
    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    is_read: bool = False
    action_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Attendance(BaseModel):
    """
    Represents a student's attendance for one day, mapping to the 'attendance' table.
    """
    id: UUID
    student_id: UUID
    date: date
    status: AttendanceStatus = AttendanceStatus.PRESENT
    created_at: Optional[datetime] = None
