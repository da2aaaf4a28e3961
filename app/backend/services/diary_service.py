import logging
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
from datetime import date, datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field

# --- Required clients and models ---
from ..db.db_client import AsyncPostgresClient
from ..models.db_models import User, DiaryEntry
from ..modules.access import Principal, can_access_student, can_view_group_calendar
from ..modules.program_calendar import DayStatus, MergedProgramDate, merge_program_dates, program_day_status
from .errors import ValidationError, NotFoundError, ForbiddenError
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

MIN_MARK = 0
MAX_MARK = 100


# --- Result models ---
class ProgramSummary(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    start_date: date
    end_date: date


class ProgramCalendar(BaseModel):
    dates: List[MergedProgramDate]
    programs: List[ProgramSummary]


class DiaryAnalytics(BaseModel):
    total_entries: int = Field(alias="totalEntries")
    submitted_entries: int = Field(alias="submittedEntries")
    marked_entries: int = Field(alias="markedEntries")
    avg_mark: float = Field(alias="avgMark")
    entries_this_week: int = Field(alias="entriesThisWeek")
    pending_reviews: int = Field(alias="pendingReviews")

    model_config = ConfigDict(populate_by_name=True)


class MarkingProgress(BaseModel):
    total: int
    marked: int
    percentage: int


class DiaryOverview(BaseModel):
    submission_trends: List[Dict[str, Any]] = Field(alias="submissionTrends")
    marking_progress: MarkingProgress = Field(alias="markingProgress")

    model_config = ConfigDict(populate_by_name=True)


class DiaryService:
    """
    Service layer for diary submission, marking and diary reads.
    """
    def __init__(self, db_client: AsyncPostgresClient, notification_service: Optional[NotificationService] = None):
        self.db_client = db_client
        self.notification_service = notification_service or NotificationService(db_client)

    # ===== Submission =====

    async def submit_entry(self, student: User, entry_date: date, text_report: Optional[str] = None,
                           file_url: Optional[str] = None, file_name: Optional[str] = None,
                           file_size: Optional[int] = None, is_submitted: bool = True) -> DiaryEntry:
        """
        Creates or overwrites the student's entry for ``entry_date``.

        The date has to be a program day of at least one active program of the
        student's group. Overwriting replaces text and file metadata and leaves
        any existing mark alone. A submission refreshes submitted_at. A draft
        (``is_submitted=False``) leaves submitted_at unset and never turns an
        already submitted entry back into a draft.
        """
        programs = []
        if student.group_id is not None:
            programs = await self.db_client.get_programs_for_group(student.group_id, active_only=True)
        if not programs:
            raise ValidationError("No active internship programs found for your group.")

        statuses = [program_day_status(entry_date, program) for program in programs]
        if DayStatus.VALID not in statuses:
            if all(s is DayStatus.OUTSIDE_PERIOD for s in statuses):
                raise ValidationError("Entry date is outside all internship program periods.")
            raise ValidationError("Reports are not allowed for this date (holiday/non-working day).")

        entry = await self.db_client.upsert_diary_submission(
            student_id=student.id,
            entry_date=entry_date,
            text_report=text_report,
            file_url=file_url,
            file_name=file_name,
            file_size=file_size,
            is_submitted=is_submitted,
            submitted_at=datetime.now(timezone.utc) if is_submitted else None,
        )
        state = "submitted" if is_submitted else "saved as draft"
        logger.info(f"Diary entry for {entry_date.isoformat()} {state} for student '{student.id}'.")
        return entry

    async def update_entry(self, student: User, entry_id: UUID, fields: Dict[str, Any]) -> DiaryEntry:
        """
        Edits one of the student's own entries by id. Fields that are not
        given keep their stored values; the result goes through the same
        rules as ``submit_entry``.
        """
        entry = await self.db_client.get_diary_entry(entry_id)
        if not entry or entry.student_id != student.id:
            raise NotFoundError("Diary entry not found.")

        return await self.submit_entry(
            student,
            entry.entry_date,
            text_report=fields.get("text_report", entry.text_report),
            file_url=fields.get("file_url", entry.file_url),
            file_name=fields.get("file_name", entry.file_name),
            file_size=fields.get("file_size", entry.file_size),
            is_submitted=entry.is_submitted if fields.get("is_submitted") is None else fields["is_submitted"],
        )

    # ===== Marking =====

    async def mark_entry(self, entry_id: UUID, mark: Union[int, float], comment: Optional[str], marker: Principal) -> DiaryEntry:
        """
        Marks (or re-marks) an entry and notifies its student.
        A failed notification is logged and does not undo the mark.
        """
        if isinstance(mark, bool) or not isinstance(mark, int) or not MIN_MARK <= mark <= MAX_MARK:
            raise ValidationError(f"Mark must be an integer between {MIN_MARK} and {MAX_MARK}.")

        entry = await self.db_client.get_diary_entry(entry_id)
        if not entry:
            raise NotFoundError("Diary entry not found.")

        student = await self.db_client.get_user_by_id(entry.student_id)
        if not student or not can_access_student(marker, student):
            logger.warning(f"User '{marker.user_id}' tried to mark entry {entry_id} outside their groups.")
            raise ForbiddenError("Access denied.")

        marked_entry = await self.db_client.update_diary_mark(
            entry_id=entry_id,
            mark=mark,
            teacher_comment=comment,
            teacher_id=marker.user_id,
            marked_at=datetime.now(timezone.utc),
        )
        if not marked_entry:
            raise NotFoundError("Diary entry not found.")
        logger.info(f"Entry {entry_id} marked {mark}/100 by '{marker.user_id}'.")

        try:
            await self.notification_service.notify_entry_marked(marked_entry)
        except Exception:
            logger.error(f"Failed to send marking notification for entry {entry_id}.", exc_info=True)

        return marked_entry

    # ===== Reads =====

    async def get_my_entries(self, student_id: UUID, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[DiaryEntry]:
        return await self.db_client.get_diary_entries(student_id, start_date, end_date)

    async def get_entry_by_date(self, student_id: UUID, entry_date: date) -> Optional[DiaryEntry]:
        return await self.db_client.get_diary_entry_by_date(student_id, entry_date)

    async def get_student_entries(self, principal: Principal, student_id: UUID,
                                  start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[DiaryEntry]:
        student = await self.db_client.get_user_by_id(student_id)
        if not student:
            raise NotFoundError("Student not found.")
        if not can_access_student(principal, student):
            raise ForbiddenError("Access denied.")
        return await self.db_client.get_diary_entries(student_id, start_date, end_date)

    async def get_entry_by_id(self, principal: Principal, entry_id: UUID) -> DiaryEntry:
        entry = await self.db_client.get_diary_entry(entry_id)
        if not entry:
            raise NotFoundError("Diary entry not found.")
        student = await self.db_client.get_user_by_id(entry.student_id)
        if not student or not can_access_student(principal, student):
            raise ForbiddenError("Access denied.")
        return entry

    async def get_program_dates(self, principal: Principal, group_id: UUID) -> ProgramCalendar:
        """Calendar of every active program linked to the group, merged by date."""
        if not can_view_group_calendar(principal, group_id):
            raise ForbiddenError("Access denied.")

        programs = await self.db_client.get_programs_for_group(group_id, active_only=True)
        if not programs:
            raise NotFoundError("No active programs found for this group.")

        return ProgramCalendar(
            dates=merge_program_dates(programs),
            programs=[ProgramSummary(**program.model_dump(include={"id", "name", "description", "start_date", "end_date"})) for program in programs],
        )

    # ===== Super-admin reporting =====

    async def get_analytics(self, timeframe_days: int = 30, now: Optional[datetime] = None) -> DiaryAnalytics:
        now = now or datetime.now(timezone.utc)
        entries = await self.db_client.get_diary_entries_created_since(now - timedelta(days=timeframe_days))
        week_ago = now - timedelta(days=7)

        marks = [entry.mark for entry in entries if entry.mark is not None]
        avg_mark = round(sum(marks) / len(marks), 1) if marks else 0

        return DiaryAnalytics(
            total_entries=len(entries),
            submitted_entries=sum(1 for entry in entries if entry.is_submitted),
            marked_entries=len(marks),
            avg_mark=avg_mark,
            entries_this_week=sum(1 for entry in entries if entry.created_at and entry.created_at >= week_ago),
            pending_reviews=sum(1 for entry in entries if entry.is_submitted and entry.mark is None),
        )

    async def get_overview(self, now: Optional[datetime] = None) -> DiaryOverview:
        now = now or datetime.now(timezone.utc)
        trends = await self.db_client.get_submission_trends(now - timedelta(days=30))
        total, marked = await self.db_client.count_marking_progress()
        return DiaryOverview(
            submission_trends=trends,
            marking_progress=MarkingProgress(
                total=total,
                marked=marked,
                percentage=round(marked / total * 100) if total else 0,
            ),
        )
