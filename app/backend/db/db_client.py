import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID
import asyncpg
from datetime import date, datetime, timezone
from ..models.db_models import (
    User, Group, InternshipProgram, DiaryEntry, Notification, Attendance,
    Role, AttendanceStatus,
)

logger = logging.getLogger(__name__)

USER_UPDATABLE_COLUMNS = {"name", "email", "role", "group_id", "is_active", "profile_image"}
GROUP_UPDATABLE_COLUMNS = {"name", "description", "is_active"}
PROGRAM_UPDATABLE_COLUMNS = {"name", "description", "start_date", "end_date", "disabled_days", "is_active"}

# Programs are always read together with their linked groups, primary group first.
PROGRAM_SELECT = """
    SELECT p.*,
           COALESCE(
               array_agg(pg.group_id ORDER BY pg.is_primary DESC, pg.group_id)
                   FILTER (WHERE pg.group_id IS NOT NULL),
               '{}'
           ) AS group_ids
    FROM internship_programs p
    LEFT JOIN program_groups pg ON pg.program_id = p.id
"""


async def init_connection(connection: asyncpg.Connection):
    """Pool connection initializer: JSONB columns are exchanged as Python dicts."""
    await connection.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


def affected_rows(status: str) -> int:
    """Parses asyncpg command tags such as 'UPDATE 3' or 'DELETE 0'."""
    try:
        return int(str(status).split()[-1])
    except (ValueError, IndexError, AttributeError):
        return 0


def _value(v: Any) -> Any:
    return v.value if hasattr(v, "value") else v


def _build_set_clause(fields: Dict[str, Any], allowed: Iterable[str], start: int = 2) -> Tuple[str, List[Any]]:
    columns = [column for column in fields if column in allowed]
    clause = ", ".join(f"{column} = ${i}" for i, column in enumerate(columns, start=start))
    return clause, [_value(fields[column]) for column in columns]


class AsyncPostgresClient:
    """
    PostgreSQL client that owns every database operation of the application.
    """
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    # ===== Users =====

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        query = "SELECT * FROM users WHERE id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, user_id)
            return User(**record) if record else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        query = "SELECT * FROM users WHERE lower(email) = lower($1);"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, email)
            return User(**record) if record else None

    async def get_users_by_ids(self, user_ids: List[UUID]) -> List[User]:
        if not user_ids:
            return []
        query = "SELECT * FROM users WHERE id = ANY($1::uuid[]);"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, user_ids)
            return [User(**record) for record in records]

    async def list_users(self, role: Optional[Role] = None, group_id: Optional[UUID] = None, limit: int = 10, offset: int = 0) -> Tuple[List[User], int]:
        """Paginated user listing, newest first. Returns the page and the total count."""
        where = "WHERE ($1::varchar IS NULL OR role = $1) AND ($2::uuid IS NULL OR group_id = $2)"
        async with self._pool.acquire() as connection:
            total = await connection.fetchval(f"SELECT count(*) FROM users {where};", _value(role), group_id)
            records = await connection.fetch(
                f"SELECT * FROM users {where} ORDER BY created_at DESC LIMIT $3 OFFSET $4;",
                _value(role), group_id, limit, offset
            )
            return [User(**record) for record in records], total

    async def get_users_in_groups(self, group_ids: List[UUID], role: Optional[Role] = None) -> List[User]:
        if not group_ids:
            return []
        query = """
            SELECT * FROM users
            WHERE group_id = ANY($1::uuid[]) AND ($2::varchar IS NULL OR role = $2)
            ORDER BY name ASC;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, group_ids, _value(role))
            return [User(**record) for record in records]

    async def get_active_users_by_roles(self, roles: List[Role]) -> List[User]:
        query = "SELECT * FROM users WHERE role = ANY($1::varchar[]) AND is_active = TRUE;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, [_value(r) for r in roles])
            return [User(**record) for record in records]

    async def create_user(self, name: str, email: str, password_hash: str, role: Role, group_id: Optional[UUID] = None) -> User:
        """Inserts a user. Raises asyncpg.UniqueViolationError on a duplicate email."""
        query = """
            INSERT INTO users (name, email, password, role, group_id)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, name, email, password_hash, _value(role), group_id)
            return User(**record)

    async def update_user(self, user_id: UUID, fields: Dict[str, Any]) -> Optional[User]:
        clause, values = _build_set_clause(fields, USER_UPDATABLE_COLUMNS)
        if not clause:
            return await self.get_user_by_id(user_id)
        query = f"UPDATE users SET {clause} WHERE id = $1 RETURNING *;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, user_id, *values)
            return User(**record) if record else None

    async def update_password(self, user_id: UUID, password_hash: str) -> str:
        query = """
            UPDATE users
            SET password = $2, password_reset_token = NULL, password_reset_expires = NULL
            WHERE id = $1;
        """
        async with self._pool.acquire() as connection:
            return await connection.execute(query, user_id, password_hash)

    async def update_last_login(self, user_id: UUID) -> str:
        query = "UPDATE users SET last_login = $2 WHERE id = $1;"
        async with self._pool.acquire() as connection:
            return await connection.execute(query, user_id, datetime.now(timezone.utc))

    async def delete_user(self, user_id: UUID) -> int:
        query = "DELETE FROM users WHERE id = $1;"
        async with self._pool.acquire() as connection:
            return affected_rows(await connection.execute(query, user_id))

    async def get_teacher_group_ids(self, teacher_id: UUID) -> List[UUID]:
        query = "SELECT group_id FROM teacher_groups WHERE teacher_id = $1;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, teacher_id)
            return [record["group_id"] for record in records]

    async def set_teacher_groups(self, teacher_id: UUID, group_ids: List[UUID]):
        """Replaces the assigned-group set of a teacher in one transaction."""
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                await connection.execute("DELETE FROM teacher_groups WHERE teacher_id = $1;", teacher_id)
                if group_ids:
                    await connection.executemany(
                        "INSERT INTO teacher_groups (teacher_id, group_id) VALUES ($1, $2) ON CONFLICT DO NOTHING;",
                        [(teacher_id, group_id) for group_id in group_ids]
                    )

    # ===== Groups =====

    async def list_groups(self) -> List[Group]:
        query = "SELECT * FROM groups ORDER BY name ASC;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query)
            return [Group(**record) for record in records]

    async def get_group(self, group_id: UUID) -> Optional[Group]:
        query = "SELECT * FROM groups WHERE id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, group_id)
            return Group(**record) if record else None

    async def get_groups_by_ids(self, group_ids: List[UUID]) -> List[Group]:
        if not group_ids:
            return []
        query = "SELECT * FROM groups WHERE id = ANY($1::uuid[]);"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, group_ids)
            return [Group(**record) for record in records]

    async def create_group(self, name: str, description: Optional[str] = None) -> Group:
        """Inserts a group. Raises asyncpg.UniqueViolationError on a duplicate name."""
        query = "INSERT INTO groups (name, description) VALUES ($1, $2) RETURNING *;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, name, description)
            return Group(**record)

    async def update_group(self, group_id: UUID, fields: Dict[str, Any]) -> Optional[Group]:
        clause, values = _build_set_clause(fields, GROUP_UPDATABLE_COLUMNS)
        if not clause:
            return await self.get_group(group_id)
        query = f"UPDATE groups SET {clause} WHERE id = $1 RETURNING *;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, group_id, *values)
            return Group(**record) if record else None

    async def count_group_members(self, group_id: UUID) -> int:
        """Students linked by users.group_id plus teachers linked through teacher_groups."""
        query = """
            SELECT (SELECT count(*) FROM users WHERE group_id = $1)
                 + (SELECT count(*) FROM teacher_groups WHERE group_id = $1);
        """
        async with self._pool.acquire() as connection:
            return await connection.fetchval(query, group_id)

    async def delete_group(self, group_id: UUID) -> int:
        query = "DELETE FROM groups WHERE id = $1;"
        async with self._pool.acquire() as connection:
            return affected_rows(await connection.execute(query, group_id))

    # ===== Internship Programs =====

    async def list_programs(self) -> List[InternshipProgram]:
        query = PROGRAM_SELECT + " GROUP BY p.id ORDER BY p.created_at DESC;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query)
            return [InternshipProgram(**record) for record in records]

    async def get_program(self, program_id: UUID) -> Optional[InternshipProgram]:
        query = PROGRAM_SELECT + " WHERE p.id = $1 GROUP BY p.id;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, program_id)
            return InternshipProgram(**record) if record else None

    async def get_programs_for_group(self, group_id: UUID, active_only: bool = True) -> List[InternshipProgram]:
        query = PROGRAM_SELECT + """
            WHERE p.id IN (SELECT program_id FROM program_groups WHERE group_id = $1)
              AND ($2 = FALSE OR p.is_active = TRUE)
            GROUP BY p.id
            ORDER BY p.start_date ASC;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, group_id, active_only)
            return [InternshipProgram(**record) for record in records]

    async def create_program(self, name: str, description: Optional[str], start_date: date, end_date: date,
                             disabled_days: List[date], group_ids: List[UUID]) -> InternshipProgram:
        """Inserts a program and its group links; the first group becomes the primary one."""
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                program_id = await connection.fetchval(
                    """
                    INSERT INTO internship_programs (name, description, start_date, end_date, disabled_days)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING id;
                    """,
                    name, description, start_date, end_date, disabled_days
                )
                await self._insert_program_groups(connection, program_id, group_ids)
        return await self.get_program(program_id)

    async def update_program(self, program_id: UUID, fields: Dict[str, Any], group_ids: Optional[List[UUID]] = None) -> Optional[InternshipProgram]:
        clause, values = _build_set_clause(fields, PROGRAM_UPDATABLE_COLUMNS)
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                if clause:
                    await connection.execute(f"UPDATE internship_programs SET {clause} WHERE id = $1;", program_id, *values)
                if group_ids is not None:
                    await connection.execute("DELETE FROM program_groups WHERE program_id = $1;", program_id)
                    await self._insert_program_groups(connection, program_id, group_ids)
        return await self.get_program(program_id)

    @staticmethod
    async def _insert_program_groups(connection: asyncpg.Connection, program_id: UUID, group_ids: List[UUID]):
        if not group_ids:
            return
        await connection.executemany(
            "INSERT INTO program_groups (program_id, group_id, is_primary) VALUES ($1, $2, $3) ON CONFLICT DO NOTHING;",
            [(program_id, group_id, i == 0) for i, group_id in enumerate(group_ids)]
        )

    async def delete_program(self, program_id: UUID) -> int:
        query = "DELETE FROM internship_programs WHERE id = $1;"
        async with self._pool.acquire() as connection:
            return affected_rows(await connection.execute(query, program_id))

    # ===== Diary Entries =====

    async def upsert_diary_submission(self, student_id: UUID, entry_date: date, text_report: Optional[str],
                                      file_url: Optional[str], file_name: Optional[str], file_size: Optional[int],
                                      is_submitted: bool, submitted_at: Optional[datetime]) -> DiaryEntry:
        """
        Creates or fully overwrites the entry of a student for one date.
        Mark fields are left untouched on overwrite. A submitted entry stays
        submitted when a draft is saved over it, and keeps its submitted_at
        unless a new one is given.
        """
        query = """
            INSERT INTO diary_entries (student_id, entry_date, text_report, file_url, file_name, file_size, is_submitted, submitted_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (student_id, entry_date) DO UPDATE SET
                text_report = EXCLUDED.text_report,
                file_url = EXCLUDED.file_url,
                file_name = EXCLUDED.file_name,
                file_size = EXCLUDED.file_size,
                is_submitted = diary_entries.is_submitted OR EXCLUDED.is_submitted,
                submitted_at = COALESCE(EXCLUDED.submitted_at, diary_entries.submitted_at)
            RETURNING *;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, student_id, entry_date, text_report, file_url, file_name, file_size, is_submitted, submitted_at)
            return DiaryEntry(**record)

    async def get_diary_entry(self, entry_id: UUID) -> Optional[DiaryEntry]:
        query = "SELECT * FROM diary_entries WHERE id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, entry_id)
            return DiaryEntry(**record) if record else None

    async def get_diary_entry_by_date(self, student_id: UUID, entry_date: date) -> Optional[DiaryEntry]:
        query = "SELECT * FROM diary_entries WHERE student_id = $1 AND entry_date = $2;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, student_id, entry_date)
            return DiaryEntry(**record) if record else None

    async def get_diary_entries(self, student_id: UUID, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[DiaryEntry]:
        query = """
            SELECT * FROM diary_entries
            WHERE student_id = $1
              AND ($2::date IS NULL OR $3::date IS NULL OR entry_date BETWEEN $2 AND $3)
            ORDER BY entry_date ASC;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, student_id, start_date, end_date)
            return [DiaryEntry(**record) for record in records]

    async def has_submitted_entry(self, student_id: UUID, entry_date: date) -> bool:
        query = """
            SELECT EXISTS(
                SELECT 1 FROM diary_entries
                WHERE student_id = $1 AND entry_date = $2 AND is_submitted = TRUE
            );
        """
        async with self._pool.acquire() as connection:
            return await connection.fetchval(query, student_id, entry_date)

    async def update_diary_mark(self, entry_id: UUID, mark: int, teacher_comment: Optional[str],
                                teacher_id: UUID, marked_at: datetime) -> Optional[DiaryEntry]:
        query = """
            UPDATE diary_entries
            SET mark = $2, teacher_comment = $3, teacher_id = $4, marked_at = $5
            WHERE id = $1
            RETURNING *;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, entry_id, mark, teacher_comment, teacher_id, marked_at)
            return DiaryEntry(**record) if record else None

    async def get_diary_entries_created_since(self, since: datetime) -> List[DiaryEntry]:
        query = "SELECT * FROM diary_entries WHERE created_at >= $1;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, since)
            return [DiaryEntry(**record) for record in records]

    async def get_submission_trends(self, since: datetime) -> List[Dict[str, Any]]:
        query = """
            SELECT DATE(submitted_at) AS date, count(id) AS count
            FROM diary_entries
            WHERE submitted_at >= $1 AND is_submitted = TRUE
            GROUP BY DATE(submitted_at)
            ORDER BY DATE(submitted_at) ASC;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, since)
            return [{"date": record["date"], "count": record["count"]} for record in records]

    async def count_marking_progress(self) -> Tuple[int, int]:
        """Returns (submitted entries, submitted entries that carry a mark)."""
        query = """
            SELECT count(*) AS total, count(mark) AS marked
            FROM diary_entries
            WHERE is_submitted = TRUE;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query)
            return record["total"], record["marked"]

    # ===== Notifications =====

    async def add_notification(self, user_id: UUID, type: str, title: str, message: str, priority: str,
                               action_url: Optional[str], metadata: Dict[str, Any], expires_at: Optional[datetime]) -> Notification:
        query = """
            INSERT INTO notifications (user_id, type, title, message, priority, action_url, metadata, expires_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(
                query, user_id, _value(type), title, message, _value(priority), action_url, metadata, expires_at
            )
            return Notification(**record)

    async def get_notifications(self, user_id: UUID, now: datetime, unread_only: bool = False,
                                limit: int = 20, offset: int = 0) -> Tuple[List[Notification], int]:
        """Non-expired notifications of a user, newest first, with the total count."""
        where = """
            WHERE user_id = $1
              AND ($2 = FALSE OR is_read = FALSE)
              AND (expires_at IS NULL OR expires_at > $3)
        """
        async with self._pool.acquire() as connection:
            total = await connection.fetchval(f"SELECT count(*) FROM notifications {where};", user_id, unread_only, now)
            records = await connection.fetch(
                f"SELECT * FROM notifications {where} ORDER BY created_at DESC LIMIT $4 OFFSET $5;",
                user_id, unread_only, now, limit, offset
            )
            return [Notification(**record) for record in records], total

    async def mark_notification_read(self, notification_id: UUID, user_id: UUID) -> int:
        query = "UPDATE notifications SET is_read = TRUE WHERE id = $1 AND user_id = $2;"
        async with self._pool.acquire() as connection:
            return affected_rows(await connection.execute(query, notification_id, user_id))

    async def mark_all_notifications_read(self, user_id: UUID) -> int:
        query = "UPDATE notifications SET is_read = TRUE WHERE user_id = $1 AND is_read = FALSE;"
        async with self._pool.acquire() as connection:
            return affected_rows(await connection.execute(query, user_id))

    async def delete_expired_notifications(self, now: datetime) -> int:
        query = "DELETE FROM notifications WHERE expires_at < $1;"
        async with self._pool.acquire() as connection:
            return affected_rows(await connection.execute(query, now))

    async def get_notification_stats(self, user_id: UUID) -> Tuple[int, int, Dict[str, int]]:
        async with self._pool.acquire() as connection:
            counts = await connection.fetchrow(
                "SELECT count(*) AS total, count(*) FILTER (WHERE is_read = FALSE) AS unread FROM notifications WHERE user_id = $1;",
                user_id
            )
            by_type = await connection.fetch(
                "SELECT type, count(*) AS count FROM notifications WHERE user_id = $1 GROUP BY type;",
                user_id
            )
            return counts["total"], counts["unread"], {record["type"]: record["count"] for record in by_type}

    # ===== Attendance =====

    async def upsert_attendance(self, records: List[Tuple[UUID, AttendanceStatus]], day: date):
        if not records:
            return
        query = """
            INSERT INTO attendance (student_id, date, status)
            VALUES ($1, $2, $3)
            ON CONFLICT (student_id, date) DO UPDATE SET status = EXCLUDED.status;
        """
        async with self._pool.acquire() as connection:
            await connection.executemany(query, [(student_id, day, _value(status)) for student_id, status in records])

    async def get_attendance_for_students(self, student_ids: List[UUID], day: date) -> List[Attendance]:
        if not student_ids:
            return []
        query = "SELECT * FROM attendance WHERE student_id = ANY($1::uuid[]) AND date = $2;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, student_ids, day)
            return [Attendance(**record) for record in records]

    async def get_attendance_for_student(self, student_id: UUID, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[Attendance]:
        query = """
            SELECT * FROM attendance
            WHERE student_id = $1
              AND ($2::date IS NULL OR $3::date IS NULL OR date BETWEEN $2 AND $3)
            ORDER BY date ASC;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, student_id, start_date, end_date)
            return [Attendance(**record) for record in records]

    async def get_attendance_by_id(self, attendance_id: UUID) -> Optional[Attendance]:
        query = "SELECT * FROM attendance WHERE id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, attendance_id)
            return Attendance(**record) if record else None

    async def update_attendance_status(self, attendance_id: UUID, status: AttendanceStatus) -> Optional[Attendance]:
        query = "UPDATE attendance SET status = $2 WHERE id = $1 RETURNING *;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, attendance_id, _value(status))
            return Attendance(**record) if record else None
