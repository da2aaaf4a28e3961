import logging
import math
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import date

import asyncpg
from pydantic import BaseModel, ConfigDict, Field

# --- Required clients and models ---
from ..db.db_client import AsyncPostgresClient
from ..models.db_models import User, Role, Group, InternshipProgram
from ..modules.access import (
    Principal, SuperAdminPrincipal, TeacherPrincipal,
    can_access_group, can_access_program, require_assigned_groups,
)
from ..tools.passwords import hash_password
from .errors import ValidationError, NotFoundError, ForbiddenError, ConflictError

logger = logging.getLogger(__name__)

CREATABLE_ROLES = {Role.TEACHER, Role.STUDENT}


# --- Result models ---
class UserPage(BaseModel):
    users: List[User]
    total: int
    page: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)


class GroupDetail(BaseModel):
    group: Group
    students: List[User]
    programs: List[InternshipProgram]


class AdminService:
    """
    Service layer for user, group and internship program administration.
    Role gating of the routes happens in the routers; this class enforces the
    group scoping that applies to teachers.
    """
    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    # ===== Users =====

    async def list_users(self, role: Optional[Role] = None, group_id: Optional[UUID] = None,
                         page: int = 1, limit: int = 10) -> UserPage:
        users, total = await self.db_client.list_users(role=role, group_id=group_id, limit=limit, offset=(page - 1) * limit)
        return UserPage(users=users, total=total, page=page, total_pages=math.ceil(total / limit) if limit else 0)

    async def get_user(self, principal: Principal, user_id: UUID) -> User:
        """Super admins see everyone, teachers only members of their groups, anyone sees themselves."""
        user = await self.db_client.get_user_by_id(user_id)
        if not user:
            raise NotFoundError("User not found.")
        if principal.user_id != user.id and not can_access_group(principal, user.group_id):
            raise ForbiddenError("Access denied.")
        return user

    async def get_group_users(self, principal: Principal, group_id: UUID, role: Optional[Role] = None) -> List[User]:
        if not can_access_group(principal, group_id):
            raise ForbiddenError("Access denied.")
        return await self.db_client.get_users_in_groups([group_id], role=role)

    async def create_user(self, name: str, email: str, password: str, role: Role, group_id: Optional[UUID] = None) -> User:
        if role not in CREATABLE_ROLES:
            raise ValidationError("Only teacher and student accounts can be created.")
        if group_id is not None and not await self.db_client.get_group(group_id):
            raise ValidationError("Group not found.")

        try:
            user = await self.db_client.create_user(
                name=name, email=email.lower(), password_hash=hash_password(password), role=role, group_id=group_id
            )
        except asyncpg.UniqueViolationError as e:
            raise ConflictError("User with this email already exists.") from e

        logger.info(f"User '{user.id}' created with role '{role.value}'.")
        return user

    async def update_user(self, user_id: UUID, fields: Dict[str, Any]) -> User:
        existing = await self.db_client.get_user_by_id(user_id)
        if not existing:
            raise NotFoundError("User not found.")

        role = fields.get("role")
        if role is not None and Role(role) not in CREATABLE_ROLES:
            raise ValidationError("Role can only be set to teacher or student.")
        if fields.get("group_id") is not None and not await self.db_client.get_group(fields["group_id"]):
            raise ValidationError("Group not found.")
        if fields.get("email"):
            fields = {**fields, "email": fields["email"].lower()}

        try:
            user = await self.db_client.update_user(user_id, fields)
        except asyncpg.UniqueViolationError as e:
            raise ConflictError("User with this email already exists.") from e
        if not user:
            raise NotFoundError("User not found.")
        return user

    async def delete_user(self, user_id: UUID) -> None:
        user = await self.db_client.get_user_by_id(user_id)
        if not user:
            raise NotFoundError("User not found.")
        if user.role == Role.SUPER_ADMIN:
            raise ValidationError("Super admin accounts cannot be deleted.")

        await self.db_client.delete_user(user_id)
        logger.info(f"User '{user_id}' deleted.")

    # ===== Teacher scope =====

    async def get_teacher_students(self, principal: Principal) -> List[User]:
        """Students of every group the teacher is assigned to. Super admins get all students."""
        if isinstance(principal, SuperAdminPrincipal):
            users, _ = await self.db_client.list_users(role=Role.STUDENT, limit=None, offset=0)
            return users
        if not isinstance(principal, TeacherPrincipal):
            raise ForbiddenError("Access denied.")

        require_assigned_groups(principal)
        return await self.db_client.get_users_in_groups(list(principal.assigned_group_ids), role=Role.STUDENT)

    async def assign_teacher_groups(self, teacher_id: UUID, group_ids: List[UUID]) -> List[UUID]:
        """Replaces the teacher's assigned groups. An empty list unassigns everything."""
        teacher = await self.db_client.get_user_by_id(teacher_id)
        if not teacher:
            raise NotFoundError("User not found.")
        if teacher.role != Role.TEACHER:
            raise ValidationError("Groups can only be assigned to teachers.")

        unique_ids = list(dict.fromkeys(group_ids))
        await self._ensure_groups_exist(unique_ids)
        await self.db_client.set_teacher_groups(teacher_id, unique_ids)
        logger.info(f"Teacher '{teacher_id}' assigned to {len(unique_ids)} groups.")
        return unique_ids

    # ===== Groups =====

    async def list_groups(self, principal: Principal) -> List[Group]:
        require_assigned_groups(principal)
        groups = await self.db_client.list_groups()
        return [group for group in groups if can_access_group(principal, group.id)]

    async def get_group(self, principal: Principal, group_id: UUID) -> GroupDetail:
        group = await self.db_client.get_group(group_id)
        if not group:
            raise NotFoundError("Group not found.")
        if not can_access_group(principal, group_id):
            raise ForbiddenError("Access denied.")

        return GroupDetail(
            group=group,
            students=await self.db_client.get_users_in_groups([group_id], role=Role.STUDENT),
            programs=await self.db_client.get_programs_for_group(group_id, active_only=False),
        )

    async def create_group(self, name: str, description: Optional[str] = None) -> Group:
        try:
            group = await self.db_client.create_group(name=name, description=description)
        except asyncpg.UniqueViolationError as e:
            raise ConflictError("Group with this name already exists.") from e
        logger.info(f"Group '{group.name}' created.")
        return group

    async def update_group(self, group_id: UUID, fields: Dict[str, Any]) -> Group:
        try:
            group = await self.db_client.update_group(group_id, fields)
        except asyncpg.UniqueViolationError as e:
            raise ConflictError("Group with this name already exists.") from e
        if not group:
            raise NotFoundError("Group not found.")
        return group

    async def delete_group(self, group_id: UUID) -> None:
        if not await self.db_client.get_group(group_id):
            raise NotFoundError("Group not found.")
        if await self.db_client.count_group_members(group_id) > 0:
            raise ValidationError("Cannot delete a group that still has students or teachers assigned.")

        await self.db_client.delete_group(group_id)
        logger.info(f"Group '{group_id}' deleted.")

    async def _ensure_groups_exist(self, group_ids: List[UUID]):
        if not group_ids:
            return
        found = await self.db_client.get_groups_by_ids(group_ids)
        if len(found) != len(set(group_ids)):
            raise ValidationError("One or more groups were not found.")

    # ===== Internship Programs =====

    async def list_programs(self, principal: Principal) -> List[InternshipProgram]:
        require_assigned_groups(principal)
        programs = await self.db_client.list_programs()
        return [program for program in programs if can_access_program(principal, program)]

    async def get_program(self, principal: Principal, program_id: UUID) -> InternshipProgram:
        program = await self.db_client.get_program(program_id)
        if not program:
            raise NotFoundError("Internship program not found.")
        if not can_access_program(principal, program):
            raise ForbiddenError("Access denied.")
        return program

    async def create_program(self, name: str, start_date: date, end_date: date, group_ids: List[UUID],
                             description: Optional[str] = None, disabled_days: Optional[List[date]] = None) -> InternshipProgram:
        """
        Creates a program linked to ``group_ids``; the first group is the primary one.
        A group can only be given a program while it has none.
        """
        if start_date >= end_date:
            raise ValidationError("Start date must be before end date.")
        unique_ids = list(dict.fromkeys(group_ids))
        if not unique_ids:
            raise ValidationError("At least one group is required.")
        await self._ensure_groups_exist(unique_ids)

        for group_id in unique_ids:
            if await self.db_client.get_programs_for_group(group_id, active_only=False):
                raise ValidationError("Group already has an internship program.")

        program = await self.db_client.create_program(
            name=name, description=description, start_date=start_date, end_date=end_date,
            disabled_days=sorted(set(disabled_days or [])), group_ids=unique_ids
        )
        logger.info(f"Internship program '{program.name}' created for {len(unique_ids)} groups.")
        return program

    async def update_program(self, program_id: UUID, fields: Dict[str, Any], group_ids: Optional[List[UUID]] = None) -> InternshipProgram:
        existing = await self.db_client.get_program(program_id)
        if not existing:
            raise NotFoundError("Internship program not found.")

        start_date = fields.get("start_date") or existing.start_date
        end_date = fields.get("end_date") or existing.end_date
        if start_date >= end_date:
            raise ValidationError("Start date must be before end date.")
        if fields.get("disabled_days") is not None:
            fields = {**fields, "disabled_days": sorted(set(fields["disabled_days"]))}

        if group_ids is not None:
            group_ids = list(dict.fromkeys(group_ids))
            if not group_ids:
                raise ValidationError("At least one group is required.")
            await self._ensure_groups_exist(group_ids)

        program = await self.db_client.update_program(program_id, fields, group_ids=group_ids)
        if not program:
            raise NotFoundError("Internship program not found.")
        return program

    async def delete_program(self, program_id: UUID) -> None:
        if not await self.db_client.delete_program(program_id):
            raise NotFoundError("Internship program not found.")
        logger.info(f"Internship program '{program_id}' deleted.")

    async def get_programs_for_group(self, principal: Principal, group_id: UUID) -> List[InternshipProgram]:
        if not can_access_group(principal, group_id):
            raise ForbiddenError("Access denied.")
        programs = await self.db_client.get_programs_for_group(group_id, active_only=False)
        if not programs:
            raise NotFoundError("No internship program found for this group.")
        return programs
