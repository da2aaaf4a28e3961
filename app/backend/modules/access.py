"""
Role and group based access decisions.

Every role check on a resource goes through this module. Callers load the
principal's group affiliations once and pass plain snapshots in; nothing here
touches the database. A missing permission is reported as ``False`` and the
HTTP layer turns it into a 403.
"""
import logging
from typing import FrozenSet, Iterable, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..models.db_models import User, Role, InternshipProgram
from ..services.errors import ValidationError

logger = logging.getLogger(__name__)


class SuperAdminPrincipal(BaseModel):
    kind: Literal["super_admin"] = "super_admin"
    user_id: UUID

    model_config = ConfigDict(frozen=True)


class TeacherPrincipal(BaseModel):
    kind: Literal["teacher"] = "teacher"
    user_id: UUID
    assigned_group_ids: FrozenSet[UUID] = frozenset()

    model_config = ConfigDict(frozen=True)


class StudentPrincipal(BaseModel):
    kind: Literal["student"] = "student"
    user_id: UUID
    group_id: Optional[UUID] = None

    model_config = ConfigDict(frozen=True)


Principal = Union[SuperAdminPrincipal, TeacherPrincipal, StudentPrincipal]


def principal_for(user: User, assigned_group_ids: Iterable[UUID] = ()) -> Principal:
    """Builds the principal variant for an authenticated user."""
    if user.role == Role.SUPER_ADMIN:
        return SuperAdminPrincipal(user_id=user.id)
    if user.role == Role.TEACHER:
        return TeacherPrincipal(user_id=user.id, assigned_group_ids=frozenset(assigned_group_ids))
    return StudentPrincipal(user_id=user.id, group_id=user.group_id)


def can_access_group(principal: Principal, group_id: Optional[UUID]) -> bool:
    # Existence of the group is not checked here.
    if isinstance(principal, SuperAdminPrincipal):
        return True
    if isinstance(principal, TeacherPrincipal):
        return group_id is not None and group_id in principal.assigned_group_ids
    return False


def can_access_student(principal: Principal, student: User) -> bool:
    return can_access_group(principal, student.group_id)


def can_access_program(principal: Principal, program: InternshipProgram) -> bool:
    if isinstance(principal, SuperAdminPrincipal):
        return True
    if isinstance(principal, TeacherPrincipal):
        return not principal.assigned_group_ids.isdisjoint(program.group_ids)
    return False


def can_view_group_calendar(principal: Principal, group_id: UUID) -> bool:
    """Students may read the calendar of their own group, everyone else follows can_access_group."""
    if isinstance(principal, StudentPrincipal):
        return principal.group_id is not None and principal.group_id == group_id
    return can_access_group(principal, group_id)


def require_assigned_groups(principal: Principal) -> None:
    """
    Teacher listings need at least one assigned group. Without one the request
    is a configuration problem, which must not look like an empty result.
    """
    if isinstance(principal, TeacherPrincipal) and not principal.assigned_group_ids:
        logger.warning(f"Teacher '{principal.user_id}' has no assigned groups.")
        raise ValidationError("Teacher must be assigned to at least one group.")
