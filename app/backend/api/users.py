from fastapi import APIRouter, Depends, status, Request, Response, Query
from typing import List, Optional
from uuid import UUID

from ..services.admin_service import AdminService
from ..models.db_models import Role
from ..modules.access import Principal
from .schemas.user import (
    UserResponse, UserCreateRequest, UserUpdateRequest, UserPageResponse,
    TeacherGroupsRequest, TeacherGroupsResponse,
)
from .auth import get_current_principal
from .dependencies import get_admin_service
from .utilities.limiter import limiter
from .utilities.roles import verify_role

router = APIRouter(prefix="/users", tags=["Users"])

# Columns that may be cleared explicitly with null.
NULLABLE_USER_FIELDS = {"group_id", "profile_image"}


@router.get("/", response_model=UserPageResponse, summary="List users")
@limiter.limit("60/minute")
async def list_users(request: Request, role: Optional[Role] = Query(None), group_id: Optional[UUID] = Query(None),
                     page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                     principal: Principal = Depends(get_current_principal), service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return await service.list_users(role=role, group_id=group_id, page=page, limit=limit)

@router.get("/my-students", response_model=List[UserResponse], summary="Students of the current teacher's groups")
@limiter.limit("60/minute")
async def get_my_students(request: Request, principal: Principal = Depends(get_current_principal),
                          service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_teacher_students(principal)

@router.get("/group/{group_id}", response_model=List[UserResponse], summary="Members of a group")
@limiter.limit("60/minute")
async def get_group_users(request: Request, group_id: UUID, role: Optional[Role] = Query(None),
                          principal: Principal = Depends(get_current_principal), service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_group_users(principal, group_id, role=role)

@router.get("/{user_id}", response_model=UserResponse, summary="Get a user")
@limiter.limit("60/minute")
async def get_user(request: Request, user_id: UUID, principal: Principal = Depends(get_current_principal),
                   service: AdminService = Depends(get_admin_service)):
    return await service.get_user(principal, user_id)

@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED, summary="Create a teacher or student")
@limiter.limit("30/minute")
async def create_user(request: Request, create_request: UserCreateRequest, principal: Principal = Depends(get_current_principal),
                      service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return await service.create_user(
        name=create_request.name,
        email=create_request.email,
        password=create_request.password,
        role=create_request.role,
        group_id=create_request.group_id,
    )

@router.put("/{user_id}", response_model=UserResponse, summary="Update a user")
@limiter.limit("30/minute")
async def update_user(request: Request, user_id: UUID, update_request: UserUpdateRequest,
                      principal: Principal = Depends(get_current_principal), service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    fields = {
        key: value for key, value in update_request.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_USER_FIELDS
    }
    return await service.update_user(user_id, fields)

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a user")
@limiter.limit("30/minute")
async def delete_user(request: Request, user_id: UUID, principal: Principal = Depends(get_current_principal),
                      service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    await service.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.put("/{user_id}/groups", response_model=TeacherGroupsResponse, summary="Replace a teacher's assigned groups")
@limiter.limit("30/minute")
async def assign_teacher_groups(request: Request, user_id: UUID, groups_request: TeacherGroupsRequest,
                                principal: Principal = Depends(get_current_principal), service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    group_ids = await service.assign_teacher_groups(user_id, groups_request.group_ids)
    return TeacherGroupsResponse(teacher_id=user_id, group_ids=group_ids)
