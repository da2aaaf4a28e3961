from fastapi import APIRouter, Depends, status, Request, Response
from typing import List
from uuid import UUID

from ..services.admin_service import AdminService
from ..models.db_models import Role, Group
from ..modules.access import Principal
from .schemas.group import GroupCreateRequest, GroupUpdateRequest, GroupDetailResponse
from .auth import get_current_principal
from .dependencies import get_admin_service
from .utilities.limiter import limiter
from .utilities.roles import verify_role

router = APIRouter(prefix="/groups", tags=["Groups"])


@router.get("/", response_model=List[Group], summary="List groups visible to the caller")
@limiter.limit("60/minute")
async def list_groups(request: Request, principal: Principal = Depends(get_current_principal),
                      service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.list_groups(principal)

@router.get("/{group_id}", response_model=GroupDetailResponse, summary="Group with its students and programs")
@limiter.limit("60/minute")
async def get_group(request: Request, group_id: UUID, principal: Principal = Depends(get_current_principal),
                    service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_group(principal, group_id)

@router.post("/", response_model=Group, status_code=status.HTTP_201_CREATED, summary="Create a group")
@limiter.limit("30/minute")
async def create_group(request: Request, create_request: GroupCreateRequest, principal: Principal = Depends(get_current_principal),
                       service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return await service.create_group(name=create_request.name, description=create_request.description)

@router.put("/{group_id}", response_model=Group, summary="Update a group")
@limiter.limit("30/minute")
async def update_group(request: Request, group_id: UUID, update_request: GroupUpdateRequest,
                       principal: Principal = Depends(get_current_principal), service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return await service.update_group(group_id, update_request.model_dump(exclude_none=True))

@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an empty group")
@limiter.limit("30/minute")
async def delete_group(request: Request, group_id: UUID, principal: Principal = Depends(get_current_principal),
                       service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    await service.delete_group(group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
