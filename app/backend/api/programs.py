from fastapi import APIRouter, Depends, status, Request, Response
from typing import List
from uuid import UUID

from ..services.admin_service import AdminService
from ..models.db_models import Role, InternshipProgram
from ..modules.access import Principal
from .schemas.program import ProgramCreateRequest, ProgramUpdateRequest
from .auth import get_current_principal
from .dependencies import get_admin_service
from .utilities.limiter import limiter
from .utilities.roles import verify_role

router = APIRouter(prefix="/programs", tags=["Internship Programs"])


@router.get("/", response_model=List[InternshipProgram], summary="List programs visible to the caller")
@limiter.limit("60/minute")
async def list_programs(request: Request, principal: Principal = Depends(get_current_principal),
                        service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.list_programs(principal)

@router.get("/group/{group_id}", response_model=List[InternshipProgram], summary="Programs linked to a group")
@limiter.limit("60/minute")
async def get_programs_for_group(request: Request, group_id: UUID, principal: Principal = Depends(get_current_principal),
                                 service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_programs_for_group(principal, group_id)

@router.get("/{program_id}", response_model=InternshipProgram, summary="Get a program")
@limiter.limit("60/minute")
async def get_program(request: Request, program_id: UUID, principal: Principal = Depends(get_current_principal),
                      service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_program(principal, program_id)

@router.post("/", response_model=InternshipProgram, status_code=status.HTTP_201_CREATED, summary="Create a program")
@limiter.limit("30/minute")
async def create_program(request: Request, create_request: ProgramCreateRequest, principal: Principal = Depends(get_current_principal),
                         service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return await service.create_program(
        name=create_request.name,
        description=create_request.description,
        start_date=create_request.start_date,
        end_date=create_request.end_date,
        group_ids=create_request.group_ids,
        disabled_days=create_request.disabled_days,
    )

@router.put("/{program_id}", response_model=InternshipProgram, summary="Update a program")
@limiter.limit("30/minute")
async def update_program(request: Request, program_id: UUID, update_request: ProgramUpdateRequest,
                         principal: Principal = Depends(get_current_principal), service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    fields = update_request.model_dump(exclude_none=True, exclude={"group_ids"})
    return await service.update_program(program_id, fields, group_ids=update_request.group_ids)

@router.delete("/{program_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a program")
@limiter.limit("30/minute")
async def delete_program(request: Request, program_id: UUID, principal: Principal = Depends(get_current_principal),
                         service: AdminService = Depends(get_admin_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    await service.delete_program(program_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
