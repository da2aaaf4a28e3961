from fastapi import APIRouter, Depends, status, Request, Query
from typing import List, Optional
from uuid import UUID
from datetime import date

from ..services.attendance_service import AttendanceService
from ..models.db_models import Role, Attendance
from ..modules.access import Principal
from .schemas.attendance import (
    AttendanceSaveRequest, AttendanceSaveResponse, AttendanceUpdateRequest, StudentAttendanceResponse,
)
from .auth import get_current_principal
from .dependencies import get_attendance_service
from .utilities.limiter import limiter
from .utilities.roles import verify_role

router = APIRouter(prefix="/attendance", tags=["Attendance"])


@router.post("/", response_model=AttendanceSaveResponse, status_code=status.HTTP_201_CREATED, summary="Record attendance for a day")
@limiter.limit("30/minute")
async def save_attendance(request: Request, save_request: AttendanceSaveRequest,
                          principal: Principal = Depends(get_current_principal),
                          service: AttendanceService = Depends(get_attendance_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    saved = await service.save_attendance(
        principal, save_request.date, [(record.student_id, record.status) for record in save_request.records]
    )
    return AttendanceSaveResponse(date=save_request.date, saved=saved)

@router.get("/group/{group_id}", response_model=List[StudentAttendanceResponse], summary="Attendance of a group for a day")
@limiter.limit("60/minute")
async def get_group_attendance(request: Request, group_id: UUID, day: date = Query(..., alias="date"),
                               principal: Principal = Depends(get_current_principal),
                               service: AttendanceService = Depends(get_attendance_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_group_attendance(principal, group_id, day)

@router.get("/student/{student_id}", response_model=List[Attendance], summary="Attendance history of a student")
@limiter.limit("60/minute")
async def get_student_attendance(request: Request, student_id: UUID,
                                 start_date: Optional[date] = Query(None), end_date: Optional[date] = Query(None),
                                 principal: Principal = Depends(get_current_principal),
                                 service: AttendanceService = Depends(get_attendance_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_student_attendance(principal, student_id, start_date, end_date)

@router.get("/my", response_model=List[Attendance], summary="Attendance history of the current student")
@limiter.limit("60/minute")
async def get_my_attendance(request: Request, start_date: Optional[date] = Query(None), end_date: Optional[date] = Query(None),
                            principal: Principal = Depends(get_current_principal),
                            service: AttendanceService = Depends(get_attendance_service)):
    verify_role(principal, Role.STUDENT)
    return await service.get_my_attendance(principal.user_id, start_date, end_date)

@router.put("/{attendance_id}", response_model=Attendance, summary="Correct a single attendance record")
@limiter.limit("30/minute")
async def update_attendance(request: Request, attendance_id: UUID, update_request: AttendanceUpdateRequest,
                            principal: Principal = Depends(get_current_principal),
                            service: AttendanceService = Depends(get_attendance_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.update_attendance(principal, attendance_id, update_request.status)
