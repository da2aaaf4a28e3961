from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from typing import List, Optional
from uuid import UUID
from datetime import date

from ..services.diary_service import DiaryService, ProgramCalendar, DiaryAnalytics, DiaryOverview
from ..models.db_models import User, Role, DiaryEntry
from ..modules.access import Principal
from .schemas.diary import DiarySubmitRequest, DiaryUpdateRequest, MarkRequest
from .auth import get_current_user, get_current_principal
from .dependencies import get_diary_service
from .utilities.limiter import limiter
from .utilities.roles import verify_role

router = APIRouter(prefix="/diary", tags=["Diary"])


# === Student endpoints ===

@router.post("/entry", response_model=DiaryEntry, status_code=status.HTTP_201_CREATED, summary="Create or update the diary entry for a date")
@limiter.limit("30/minute")
async def submit_entry(request: Request, submit_request: DiarySubmitRequest, user: User = Depends(get_current_user),
                       principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.STUDENT)
    return await service.submit_entry(
        student=user,
        entry_date=submit_request.entry_date,
        text_report=submit_request.text_report,
        file_url=submit_request.file_url,
        file_name=submit_request.file_name,
        file_size=submit_request.file_size,
        is_submitted=submit_request.is_submitted,
    )

@router.put("/entry/{entry_id}", response_model=DiaryEntry, summary="Edit one of the current student's entries")
@limiter.limit("30/minute")
async def update_entry(request: Request, entry_id: UUID, update_request: DiaryUpdateRequest, user: User = Depends(get_current_user),
                       principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.STUDENT)
    return await service.update_entry(user, entry_id, update_request.model_dump(exclude_unset=True))

@router.get("/my-entries", response_model=List[DiaryEntry], summary="List the current student's entries")
@limiter.limit("60/minute")
async def get_my_entries(request: Request, start_date: Optional[date] = Query(None), end_date: Optional[date] = Query(None),
                         principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.STUDENT)
    return await service.get_my_entries(principal.user_id, start_date, end_date)

@router.get("/entry/{entry_date}", response_model=DiaryEntry, summary="Get the current student's entry for a date")
@limiter.limit("60/minute")
async def get_entry_by_date(request: Request, entry_date: date,
                            principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.STUDENT)
    entry = await service.get_entry_by_date(principal.user_id, entry_date)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Diary entry not found.")
    return entry


# === Teacher / super admin endpoints ===

@router.get("/student/{student_id}", response_model=List[DiaryEntry], summary="List a student's entries")
@limiter.limit("60/minute")
async def get_student_entries(request: Request, student_id: UUID, start_date: Optional[date] = Query(None), end_date: Optional[date] = Query(None),
                              principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_student_entries(principal, student_id, start_date, end_date)

@router.get("/entry-by-id/{entry_id}", response_model=DiaryEntry, summary="Get a single entry")
@limiter.limit("60/minute")
async def get_entry_by_id(request: Request, entry_id: UUID,
                          principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.get_entry_by_id(principal, entry_id)

@router.post("/mark/{entry_id}", response_model=DiaryEntry, summary="Mark or re-mark an entry")
@limiter.limit("60/minute")
async def mark_entry(request: Request, entry_id: UUID, mark_request: MarkRequest,
                     principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.TEACHER, Role.SUPER_ADMIN)
    return await service.mark_entry(entry_id, mark_request.mark, mark_request.comment, marker=principal)


# === Shared endpoints ===

@router.get("/program-dates/{group_id}", response_model=ProgramCalendar, summary="Merged calendar of a group's active programs")
@limiter.limit("60/minute")
async def get_program_dates(request: Request, group_id: UUID,
                            principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    return await service.get_program_dates(principal, group_id)


# === Super admin reporting ===

@router.get("/analytics", response_model=DiaryAnalytics, summary="Diary statistics for a timeframe in days")
@limiter.limit("30/minute")
async def get_analytics(request: Request, timeframe: int = Query(30, ge=1, le=365),
                        principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return await service.get_analytics(timeframe_days=timeframe)

@router.get("/overview", response_model=DiaryOverview, summary="Submission trends and marking progress")
@limiter.limit("30/minute")
async def get_overview(request: Request, principal: Principal = Depends(get_current_principal), service: DiaryService = Depends(get_diary_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return await service.get_overview()
