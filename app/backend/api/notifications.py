from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from uuid import UUID

from ..services.notification_service import NotificationService, NotificationPage, NotificationStats, ReminderRunResult
from ..models.db_models import Role
from ..modules.access import Principal
from .schemas.notification import AnnouncementRequest, AnnouncementResponse, ReadAllResponse, CleanupResponse
from .auth import get_current_principal
from .dependencies import get_notification_service
from .utilities.limiter import limiter
from .utilities.roles import verify_role

router = APIRouter(prefix="/notifications", tags=["Notifications"])


# === Current user's notifications ===

@router.get("/", response_model=NotificationPage, summary="List the current user's notifications")
@limiter.limit("120/minute")
async def get_notifications(request: Request, page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                            unread_only: bool = Query(False, alias="unreadOnly"),
                            principal: Principal = Depends(get_current_principal),
                            service: NotificationService = Depends(get_notification_service)):
    return await service.get_user_notifications(principal.user_id, page=page, limit=limit, unread_only=unread_only)

@router.get("/stats", response_model=NotificationStats, summary="Notification counters of the current user")
@limiter.limit("120/minute")
async def get_stats(request: Request, principal: Principal = Depends(get_current_principal),
                    service: NotificationService = Depends(get_notification_service)):
    return await service.get_notification_stats(principal.user_id)

@router.patch("/read-all", response_model=ReadAllResponse, summary="Mark every notification as read")
@limiter.limit("60/minute")
async def mark_all_read(request: Request, principal: Principal = Depends(get_current_principal),
                        service: NotificationService = Depends(get_notification_service)):
    return ReadAllResponse(updated=await service.mark_all_as_read(principal.user_id))

@router.patch("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT, summary="Mark one notification as read")
@limiter.limit("120/minute")
async def mark_read(request: Request, notification_id: UUID, principal: Principal = Depends(get_current_principal),
                    service: NotificationService = Depends(get_notification_service)):
    if not await service.mark_as_read(notification_id, principal.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.")


# === Super admin operations ===

@router.post("/announcement", response_model=AnnouncementResponse, status_code=status.HTTP_201_CREATED, summary="Send a system announcement")
@limiter.limit("10/minute")
async def send_announcement(request: Request, announcement: AnnouncementRequest, principal: Principal = Depends(get_current_principal),
                            service: NotificationService = Depends(get_notification_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    recipients = await service.send_system_announcement(
        title=announcement.title,
        message=announcement.message,
        priority=announcement.priority,
        user_roles=announcement.user_roles,
        action_url=announcement.action_url,
    )
    return AnnouncementResponse(recipients=recipients)

@router.post("/diary-reminders", response_model=ReminderRunResult, summary="Run the diary reminder check now")
@limiter.limit("5/minute")
async def trigger_diary_reminders(request: Request, principal: Principal = Depends(get_current_principal),
                                  service: NotificationService = Depends(get_notification_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return await service.send_diary_reminders()

@router.delete("/cleanup", response_model=CleanupResponse, summary="Delete expired notifications now")
@limiter.limit("5/minute")
async def cleanup(request: Request, principal: Principal = Depends(get_current_principal),
                  service: NotificationService = Depends(get_notification_service)):
    verify_role(principal, Role.SUPER_ADMIN)
    return CleanupResponse(deleted=await service.cleanup_expired_notifications())
