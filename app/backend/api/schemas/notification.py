from pydantic import BaseModel, Field
from typing import List, Optional

from ...models.db_models import Role, NotificationPriority


class AnnouncementRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    user_roles: Optional[List[Role]] = Field(None, description="Defaults to every role.")
    action_url: Optional[str] = None

class AnnouncementResponse(BaseModel):
    recipients: int

class ReadAllResponse(BaseModel):
    updated: int

class CleanupResponse(BaseModel):
    deleted: int
