from pydantic import BaseModel, Field
from typing import List, Optional

from ...models.db_models import Group, InternshipProgram
from .user import UserResponse


class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)

class GroupUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None

class GroupDetailResponse(BaseModel):
    group: Group
    students: List[UserResponse]
    programs: List[InternshipProgram]
