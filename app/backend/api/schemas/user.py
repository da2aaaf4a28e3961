# app/backend/api/schemas/user.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from ...models.db_models import Role


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class UserResponse(BaseModel):
    """Public view of a user. The password hash and reset fields are never exposed."""
    id: UUID
    name: str
    email: str
    role: Role
    is_active: bool
    group_id: Optional[UUID] = None
    profile_image: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    token: Token
    user: UserResponse

# Internal representation of JWT data
class TokenData(BaseModel):
    user_id: Optional[UUID] = None
    session_id: Optional[UUID] = None
    role: Optional[Role] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

class ResetPasswordRequest(BaseModel):
    user_id: UUID
    new_password: str


class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    role: Role
    group_id: Optional[UUID] = None

class UserUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    role: Optional[Role] = None
    group_id: Optional[UUID] = None
    is_active: Optional[bool] = None
    profile_image: Optional[str] = None

class UserPageResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)

class TeacherGroupsRequest(BaseModel):
    group_ids: List[UUID]

class TeacherGroupsResponse(BaseModel):
    teacher_id: UUID
    group_ids: List[UUID]
