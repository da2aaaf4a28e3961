# app/backend/models/redis_models.py

from pydantic import BaseModel, Field
from datetime import datetime
from uuid import UUID


class UserSessionRedis(BaseModel):
    """
    Represents a logged-in user's session stored in Redis.
    A token is only honoured while its session key exists.
    """
    user_id: UUID = Field(..., description="The id of the user the session belongs to")
    session_id: UUID = Field(..., description="Unique identifier of the session, also carried in the JWT")
    session_start_time: datetime
    session_end_time: datetime
