from pydantic import BaseModel, Field
from typing import List, Optional
from uuid import UUID
from datetime import date


class ProgramCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: date
    end_date: date
    group_ids: List[UUID] = Field(..., min_length=1, description="The first group is the primary one.")
    # ISO dates only; weekday names are rejected by validation.
    disabled_days: List[date] = Field(default_factory=list)

class ProgramUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    disabled_days: Optional[List[date]] = None
    is_active: Optional[bool] = None
    group_ids: Optional[List[UUID]] = None
