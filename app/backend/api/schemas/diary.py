from pydantic import BaseModel, Field
from typing import Optional, Union
from datetime import date


class DiarySubmitRequest(BaseModel):
    entry_date: date
    text_report: Optional[str] = Field(None, max_length=5000)
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)
    is_submitted: bool = Field(True, description="False saves the entry as a draft.")


class DiaryUpdateRequest(BaseModel):
    text_report: Optional[str] = Field(None, max_length=5000)
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)
    is_submitted: Optional[bool] = None


class MarkRequest(BaseModel):
    # Any number is accepted here; range and integer checks happen in the service.
    mark: Union[int, float]
    comment: Optional[str] = Field(None, max_length=1000)
