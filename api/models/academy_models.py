from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

SuggestionStatus = Literal["pending", "approved", "dismissed", "implemented"]


class CourseOut(BaseModel):
    id: str
    title: str
    instructor: Optional[str] = None
    duration: Optional[str] = None
    lessons: int = 0
    category: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None  # hidden while locked
    pro_only: bool
    locked: bool = False

    class Config:
        from_attributes = True


class TutorialOut(BaseModel):
    id: str
    step: int
    title: str
    description: Optional[str] = None
    icon: Optional[str] = None
    video_url: Optional[str] = None

    class Config:
        from_attributes = True


class SuggestionIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)


class SuggestionUpdate(BaseModel):
    status: SuggestionStatus
    admin_notes: Optional[str] = None


class SuggestionOut(BaseModel):
    id: str
    user_id: str
    user_name: Optional[str] = None
    title: str
    content: str
    status: str
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
