from pydantic import BaseModel, validator
from typing import List, Optional
from enum import Enum


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class TrackBase(BaseModel):
    title: str
    summary: Optional[str] = None
    difficulty: Difficulty = Difficulty.BEGINNER
    estimated_hours: int = 0
    is_published: bool = False
    ai_tutor_id: Optional[str] = None

    @validator('title')
    def validate_title(cls, v):
        if not v or not v.strip():
            raise ValueError("Title is required")
        return v.strip()


class TrackCreate(TrackBase):
    slug: Optional[str] = None


class TrackUpdate(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = None
    summary: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    estimated_hours: Optional[int] = None
    is_published: Optional[bool] = None
    ai_tutor_id: Optional[str] = None


class Track(TrackBase):
    id: str
    slug: str
    created_at: str
    updated_at: Optional[str] = None

    class Config:
        from_attributes = True


class LessonBase(BaseModel):
    title: str
    content: str = ""
    objectives: List[str] = []
    estimated_minutes: int = 30
    is_required: bool = True

    @validator('title')
    def validate_title(cls, v):
        if not v or not v.strip():
            raise ValueError("Title is required")
        return v.strip()


class LessonCreate(LessonBase):
    position: Optional[int] = None


class LessonUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    objectives: Optional[List[str]] = None
    estimated_minutes: Optional[int] = None
    is_required: Optional[bool] = None
    position: Optional[int] = None
    podcast_url: Optional[str] = None
    podcast_duration: Optional[int] = None
    pdf_url: Optional[str] = None


class Lesson(LessonBase):
    id: str
    track_id: str
    position: int
    podcast_url: Optional[str] = None
    podcast_duration: Optional[int] = None
    pdf_url: Optional[str] = None

    class Config:
        from_attributes = True


class LessonComplete(BaseModel):
    score: Optional[int] = None
    time_spent: Optional[int] = None
