from pydantic import BaseModel, validator
from typing import List, Optional


class DeckCreate(BaseModel):
    name: str
    description: Optional[str] = None
    # shared decks have no owner; admin only
    shared: bool = False

    @validator('name')
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class DeckOptionsUpdate(BaseModel):
    new_per_day: Optional[int] = None
    reviews_per_day: Optional[int] = None
    learning_steps_minutes: Optional[List[int]] = None
    relearn_steps_minutes: Optional[List[int]] = None
    leech_threshold: Optional[int] = None
    bury_siblings: Optional[bool] = None

    @validator('learning_steps_minutes', 'relearn_steps_minutes')
    def validate_steps(cls, v):
        if v is not None and (not v or any(step <= 0 for step in v)):
            raise ValueError("Steps must be a non-empty list of positive minutes")
        return v


class CardCreate(BaseModel):
    deck_id: str
    front: str
    back: str
    tags: List[str] = []
    lesson_id: Optional[str] = None


class TagCreate(BaseModel):
    name: str


class ReviewSubmit(BaseModel):
    card_id: str
    grade: int
    user_id: Optional[str] = None
    duration_ms: Optional[int] = None
