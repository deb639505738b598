from pydantic import BaseModel
from typing import Optional


class TutorCreate(BaseModel):
    name: str
    specialty: str
    description: Optional[str] = None


class ChatRequest(BaseModel):
    message: str
    lesson_id: Optional[str] = None
