from pydantic import BaseModel, validator
from typing import Dict, List, Optional
from enum import Enum


class ExamType(str, Enum):
    QUIZ = "QUIZ"
    EXAM = "EXAM"
    PRACTICE = "PRACTICE"


class QuizCreate(BaseModel):
    title: str
    time_limit: int = 30
    exam_type: ExamType = ExamType.QUIZ
    passing_score: int = 70

    @validator('passing_score')
    def validate_passing_score(cls, v):
        if v < 0 or v > 100:
            raise ValueError("Passing score must be between 0 and 100")
        return v


class QuestionCreate(BaseModel):
    prompt: str
    options: List[str] = []
    correct_answer: str
    explanation: Optional[str] = None
    position: Optional[int] = None

    @validator('correct_answer')
    def validate_correct_answer(cls, v, values):
        options = values.get('options') or []
        if options and v not in options:
            raise ValueError("Correct answer must be one of the options")
        return v


class Question(BaseModel):
    id: str
    quiz_id: str
    prompt: str
    options: List[str]
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    position: int

    class Config:
        from_attributes = True


class AttemptCreate(BaseModel):
    # question id -> answer text
    answers: Dict[str, str]
    time_spent: Optional[int] = None
