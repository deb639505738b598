from .user import User, UserCreate, LoginRequest
from .track import Track, TrackCreate, TrackUpdate, Lesson, LessonCreate, LessonUpdate
from .quiz import QuizCreate, QuestionCreate, Question, AttemptCreate
from .srs import DeckCreate, DeckOptionsUpdate, CardCreate, ReviewSubmit
from .generation import GenerationProgress, GenerationStatus, GenerationType

__all__ = [
    'User', 'UserCreate', 'LoginRequest',
    'Track', 'TrackCreate', 'TrackUpdate', 'Lesson', 'LessonCreate', 'LessonUpdate',
    'QuizCreate', 'QuestionCreate', 'Question', 'AttemptCreate',
    'DeckCreate', 'DeckOptionsUpdate', 'CardCreate', 'ReviewSubmit',
    'GenerationProgress', 'GenerationStatus', 'GenerationType',
]
