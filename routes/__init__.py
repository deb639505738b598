# Routes package __init__.py - re-exports routers for main.py convenience
from .auth import router as auth_router
from .tracks import router as tracks_router
from .lessons import router as lessons_router
from .quizzes import router as quizzes_router
from .srs import router as srs_router, analytics_router
from .equipment import router as equipment_router
from .sponsors import router as sponsors_router
from .affiliates import router as affiliates_router
from .webhooks import router as webhooks_router

__all__ = [
    'auth_router', 'tracks_router', 'lessons_router', 'quizzes_router', 'srs_router',
    'analytics_router', 'equipment_router', 'sponsors_router', 'affiliates_router', 'webhooks_router',
]
