from typing import Dict, List, Optional

from fastapi import APIRouter, Depends

from db.database import fetch_all, get_db
from routes.lessons import lesson_out
from routes.tracks import track_out
from utils.auth import get_current_user, is_admin
from utils.search import like_pattern, tokenize_query

router = APIRouter()

SEARCH_LIMIT = 50


def _token_filters(tokens: List[str], columns: List[str], params: Dict[str, object]) -> List[str]:
    # every token must appear in at least one of the columns
    filters = []
    for index, token in enumerate(tokens):
        key = f"tok{index}"
        params[key] = like_pattern(token)
        matches = " OR ".join(f"LOWER(COALESCE({col}, '')) LIKE :{key} ESCAPE '\\'" for col in columns)
        filters.append(f"({matches})")
    return filters


@router.get("/search")
async def search_content(
    q: Optional[str] = None,
    user: Optional[dict] = Depends(get_current_user),
    conn=Depends(get_db),
):
    tokens = tokenize_query(q)
    if not tokens:
        return {"query": q or "", "tracks": [], "lessons": []}

    track_params: Dict[str, object] = {"limit": SEARCH_LIMIT}
    track_filters = ["t.deleted_at IS NULL"]
    lesson_params: Dict[str, object] = {"limit": SEARCH_LIMIT}
    lesson_filters = ["l.deleted_at IS NULL", "t.deleted_at IS NULL"]
    if not is_admin(user):
        track_filters.append("t.is_published = 1")
        lesson_filters.append("t.is_published = 1")
    track_filters += _token_filters(tokens, ["t.title", "t.summary"], track_params)
    lesson_filters += _token_filters(tokens, ["l.title", "l.content"], lesson_params)

    tracks = fetch_all(
        conn,
        f"""
        SELECT t.id, t.title, t.slug, t.summary, t.difficulty, t.estimated_hours, t.is_published,
               t.ai_tutor_id, t.created_at, t.updated_at
        FROM tracks t
        WHERE {" AND ".join(track_filters)}
        ORDER BY t.title
        LIMIT :limit
        """,
        track_params,
    )
    lessons = fetch_all(
        conn,
        f"""
        SELECT l.*, t.slug AS track_slug, t.title AS track_title
        FROM lessons l
        JOIN tracks t ON t.id = l.track_id
        WHERE {" AND ".join(lesson_filters)}
        ORDER BY t.title, l.position
        LIMIT :limit
        """,
        lesson_params,
    )
    return {
        "query": q,
        "tracks": [track_out(row) for row in tracks],
        "lessons": [lesson_out(row) for row in lessons],
    }
