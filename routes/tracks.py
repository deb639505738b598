import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from db.database import fetch_all, fetch_one, get_db, insert_row, new_id, update_row, utc_now_iso
from models.track import LessonCreate, TrackCreate, TrackUpdate
from routes.lessons import get_lesson_or_404, lesson_out
from utils.auth import get_current_user, is_admin, require_admin
from utils.slug import slugify

router = APIRouter()

TRACK_COLUMNS = (
    "t.id, t.title, t.slug, t.summary, t.ai_tutor_id, t.difficulty, t.estimated_hours, "
    "t.is_published, t.created_at, t.updated_at"
)


def track_out(row: dict) -> dict:
    track = dict(row)
    track["is_published"] = bool(track["is_published"])
    return track


def get_track_by_id(conn, track_id: str) -> Optional[dict]:
    return fetch_one(
        conn,
        f"SELECT {TRACK_COLUMNS} FROM tracks t WHERE t.id = :id AND t.deleted_at IS NULL",
        {"id": track_id},
    )


def get_track_by_slug(conn, slug: str) -> Optional[dict]:
    return fetch_one(
        conn,
        f"SELECT {TRACK_COLUMNS} FROM tracks t WHERE t.slug = :slug AND t.deleted_at IS NULL",
        {"slug": slug},
    )


@router.get("")
async def list_tracks(
    include_unpublished: bool = False,
    user: Optional[dict] = Depends(get_current_user),
    conn=Depends(get_db),
):
    published_filter = "" if include_unpublished and is_admin(user) else "AND t.is_published = 1"
    rows = fetch_all(
        conn,
        f"""
        SELECT {TRACK_COLUMNS},
               (SELECT COUNT(*) FROM lessons l WHERE l.track_id = t.id AND l.deleted_at IS NULL) AS lesson_count
        FROM tracks t
        WHERE t.deleted_at IS NULL {published_filter}
        ORDER BY t.title
        """,
    )
    return {"tracks": [track_out(row) for row in rows]}


@router.get("/{slug}")
async def get_track(slug: str, user: Optional[dict] = Depends(get_current_user), conn=Depends(get_db)):
    track = get_track_by_slug(conn, slug)
    if not track or (not track["is_published"] and not is_admin(user)):
        raise HTTPException(status_code=404, detail="Track not found")
    lessons = fetch_all(
        conn,
        """
        SELECT * FROM lessons
        WHERE track_id = :track_id AND deleted_at IS NULL
        ORDER BY position, created_at
        """,
        {"track_id": track["id"]},
    )
    tutor = None
    if track["ai_tutor_id"]:
        tutor = fetch_one(conn, "SELECT * FROM ai_tutors WHERE id = :id", {"id": track["ai_tutor_id"]})
    return {**track_out(track), "lessons": [lesson_out(row) for row in lessons], "ai_tutor": tutor}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_track(payload: TrackCreate, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    slug = slugify(payload.slug or payload.title, fallback="track")
    if fetch_one(conn, "SELECT id FROM tracks WHERE slug = :slug", {"slug": slug}):
        raise HTTPException(status_code=409, detail="A track with this slug already exists")
    now = utc_now_iso()
    track_id = new_id()
    try:
        insert_row(
            conn,
            "tracks",
            {
                "id": track_id,
                "title": payload.title,
                "slug": slug,
                "summary": payload.summary,
                "ai_tutor_id": payload.ai_tutor_id,
                "difficulty": payload.difficulty.value,
                "estimated_hours": payload.estimated_hours,
                "is_published": int(payload.is_published),
                "created_at": now,
                "updated_at": now,
            },
        )
        conn.commit()
    except IntegrityError:
        conn.rollback()
        raise HTTPException(status_code=409, detail="A track with this slug already exists")
    return track_out(get_track_by_id(conn, track_id))


@router.put("/{track_id}")
async def update_track(
    track_id: str, payload: TrackUpdate, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    if not get_track_by_id(conn, track_id):
        raise HTTPException(status_code=404, detail="Track not found")
    values = payload.model_dump(exclude_unset=True)
    if "slug" in values:
        values["slug"] = slugify(values["slug"] or "", fallback="track")
    if "difficulty" in values and values["difficulty"] is not None:
        values["difficulty"] = values["difficulty"].value
    if "is_published" in values:
        values["is_published"] = int(bool(values["is_published"]))
    values["updated_at"] = utc_now_iso()
    try:
        update_row(conn, "tracks", track_id, values, where="deleted_at IS NULL")
        conn.commit()
    except IntegrityError:
        conn.rollback()
        raise HTTPException(status_code=409, detail="A track with this slug already exists")
    return track_out(get_track_by_id(conn, track_id))


@router.delete("/{track_id}")
async def delete_track(track_id: str, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    now = utc_now_iso()
    if not update_row(conn, "tracks", track_id, {"deleted_at": now}, where="deleted_at IS NULL"):
        raise HTTPException(status_code=404, detail="Track not found")
    conn.execute(
        text("UPDATE lessons SET deleted_at = :deleted_at WHERE track_id = :track_id AND deleted_at IS NULL"),
        {"deleted_at": now, "track_id": track_id},
    )
    conn.commit()
    return {"deleted": True}


@router.post("/{track_id}/lessons", status_code=status.HTTP_201_CREATED)
async def create_lesson(
    track_id: str, payload: LessonCreate, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    if not get_track_by_id(conn, track_id):
        raise HTTPException(status_code=404, detail="Track not found")
    position = payload.position
    if position is None:
        row = fetch_one(
            conn,
            "SELECT COALESCE(MAX(position), 0) AS max_position FROM lessons WHERE track_id = :track_id",
            {"track_id": track_id},
        )
        position = int(row["max_position"]) + 1
    now = utc_now_iso()
    lesson_id = new_id()
    insert_row(
        conn,
        "lessons",
        {
            "id": lesson_id,
            "track_id": track_id,
            "title": payload.title,
            "position": position,
            "content": payload.content,
            "objectives": json.dumps(payload.objectives),
            "estimated_minutes": payload.estimated_minutes,
            "is_required": int(payload.is_required),
            "created_at": now,
            "updated_at": now,
        },
    )
    conn.commit()
    return lesson_out(get_lesson_or_404(conn, lesson_id))
