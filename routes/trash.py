from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text

from db.database import fetch_all, fetch_one, get_db
from utils.auth import require_admin

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("")
async def trash_index(conn=Depends(get_db)):
    tracks = fetch_all(
        conn,
        """
        SELECT t.id, t.title, t.slug, t.deleted_at,
               (SELECT COUNT(*) FROM lessons l WHERE l.track_id = t.id) AS lesson_count
        FROM tracks t
        WHERE t.deleted_at IS NOT NULL
        ORDER BY t.deleted_at DESC
        """,
    )
    lessons = fetch_all(
        conn,
        """
        SELECT l.id, l.title, l.deleted_at, t.title AS track_title, t.id AS track_id,
               t.deleted_at AS track_deleted_at
        FROM lessons l
        JOIN tracks t ON t.id = l.track_id
        WHERE l.deleted_at IS NOT NULL
        ORDER BY l.deleted_at DESC
        """,
    )
    return {"tracks": tracks, "lessons": lessons}


@router.post("/tracks/{track_id}/restore")
async def restore_track(track_id: str, conn=Depends(get_db)):
    track = fetch_one(
        conn,
        "SELECT id, deleted_at FROM tracks WHERE id = :id AND deleted_at IS NOT NULL",
        {"id": track_id},
    )
    if not track:
        raise HTTPException(status_code=404, detail="Track not found")
    conn.execute(text("UPDATE tracks SET deleted_at = NULL WHERE id = :id"), {"id": track_id})
    # lessons deleted together with the track come back with it
    conn.execute(
        text("UPDATE lessons SET deleted_at = NULL WHERE track_id = :id AND deleted_at = :deleted_at"),
        {"id": track_id, "deleted_at": track["deleted_at"]},
    )
    conn.commit()
    return {"restored": True}


@router.post("/tracks/{track_id}/purge")
async def purge_track(track_id: str, conn=Depends(get_db)):
    result = conn.execute(
        text("DELETE FROM tracks WHERE id = :id AND deleted_at IS NOT NULL"),
        {"id": track_id},
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Track not found")
    conn.commit()
    return {"purged": True}


@router.post("/lessons/{lesson_id}/restore")
async def restore_lesson(lesson_id: str, conn=Depends(get_db)):
    lesson = fetch_one(
        conn,
        """
        SELECT l.id, t.deleted_at AS track_deleted_at
        FROM lessons l JOIN tracks t ON t.id = l.track_id
        WHERE l.id = :id AND l.deleted_at IS NOT NULL
        """,
        {"id": lesson_id},
    )
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    if lesson["track_deleted_at"]:
        raise HTTPException(status_code=409, detail="Restore the track first")
    conn.execute(text("UPDATE lessons SET deleted_at = NULL WHERE id = :id"), {"id": lesson_id})
    conn.commit()
    return {"restored": True}


@router.post("/lessons/{lesson_id}/purge")
async def purge_lesson(lesson_id: str, conn=Depends(get_db)):
    result = conn.execute(
        text("DELETE FROM lessons WHERE id = :id AND deleted_at IS NOT NULL"),
        {"id": lesson_id},
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Lesson not found")
    conn.commit()
    return {"purged": True}
