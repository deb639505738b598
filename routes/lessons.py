import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text

from db.database import fetch_all, fetch_one, get_db, insert_row, new_id, update_row, utc_now_iso
from models.quiz import QuizCreate
from models.track import LessonComplete, LessonUpdate
from utils.auth import get_current_user, is_admin, require_admin, require_user

router = APIRouter()


def lesson_out(row: dict) -> dict:
    lesson = dict(row)
    lesson.pop("deleted_at", None)
    try:
        lesson["objectives"] = json.loads(lesson.get("objectives") or "[]")
    except ValueError:
        lesson["objectives"] = []
    lesson["is_required"] = bool(lesson.get("is_required"))
    return lesson


def get_lesson_or_404(conn, lesson_id: str) -> dict:
    lesson = fetch_one(
        conn,
        """
        SELECT l.*, t.slug AS track_slug, t.is_published AS track_published
        FROM lessons l
        JOIN tracks t ON t.id = l.track_id
        WHERE l.id = :id AND l.deleted_at IS NULL AND t.deleted_at IS NULL
        """,
        {"id": lesson_id},
    )
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson


@router.get("/{lesson_id}")
async def get_lesson(lesson_id: str, user: Optional[dict] = Depends(get_current_user), conn=Depends(get_db)):
    lesson = get_lesson_or_404(conn, lesson_id)
    if not lesson.pop("track_published") and not is_admin(user):
        raise HTTPException(status_code=404, detail="Lesson not found")
    quizzes = fetch_all(
        conn,
        """
        SELECT q.id, q.title, q.exam_type, q.time_limit, q.passing_score,
               (SELECT COUNT(*) FROM questions qu WHERE qu.quiz_id = q.id) AS question_count
        FROM quizzes q
        WHERE q.lesson_id = :lesson_id
        ORDER BY q.created_at
        """,
        {"lesson_id": lesson_id},
    )
    result = lesson_out(lesson)
    result["quizzes"] = quizzes
    if user:
        result["progress"] = fetch_one(
            conn,
            "SELECT completed_at, score, time_spent FROM user_progress WHERE user_id = :user_id AND lesson_id = :lesson_id",
            {"user_id": user["id"], "lesson_id": lesson_id},
        )
    return result


@router.patch("/{lesson_id}")
async def update_lesson(
    lesson_id: str, payload: LessonUpdate, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    get_lesson_or_404(conn, lesson_id)
    values = payload.model_dump(exclude_unset=True)
    if "objectives" in values:
        values["objectives"] = json.dumps(values["objectives"] or [])
    if "is_required" in values:
        values["is_required"] = int(bool(values["is_required"]))
    values["updated_at"] = utc_now_iso()
    update_row(conn, "lessons", lesson_id, values)
    conn.commit()
    lesson = get_lesson_or_404(conn, lesson_id)
    lesson.pop("track_published")
    return lesson_out(lesson)


@router.delete("/{lesson_id}")
async def delete_lesson(lesson_id: str, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    if not update_row(conn, "lessons", lesson_id, {"deleted_at": utc_now_iso()}, where="deleted_at IS NULL"):
        raise HTTPException(status_code=404, detail="Lesson not found")
    conn.commit()
    return {"deleted": True}


@router.post("/{lesson_id}/complete")
async def complete_lesson(
    lesson_id: str,
    payload: Optional[LessonComplete] = None,
    user: dict = Depends(require_user),
    conn=Depends(get_db),
):
    get_lesson_or_404(conn, lesson_id)
    payload = payload or LessonComplete()
    now = utc_now_iso()
    conn.execute(
        text(
            """
            INSERT INTO user_progress (id, user_id, lesson_id, score, time_spent, completed_at)
            VALUES (:id, :user_id, :lesson_id, :score, :time_spent, :completed_at)
            ON CONFLICT(user_id, lesson_id) DO UPDATE SET
                score = COALESCE(excluded.score, user_progress.score),
                time_spent = COALESCE(excluded.time_spent, user_progress.time_spent),
                completed_at = excluded.completed_at
            """
        ),
        {
            "id": new_id(),
            "user_id": user["id"],
            "lesson_id": lesson_id,
            "score": payload.score,
            "time_spent": payload.time_spent,
            "completed_at": now,
        },
    )
    conn.commit()
    return {"lesson_id": lesson_id, "completed_at": now}


@router.post("/{lesson_id}/quizzes", status_code=status.HTTP_201_CREATED)
async def create_quiz(
    lesson_id: str, payload: QuizCreate, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    get_lesson_or_404(conn, lesson_id)
    quiz = {
        "id": new_id(),
        "lesson_id": lesson_id,
        "title": payload.title,
        "time_limit": payload.time_limit,
        "exam_type": payload.exam_type.value,
        "passing_score": payload.passing_score,
        "created_at": utc_now_iso(),
    }
    insert_row(conn, "quizzes", quiz)
    conn.commit()
    return quiz
