import json
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from db.database import fetch_all, fetch_one, get_db, insert_row, new_id, utc_now_iso
from models.quiz import AttemptCreate, QuestionCreate
from utils.auth import get_current_user, is_admin, require_admin, require_user
from utils.grading import score_attempt

router = APIRouter()


def _question_out(row: dict, reveal: bool) -> dict:
    question = dict(row)
    try:
        question["options"] = json.loads(question.get("options") or "[]")
    except ValueError:
        question["options"] = []
    if not reveal:
        question.pop("correct_answer", None)
        question.pop("explanation", None)
    return question


def _load_questions(conn, quiz_id: str) -> List[dict]:
    return fetch_all(
        conn,
        "SELECT * FROM questions WHERE quiz_id = :quiz_id ORDER BY position, created_at",
        {"quiz_id": quiz_id},
    )


def _get_quiz_or_404(conn, quiz_id: str) -> dict:
    quiz = fetch_one(
        conn,
        """
        SELECT q.*, t.is_published AS track_published
        FROM quizzes q
        JOIN lessons l ON l.id = q.lesson_id
        JOIN tracks t ON t.id = l.track_id
        WHERE q.id = :id AND l.deleted_at IS NULL AND t.deleted_at IS NULL
        """,
        {"id": quiz_id},
    )
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz


@router.get("/lesson/{lesson_id}")
async def quizzes_for_lesson(lesson_id: str, user: Optional[dict] = Depends(get_current_user), conn=Depends(get_db)):
    lesson = fetch_one(
        conn,
        """
        SELECT l.id, t.is_published AS track_published
        FROM lessons l JOIN tracks t ON t.id = l.track_id
        WHERE l.id = :id AND l.deleted_at IS NULL AND t.deleted_at IS NULL
        """,
        {"id": lesson_id},
    )
    reveal = is_admin(user)
    if not lesson or (not lesson["track_published"] and not reveal):
        raise HTTPException(status_code=404, detail="Lesson not found")
    quizzes = fetch_all(
        conn,
        "SELECT * FROM quizzes WHERE lesson_id = :lesson_id ORDER BY created_at",
        {"lesson_id": lesson_id},
    )
    for quiz in quizzes:
        quiz["questions"] = [_question_out(row, reveal) for row in _load_questions(conn, quiz["id"])]
    return {"quizzes": quizzes}


@router.get("/{quiz_id}")
async def get_quiz(quiz_id: str, user: Optional[dict] = Depends(get_current_user), conn=Depends(get_db)):
    quiz = _get_quiz_or_404(conn, quiz_id)
    reveal = is_admin(user)
    if not quiz.pop("track_published") and not reveal:
        raise HTTPException(status_code=404, detail="Quiz not found")
    quiz["questions"] = [_question_out(row, reveal) for row in _load_questions(conn, quiz_id)]
    return quiz


@router.post("/{quiz_id}/questions", status_code=status.HTTP_201_CREATED)
async def add_question(
    quiz_id: str, payload: QuestionCreate, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    _get_quiz_or_404(conn, quiz_id)
    position = payload.position
    if position is None:
        row = fetch_one(
            conn,
            "SELECT COALESCE(MAX(position), 0) AS max_position FROM questions WHERE quiz_id = :quiz_id",
            {"quiz_id": quiz_id},
        )
        position = int(row["max_position"]) + 1
    question = {
        "id": new_id(),
        "quiz_id": quiz_id,
        "prompt": payload.prompt,
        "options": json.dumps(payload.options),
        "correct_answer": payload.correct_answer,
        "explanation": payload.explanation,
        "position": position,
        "created_at": utc_now_iso(),
    }
    insert_row(conn, "questions", question)
    conn.commit()
    return _question_out(question, reveal=True)


@router.post("/{quiz_id}/attempts", status_code=status.HTTP_201_CREATED)
async def submit_attempt(
    quiz_id: str, payload: AttemptCreate, user: dict = Depends(require_user), conn=Depends(get_db)
):
    quiz = _get_quiz_or_404(conn, quiz_id)
    questions = [_question_out(row, reveal=True) for row in _load_questions(conn, quiz_id)]
    if not questions:
        raise HTTPException(status_code=400, detail="Quiz has no questions")
    score, results = score_attempt(questions, payload.answers)
    passed = score >= quiz["passing_score"]
    attempt_id = new_id()
    completed_at = utc_now_iso()
    insert_row(
        conn,
        "quiz_attempts",
        {
            "id": attempt_id,
            "user_id": user["id"],
            "quiz_id": quiz_id,
            "score": score,
            "passed": int(passed),
            "answers": json.dumps(payload.answers),
            "time_spent": payload.time_spent,
            "completed_at": completed_at,
        },
    )
    conn.commit()
    return {
        "id": attempt_id,
        "quiz_id": quiz_id,
        "score": score,
        "passed": passed,
        "passing_score": quiz["passing_score"],
        "results": results,
        "completed_at": completed_at,
    }


@router.get("/{quiz_id}/attempts")
async def list_attempts(quiz_id: str, user: dict = Depends(require_user), conn=Depends(get_db)):
    _get_quiz_or_404(conn, quiz_id)
    rows = fetch_all(
        conn,
        """
        SELECT id, score, passed, time_spent, completed_at FROM quiz_attempts
        WHERE quiz_id = :quiz_id AND user_id = :user_id
        ORDER BY completed_at DESC
        """,
        {"quiz_id": quiz_id, "user_id": user["id"]},
    )
    for row in rows:
        row["passed"] = bool(row["passed"])
    return {"attempts": rows}
