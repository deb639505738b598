import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from starlette.concurrency import run_in_threadpool

from db.database import fetch_all, fetch_one, get_db, insert_row, new_id, utc_now_iso
from models.tutor import ChatRequest, TutorCreate
from utils.auth import get_current_user, is_admin, require_admin
from utils.llm import LLMUnavailableError, chat

logger = logging.getLogger(__name__)

router = APIRouter()

LESSON_CONTEXT_CHARS = 4000
DEFAULT_TUTOR = {
    "id": None,
    "name": "DiverWell Tutor",
    "specialty": "commercial diving",
    "description": "A patient instructor for commercial diving students.",
}


def build_system_prompt(tutor: dict, track: dict, lesson: Optional[dict] = None) -> str:
    parts = [
        f"You are {tutor['name']}, an AI tutor specialising in {tutor['specialty']}.",
        tutor.get("description") or "",
        f"The student is studying the track \"{track['title']}\".",
    ]
    if track.get("summary"):
        parts.append(f"Track summary: {track['summary']}")
    if lesson:
        parts.append(f"Current lesson: {lesson['title']}")
        if lesson.get("content"):
            parts.append(f"Lesson material:\n{lesson['content'][:LESSON_CONTEXT_CHARS]}")
    parts.append(
        "Answer clearly and accurately. Put diver safety first and refer students to their "
        "supervisor or the relevant standard when a question concerns live operations."
    )
    return "\n\n".join(part for part in parts if part)


@router.get("/tutors")
async def list_tutors(conn=Depends(get_db)):
    return {"tutors": fetch_all(conn, "SELECT * FROM ai_tutors ORDER BY name")}


@router.post("/tutors", status_code=status.HTTP_201_CREATED)
async def create_tutor(payload: TutorCreate, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    if not payload.name.strip() or not payload.specialty.strip():
        raise HTTPException(status_code=400, detail="Name and specialty are required")
    tutor = {
        "id": new_id(),
        "name": payload.name.strip(),
        "specialty": payload.specialty.strip(),
        "description": payload.description,
        "created_at": utc_now_iso(),
    }
    insert_row(conn, "ai_tutors", tutor)
    conn.commit()
    return tutor


@router.get("/tutors/{tutor_id}")
async def get_tutor(tutor_id: str, conn=Depends(get_db)):
    tutor = fetch_one(conn, "SELECT * FROM ai_tutors WHERE id = :id", {"id": tutor_id})
    if not tutor:
        raise HTTPException(status_code=404, detail="Tutor not found")
    tutor["tracks"] = fetch_all(
        conn,
        "SELECT id, title, slug FROM tracks WHERE ai_tutor_id = :id AND deleted_at IS NULL ORDER BY title",
        {"id": tutor_id},
    )
    return tutor


@router.delete("/tutors/{tutor_id}")
async def delete_tutor(tutor_id: str, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    result = conn.execute(text("DELETE FROM ai_tutors WHERE id = :id"), {"id": tutor_id})
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Tutor not found")
    conn.commit()
    return {"deleted": True}


@router.post("/tracks/{slug}/tutor/chat")
async def tutor_chat(
    slug: str,
    payload: ChatRequest,
    user: Optional[dict] = Depends(get_current_user),
    conn=Depends(get_db),
):
    message = payload.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    track = fetch_one(
        conn,
        "SELECT id, title, summary, ai_tutor_id, is_published FROM tracks WHERE slug = :slug AND deleted_at IS NULL",
        {"slug": slug},
    )
    if not track or (not track["is_published"] and not is_admin(user)):
        raise HTTPException(status_code=404, detail="Track not found")
    tutor = None
    if track["ai_tutor_id"]:
        tutor = fetch_one(conn, "SELECT id, name, specialty, description FROM ai_tutors WHERE id = :id",
                          {"id": track["ai_tutor_id"]})
    tutor = tutor or DEFAULT_TUTOR
    lesson = None
    if payload.lesson_id:
        lesson = fetch_one(
            conn,
            "SELECT id, title, content FROM lessons WHERE id = :id AND track_id = :track_id AND deleted_at IS NULL",
            {"id": payload.lesson_id, "track_id": track["id"]},
        )
        if not lesson:
            raise HTTPException(status_code=404, detail="Lesson not found")
    messages = [
        {"role": "system", "content": build_system_prompt(tutor, track, lesson)},
        {"role": "user", "content": message},
    ]
    try:
        reply = await run_in_threadpool(chat, messages)
    except LLMUnavailableError as exc:
        logger.error("Tutor chat for %s failed: %s", slug, exc)
        raise HTTPException(status_code=502, detail="AI tutor is unavailable")
    return {"reply": reply, "tutor": {"id": tutor["id"], "name": tutor["name"], "specialty": tutor["specialty"]}}
