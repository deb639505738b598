import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status

from db.database import get_db, new_id
from routes.lessons import get_lesson_or_404
from utils.auth import require_admin
from utils.generation import generate_lesson_pdf, generate_lesson_podcast

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{lesson_id}/generate/pdf", status_code=status.HTTP_202_ACCEPTED)
async def generate_pdf(
    lesson_id: str,
    background_tasks: BackgroundTasks,
    _admin: dict = Depends(require_admin),
    conn=Depends(get_db),
):
    get_lesson_or_404(conn, lesson_id)
    generation_id = new_id()
    background_tasks.add_task(generate_lesson_pdf, generation_id, lesson_id)
    logger.info("Queued PDF generation %s for lesson %s", generation_id, lesson_id)
    return {"generation_id": generation_id, "lesson_id": lesson_id, "type": "pdf"}


@router.post("/{lesson_id}/generate/podcast", status_code=status.HTTP_202_ACCEPTED)
async def generate_podcast(
    lesson_id: str,
    background_tasks: BackgroundTasks,
    _admin: dict = Depends(require_admin),
    conn=Depends(get_db),
):
    get_lesson_or_404(conn, lesson_id)
    generation_id = new_id()
    background_tasks.add_task(generate_lesson_podcast, generation_id, lesson_id)
    logger.info("Queued podcast generation %s for lesson %s", generation_id, lesson_id)
    return {"generation_id": generation_id, "lesson_id": lesson_id, "type": "podcast"}
