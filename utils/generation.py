import asyncio
import logging
from typing import Any, Dict, Optional

from starlette.concurrency import run_in_threadpool

from config import load_config
from db.database import fetch_one, get_conn, update_row, utc_now_iso
from models.generation import GenerationStatus, GenerationType
from utils import media
from utils.notifier import hub
from utils.slug import slugify

logger = logging.getLogger(__name__)


def load_lesson_for_generation(lesson_id: str) -> Optional[dict]:
    with get_conn() as conn:
        return fetch_one(
            conn,
            """
            SELECT l.id, l.title, l.content, t.title AS track_title, t.slug AS track_slug
            FROM lessons l
            JOIN tracks t ON t.id = l.track_id
            WHERE l.id = :id AND l.deleted_at IS NULL
            """,
            {"id": lesson_id},
        )


def set_lesson_media(lesson_id: str, values: Dict[str, Any]) -> None:
    with get_conn() as conn:
        update_row(conn, "lessons", lesson_id, {**values, "updated_at": utc_now_iso()})
        conn.commit()


def _media_filename(lesson: dict, extension: str) -> str:
    return f"{lesson['track_slug']}-{slugify(lesson['title'], 'lesson')}.{extension}"


def _require_lesson(lesson_id: str) -> dict:
    lesson = load_lesson_for_generation(lesson_id)
    if not lesson:
        raise media.MediaGenerationError("Lesson not found")
    if not (lesson["content"] or "").strip():
        raise media.MediaGenerationError("Lesson has no content to generate from")
    return lesson


async def generate_lesson_pdf(generation_id: str, lesson_id: str) -> Optional[str]:
    """Generate, download and attach a lesson PDF, reporting progress on the hub."""
    kind = GenerationType.PDF
    try:
        await hub.emit_status(generation_id, kind, GenerationStatus.INITIALIZING, "Loading lesson", lesson_id)
        lesson = _require_lesson(lesson_id)
        await hub.emit_status(generation_id, kind, GenerationStatus.EXTRACTING, "Preparing lesson content", lesson_id)
        await hub.emit_status(generation_id, kind, GenerationStatus.GENERATING, "Submitting to PDF service", lesson_id)
        job_id = await run_in_threadpool(
            media.start_pdf_generation, lesson["track_title"], lesson["title"], lesson["content"]
        )
        cfg = load_config()["media"]
        export_url = None
        for attempt in range(1, cfg["poll_attempts"] + 1):
            await hub.emit_status(
                generation_id, kind, GenerationStatus.POLLING,
                f"Waiting for PDF ({attempt}/{cfg['poll_attempts']})", lesson_id,
            )
            export_url = await run_in_threadpool(media.poll_pdf_generation, job_id)
            if export_url:
                break
            await asyncio.sleep(cfg["poll_interval_seconds"])
        if not export_url:
            raise media.MediaGenerationError("PDF generation timed out")
        await hub.emit_status(generation_id, kind, GenerationStatus.DOWNLOADING, "Downloading PDF", lesson_id)
        filename = _media_filename(lesson, "pdf")
        size = await run_in_threadpool(media.download_file, export_url, media.uploads_root() / "lessons" / filename)
        url = f"/uploads/lessons/{filename}"
        set_lesson_media(lesson_id, {"pdf_url": url})
    except media.MediaGenerationError as exc:
        logger.error("PDF generation %s failed: %s", generation_id, exc)
        await hub.emit_error(generation_id, kind, str(exc), lesson_id)
        return None
    except Exception as exc:
        logger.exception("PDF generation %s failed unexpectedly", generation_id)
        await hub.emit_error(generation_id, kind, f"PDF generation failed: {exc}", lesson_id)
        return None
    logger.info("PDF generation %s complete: %s", generation_id, url)
    await hub.emit_complete(generation_id, kind, lesson_id, {"pdfUrl": url, "fileSizeBytes": size})
    return url


async def generate_lesson_podcast(generation_id: str, lesson_id: str) -> Optional[str]:
    """Write a script, synthesize it and attach the audio to the lesson."""
    kind = GenerationType.PODCAST
    try:
        await hub.emit_status(generation_id, kind, GenerationStatus.INITIALIZING, "Loading lesson", lesson_id)
        lesson = _require_lesson(lesson_id)
        await hub.emit_status(generation_id, kind, GenerationStatus.EXTRACTING, "Preparing lesson content", lesson_id)
        await hub.emit_status(generation_id, kind, GenerationStatus.GENERATING, "Writing podcast script", lesson_id)
        script = await run_in_threadpool(
            media.write_podcast_script, lesson["track_title"], lesson["title"], lesson["content"]
        )
        await hub.emit_status(generation_id, kind, GenerationStatus.GENERATING, "Synthesizing audio", lesson_id)
        filename = _media_filename(lesson, "mp3")
        size = await run_in_threadpool(media.synthesize_speech, script, media.uploads_root() / "podcasts" / filename)
        await hub.emit_status(generation_id, kind, GenerationStatus.DOWNLOADING, "Saving audio", lesson_id)
        duration = media.estimate_duration_seconds(script)
        url = f"/uploads/podcasts/{filename}"
        set_lesson_media(lesson_id, {"podcast_url": url, "podcast_duration": duration})
    except media.MediaGenerationError as exc:
        logger.error("Podcast generation %s failed: %s", generation_id, exc)
        await hub.emit_error(generation_id, kind, str(exc), lesson_id)
        return None
    except Exception as exc:
        logger.exception("Podcast generation %s failed unexpectedly", generation_id)
        await hub.emit_error(generation_id, kind, f"Podcast generation failed: {exc}", lesson_id)
        return None
    logger.info("Podcast generation %s complete: %s", generation_id, url)
    await hub.emit_complete(
        generation_id, kind, lesson_id,
        {"podcastUrl": url, "durationSeconds": duration, "fileSizeBytes": size},
    )
    return url
