"""Blocking HTTP calls for lesson PDF and podcast generation.

These run in a worker thread; utils.generation drives them and reports
progress.
"""
import logging
import os
from pathlib import Path
from typing import Optional

import requests

from config import load_config
from utils.llm import LLMUnavailableError, chat

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 150
TTS_MAX_CHARS = 4000
DONE_STATUSES = ("completed", "done", "success", "finished")
FAILED_STATUSES = ("failed", "error", "cancelled")


class MediaGenerationError(RuntimeError):
    pass


def uploads_root() -> Path:
    return Path(load_config()["media"]["uploads_dir"])


def upload_path_for(url: Optional[str]) -> Optional[Path]:
    """Map a '/uploads/...' URL (or absolute URL with that path) to the local file."""
    if not url:
        return None
    path = url
    if url.startswith(("http://", "https://")):
        path = "/" + url.split("://", 1)[1].partition("/")[2]
    if not path.startswith("/"):
        path = "/" + path
    if not path.startswith("/uploads/"):
        return None
    return uploads_root() / path[len("/uploads/"):]


def _media_cfg() -> dict:
    return load_config()["media"]


def start_pdf_generation(track_title: str, lesson_title: str, content: str) -> str:
    api_key = os.getenv("GAMMA_API_KEY")
    cfg = _media_cfg()
    if not api_key or not cfg["pdf_api_url"]:
        raise MediaGenerationError("GAMMA_API_KEY and media.pdf_api_url are required to generate PDFs")
    try:
        response = requests.post(
            cfg["pdf_api_url"],
            headers={"X-API-KEY": api_key},
            json={"inputText": f"{track_title} - {lesson_title}\n\n{content}", "exportAs": "pdf"},
            timeout=cfg["timeout"],
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise MediaGenerationError(f"PDF service request failed: {exc}") from exc
    job_id = data.get("generationId") or data.get("id")
    if not job_id:
        raise MediaGenerationError("PDF service did not return a generation id")
    return job_id


def poll_pdf_generation(job_id: str) -> Optional[str]:
    """Return the export URL once the job finished, None while it is still running."""
    api_key = os.getenv("GAMMA_API_KEY")
    cfg = _media_cfg()
    try:
        response = requests.get(
            f"{cfg['pdf_api_url'].rstrip('/')}/{job_id}",
            headers={"X-API-KEY": api_key},
            timeout=cfg["timeout"],
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise MediaGenerationError(f"PDF status request failed: {exc}") from exc
    status = str(data.get("status", "")).lower()
    if status in FAILED_STATUSES:
        raise MediaGenerationError(f"PDF generation {status}")
    if status in DONE_STATUSES:
        url = data.get("pdfUrl") or data.get("exportUrl") or data.get("fileUrl") or data.get("url")
        if not url:
            raise MediaGenerationError("PDF generation finished without a download URL")
        return url
    return None


def download_file(url: str, destination: Path) -> int:
    """Stream a remote file to disk and return its size in bytes."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        with requests.get(url, stream=True, timeout=_media_cfg()["timeout"]) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=65536):
                    f.write(chunk)
    except requests.RequestException as exc:
        raise MediaGenerationError(f"Download failed: {exc}") from exc
    return destination.stat().st_size


def write_podcast_script(track_title: str, lesson_title: str, content: str) -> str:
    messages = [
        {
            "role": "system",
            "content": "You write concise, spoken-style training podcast scripts for commercial divers.",
        },
        {
            "role": "user",
            "content": (
                f"Track: {track_title}\nLesson: {lesson_title}\n\n"
                f"Turn this lesson into a single-narrator podcast script of about 600 words:\n\n{content[:12000]}"
            ),
        },
    ]
    try:
        return chat(messages, max_tokens=1200)
    except LLMUnavailableError as exc:
        raise MediaGenerationError(str(exc)) from exc


def synthesize_speech(script: str, destination: Path) -> int:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise MediaGenerationError("OPENAI_API_KEY is required to generate podcasts")
    config = load_config()
    cfg = config["media"]
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        response = requests.post(
            f"{config['ai']['base_url']}/audio/speech",
            headers={"Authorization": f"Bearer {api_key}"},
            json={"model": cfg["tts_model"], "voice": cfg["tts_voice"], "input": script[:TTS_MAX_CHARS]},
            timeout=cfg["timeout"],
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        raise MediaGenerationError(f"Speech synthesis failed: {exc}") from exc
    destination.write_bytes(response.content)
    return len(response.content)


def estimate_duration_seconds(script: str) -> int:
    words = len(script.split())
    return max(1, round(words / WORDS_PER_MINUTE * 60))


def check_remote_file(url: str, timeout: float = 5) -> bool:
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException:
        return False
    return response.ok
