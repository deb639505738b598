import asyncio

import pytest

from db import database
from utils import generation, media
from utils.notifier import hub


@pytest.fixture
def progress_events():
    events = []

    class Recorder:
        async def send_json(self, payload):
            events.append(payload)

    recorder = Recorder()
    hub.register(recorder)
    yield events
    hub.unregister(recorder)


def _lesson_row(lesson_id):
    with database.get_conn() as conn:
        return database.fetch_one(conn, "SELECT * FROM lessons WHERE id = :id", {"id": lesson_id})


def test_podcast_generation_attaches_audio(monkeypatch, published_track, progress_events):
    lesson_id = published_track["lesson"]["id"]
    monkeypatch.setattr(media, "write_podcast_script", lambda *args: "word " * 300)

    def fake_synthesize(script, destination):
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"ID3")
        return 3

    monkeypatch.setattr(media, "synthesize_speech", fake_synthesize)

    url = asyncio.run(generation.generate_lesson_podcast("gen-pod", lesson_id))

    assert url == "/uploads/podcasts/air-diver-certification-dive-physics.mp3"
    lesson = _lesson_row(lesson_id)
    assert lesson["podcast_url"] == url
    assert lesson["podcast_duration"] == 120
    statuses = [event["status"] for event in progress_events]
    assert statuses[0] == "initializing"
    assert statuses[-1] == "complete"
    assert progress_events[-1]["metadata"]["podcastUrl"] == url
    assert all(event["generationType"] == "podcast" for event in progress_events)


def test_pdf_generation_downloads_export(monkeypatch, published_track, progress_events):
    lesson_id = published_track["lesson"]["id"]
    monkeypatch.setattr(media, "start_pdf_generation", lambda *args: "job-1")
    monkeypatch.setattr(media, "poll_pdf_generation", lambda job_id: "https://cdn.example.com/lesson.pdf")

    def fake_download(url, destination):
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"%PDF-1.7")
        return 8

    monkeypatch.setattr(media, "download_file", fake_download)

    url = asyncio.run(generation.generate_lesson_pdf("gen-pdf", lesson_id))

    assert url == "/uploads/lessons/air-diver-certification-dive-physics.pdf"
    assert _lesson_row(lesson_id)["pdf_url"] == url
    assert progress_events[-1]["metadata"] == {"pdfUrl": url, "fileSizeBytes": 8}


def test_generation_failure_is_reported(published_track, progress_events):
    lesson_id = published_track["lesson"]["id"]

    url = asyncio.run(generation.generate_lesson_pdf("gen-fail", lesson_id))

    assert url is None
    assert progress_events[-1]["status"] == "error"
    assert "GAMMA_API_KEY" in progress_events[-1]["error"]
    assert _lesson_row(lesson_id)["pdf_url"] is None


def test_disk_error_during_podcast_is_reported(monkeypatch, published_track, progress_events):
    lesson_id = published_track["lesson"]["id"]
    monkeypatch.setattr(media, "write_podcast_script", lambda *args: "word " * 30)

    def full_disk(script, destination):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(media, "synthesize_speech", full_disk)

    url = asyncio.run(generation.generate_lesson_podcast("gen-disk", lesson_id))

    assert url is None
    assert progress_events[-1]["status"] == "error"
    assert "No space left on device" in progress_events[-1]["error"]
    assert _lesson_row(lesson_id)["podcast_url"] is None


def test_generate_endpoint_requires_admin(client, user_headers, published_track):
    lesson_id = published_track["lesson"]["id"]

    response = client.post(f"/api/lessons/{lesson_id}/generate/pdf", headers=user_headers)

    assert response.status_code == 403


def test_estimate_duration_seconds():
    assert media.estimate_duration_seconds("") == 1
    assert media.estimate_duration_seconds("word " * 150) == 60


def test_upload_path_for_maps_urls(monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path))

    assert media.upload_path_for("/uploads/podcasts/a.mp3") == tmp_path / "podcasts" / "a.mp3"
    assert media.upload_path_for("https://cdn.example.com/uploads/lessons/b.pdf") == tmp_path / "lessons" / "b.pdf"
    assert media.upload_path_for("https://cdn.example.com/other/c.pdf") is None
    assert media.upload_path_for(None) is None
