import asyncio

from db import database
from utils import integrity


def _audit(slugs, **kwargs):
    with database.get_conn() as conn:
        return integrity.run_audit(conn, slugs=slugs, **kwargs)


def test_missing_track_is_critical():
    summary = _audit(["ndt-inspection"])

    assert summary["ok"] is False
    assert summary["blocking_issues"] == 1
    assert summary["issues"][0]["type"] == "missing_track"
    assert summary["stats"]["missing_lessons"] == 12


def test_lesson_without_quiz_or_media(published_track):
    summary = _audit([published_track["slug"]])

    types = sorted(issue["type"] for issue in summary["issues"])
    assert types == ["missing_pdf_url", "missing_podcast_url", "missing_quiz"]
    assert summary["blocking_issues"] == 1
    assert summary["warning_issues"] == 2
    assert {repair["kind"] for repair in summary["repairs"]} == {"pdf", "podcast"}


def test_thin_quiz_and_missing_local_file(client, admin_headers, published_track):
    lesson_id = published_track["lesson"]["id"]
    quiz = client.post(f"/api/lessons/{lesson_id}/quizzes", json={"title": "Check"}, headers=admin_headers).json()
    client.post(
        f"/api/quizzes/{quiz['id']}/questions",
        json={"prompt": "PO2 limit?", "options": ["1.4", "2.0"], "correct_answer": "1.4"},
        headers=admin_headers,
    )
    client.patch(
        f"/api/lessons/{lesson_id}",
        json={"pdf_url": "/uploads/lessons/gone.pdf", "podcast_url": "https://cdn.example.com/ep1.mp3"},
        headers=admin_headers,
    )

    summary = _audit([published_track["slug"]], check_remote=False)

    assert summary["ok"] is True
    types = sorted(issue["type"] for issue in summary["issues"])
    assert types == ["insufficient_questions", "missing_pdf_file"]
    assert summary["repairs"] == [{"lesson_id": lesson_id, "kind": "pdf"}]


def test_unreachable_remote_media(monkeypatch, client, admin_headers, published_track):
    lesson_id = published_track["lesson"]["id"]
    client.patch(
        f"/api/lessons/{lesson_id}",
        json={"pdf_url": "https://cdn.example.com/l.pdf", "podcast_url": "https://cdn.example.com/ep1.mp3"},
        headers=admin_headers,
    )
    monkeypatch.setattr(integrity.media, "check_remote_file", lambda url, timeout: url.endswith(".pdf"))

    summary = _audit([published_track["slug"]], check_remote=True)

    assert "unreachable_podcast_url" in [issue["type"] for issue in summary["issues"]]
    assert "unreachable_pdf_url" not in [issue["type"] for issue in summary["issues"]]


def test_send_alert_without_webhook_is_skipped():
    assert integrity.send_alert(_audit(["alst"]), trigger="test") is False


def test_send_alert_posts_summary(monkeypatch):
    posted = {}

    class Response:
        def raise_for_status(self):
            return None

    def fake_post(url, json, timeout):
        posted.update(url=url, payload=json)
        return Response()

    monkeypatch.setenv("CONTENT_ALERT_WEBHOOK_URL", "https://hooks.example.com/alerts")
    monkeypatch.setattr(integrity.requests, "post", fake_post)

    assert integrity.send_alert(_audit(["alst"]), trigger="cli") is True
    assert posted["url"] == "https://hooks.example.com/alerts"
    assert posted["payload"]["trigger"] == "cli"
    assert posted["payload"]["blocking_issues"] == 1


def test_audit_endpoint_is_admin_only(client, user_headers, admin_headers):
    assert client.post("/api/admin/content-integrity", json={}, headers=user_headers).status_code == 403

    response = client.post("/api/admin/content-integrity", json={"slugs": ["lst"]}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["alert_sent"] is False
    assert response.json()["issues"][0]["track_slug"] == "lst"


def test_remote_checks_run_off_the_event_loop(monkeypatch, client, admin_headers, published_track):
    lesson_id = published_track["lesson"]["id"]
    client.patch(
        f"/api/lessons/{lesson_id}",
        json={"podcast_url": "https://cdn.example.com/ep1.mp3"},
        headers=admin_headers,
    )
    loop_running = []

    def fake_head(url, timeout):
        try:
            asyncio.get_running_loop()
            loop_running.append(True)
        except RuntimeError:
            loop_running.append(False)
        return True

    monkeypatch.setattr(integrity.media, "check_remote_file", fake_head)

    response = client.post(
        "/api/admin/content-integrity",
        json={"slugs": [published_track["slug"]], "check_remote": True},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert loop_running == [False]
