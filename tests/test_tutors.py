from routes import tutors
from utils.llm import LLMUnavailableError


def test_build_system_prompt_includes_lesson_material():
    prompt = tutors.build_system_prompt(
        tutors.DEFAULT_TUTOR,
        {"title": "Diver Medic", "summary": "Emergency care"},
        {"title": "Oxygen Therapy", "content": "Give 100% oxygen."},
    )

    assert "Diver Medic" in prompt
    assert "Current lesson: Oxygen Therapy" in prompt
    assert "Give 100% oxygen." in prompt


def test_chat_uses_track_tutor(client, monkeypatch, admin_headers, published_track):
    tutor = client.post(
        "/api/tutors",
        json={"name": "Cpt. Reyes", "specialty": "surface supplied air"},
        headers=admin_headers,
    ).json()
    client.put(f"/api/tracks/{published_track['id']}", json={"ai_tutor_id": tutor["id"]}, headers=admin_headers)
    seen = {}

    def fake_chat(messages):
        seen["messages"] = messages
        return "Keep your umbilical tended."

    monkeypatch.setattr(tutors, "chat", fake_chat)

    response = client.post(
        f"/api/tracks/{published_track['slug']}/tutor/chat",
        json={"message": "Any tips?", "lesson_id": published_track["lesson"]["id"]},
    )

    assert response.status_code == 200
    assert response.json() == {
        "reply": "Keep your umbilical tended.",
        "tutor": {"id": tutor["id"], "name": "Cpt. Reyes", "specialty": "surface supplied air"},
    }
    assert "Cpt. Reyes" in seen["messages"][0]["content"]
    assert seen["messages"][1] == {"role": "user", "content": "Any tips?"}


def test_chat_reports_unavailable_provider(client, monkeypatch, published_track):
    def failing_chat(messages):
        raise LLMUnavailableError("no provider")

    monkeypatch.setattr(tutors, "chat", failing_chat)

    response = client.post(f"/api/tracks/{published_track['slug']}/tutor/chat", json={"message": "Hello"})

    assert response.status_code == 502
    assert response.json() == {"error": "AI tutor is unavailable"}


def test_empty_message_is_rejected(client, published_track):
    response = client.post(f"/api/tracks/{published_track['slug']}/tutor/chat", json={"message": "  "})

    assert response.status_code == 400
