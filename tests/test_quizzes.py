import pytest

from utils.grading import answer_matches, score_attempt

CONFIG = {"quizzes": {"free_text_threshold": 0.85}}


def test_multiple_choice_requires_exact_option():
    question = {"id": "q1", "correct_answer": "Nitrogen", "options": ["Oxygen", "Nitrogen"]}

    assert answer_matches(question, "  nitrogen ", 0.85) is True
    assert answer_matches(question, "Nitrogn", 0.85) is False
    assert answer_matches(question, "", 0.85) is False


def test_free_text_tolerates_typos():
    question = {"id": "q1", "correct_answer": "decompression sickness", "options": []}

    assert answer_matches(question, "decompresion sickness", 0.85) is True
    assert answer_matches(question, "barotrauma", 0.85) is False


def test_score_attempt_rounds_percentage():
    questions = [
        {"id": "a", "correct_answer": "1", "options": ["1", "2"]},
        {"id": "b", "correct_answer": "2", "options": ["1", "2"]},
        {"id": "c", "correct_answer": "3", "options": ["3", "4"]},
    ]

    score, results = score_attempt(questions, {"a": "1", "b": "2", "c": "4"}, CONFIG)

    assert score == 67
    assert [result["correct"] for result in results] == [True, True, False]


@pytest.fixture
def quiz(client, admin_headers, published_track):
    lesson_id = published_track["lesson"]["id"]
    created = client.post(
        f"/api/lessons/{lesson_id}/quizzes",
        json={"title": "Gas Laws Check", "passing_score": 50},
        headers=admin_headers,
    )
    assert created.status_code == 201
    quiz = created.json()
    question = client.post(
        f"/api/quizzes/{quiz['id']}/questions",
        json={
            "prompt": "Which law relates pressure and volume?",
            "options": ["Boyle's law", "Dalton's law", "Henry's law"],
            "correct_answer": "Boyle's law",
            "explanation": "At constant temperature P1V1 = P2V2.",
        },
        headers=admin_headers,
    )
    assert question.status_code == 201
    quiz["question"] = question.json()
    return quiz


def test_correct_answer_hidden_from_students(client, user_headers, quiz):
    response = client.get(f"/api/quizzes/{quiz['id']}", headers=user_headers)

    assert response.status_code == 200
    question = response.json()["questions"][0]
    assert question["options"] == ["Boyle's law", "Dalton's law", "Henry's law"]
    assert "correct_answer" not in question
    assert "explanation" not in question


def test_attempt_is_scored_and_stored(client, user_headers, quiz):
    question_id = quiz["question"]["id"]

    response = client.post(
        f"/api/quizzes/{quiz['id']}/attempts",
        json={"answers": {question_id: "Boyle's law"}, "time_spent": 40},
        headers=user_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["score"] == 100
    assert body["passed"] is True
    attempts = client.get(f"/api/quizzes/{quiz['id']}/attempts", headers=user_headers).json()["attempts"]
    assert [attempt["score"] for attempt in attempts] == [100]


def test_correct_answer_must_be_an_option(client, admin_headers, quiz):
    response = client.post(
        f"/api/quizzes/{quiz['id']}/questions",
        json={"prompt": "Max depth on air?", "options": ["30 m", "50 m"], "correct_answer": "60 m"},
        headers=admin_headers,
    )

    assert response.status_code == 400
