def test_created_track_is_fetchable_by_slug(client, admin_headers, published_track):
    response = client.get(f"/api/tracks/{published_track['slug']}")

    assert response.status_code == 200
    body = response.json()
    assert body["slug"] == "air-diver-certification"
    assert body["title"] == "Air Diver Certification"
    assert body["is_published"] is True
    assert [lesson["title"] for lesson in body["lessons"]] == ["Dive Physics"]
    assert body["lessons"][0]["objectives"] == ["Gas laws"]
    assert body["lessons"][0]["position"] == 1


def test_duplicate_slug_conflicts(client, admin_headers, published_track):
    response = client.post("/api/tracks", json={"title": "Air Diver Certification"}, headers=admin_headers)

    assert response.status_code == 409
    assert "error" in response.json()


def test_unpublished_track_hidden_from_students(client, admin_headers, user_headers):
    created = client.post("/api/tracks", json={"title": "Saturation Diving"}, headers=admin_headers)
    assert created.status_code == 201

    assert client.get("/api/tracks/saturation-diving", headers=user_headers).status_code == 404
    assert client.get("/api/tracks/saturation-diving", headers=admin_headers).status_code == 200
    listed = client.get("/api/tracks", headers=user_headers).json()["tracks"]
    assert all(track["slug"] != "saturation-diving" for track in listed)


def test_students_cannot_create_tracks(client, user_headers):
    response = client.post("/api/tracks", json={"title": "ALST"}, headers=user_headers)

    assert response.status_code == 403


def test_missing_title_is_invalid_data(client, admin_headers):
    response = client.post("/api/tracks", json={"summary": "no title"}, headers=admin_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid data"
    assert body["details"]


def test_soft_deleted_track_goes_to_trash_and_restores(client, admin_headers, published_track):
    slug = published_track["slug"]
    assert client.delete(f"/api/tracks/{published_track['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/tracks/{slug}").status_code == 404

    trash = client.get("/api/admin/trash", headers=admin_headers).json()
    assert [track["id"] for track in trash["tracks"]] == [published_track["id"]]
    assert [lesson["id"] for lesson in trash["lessons"]] == [published_track["lesson"]["id"]]

    lesson_restore = client.post(
        f"/api/admin/trash/lessons/{published_track['lesson']['id']}/restore", headers=admin_headers
    )
    assert lesson_restore.status_code == 409

    restored = client.post(f"/api/admin/trash/tracks/{published_track['id']}/restore", headers=admin_headers)
    assert restored.status_code == 200
    body = client.get(f"/api/tracks/{slug}").json()
    assert [lesson["id"] for lesson in body["lessons"]] == [published_track["lesson"]["id"]]


def test_purge_only_removes_trashed_tracks(client, admin_headers, published_track):
    purge_url = f"/api/admin/trash/tracks/{published_track['id']}/purge"
    assert client.post(purge_url, headers=admin_headers).status_code == 404

    client.delete(f"/api/tracks/{published_track['id']}", headers=admin_headers)
    assert client.post(purge_url, headers=admin_headers).status_code == 200
    assert client.get("/api/admin/trash", headers=admin_headers).json() == {"tracks": [], "lessons": []}


def test_lesson_completion_is_recorded_once(client, user_headers, published_track):
    lesson_id = published_track["lesson"]["id"]
    first = client.post(f"/api/lessons/{lesson_id}/complete", json={}, headers=user_headers)
    second = client.post(f"/api/lessons/{lesson_id}/complete", json={"score": 90}, headers=user_headers)

    assert first.status_code == 200
    assert second.status_code == 200
    lesson = client.get(f"/api/lessons/{lesson_id}", headers=user_headers).json()
    assert lesson["progress"]["completed_at"]


def test_search_finds_published_lessons(client, published_track):
    response = client.get("/api/search", params={"q": "boyle"})

    assert response.status_code == 200
    body = response.json()
    assert [lesson["title"] for lesson in body["lessons"]] == ["Dive Physics"]
    assert client.get("/api/search", params={"q": "   "}).json()["lessons"] == []
