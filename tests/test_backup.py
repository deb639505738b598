import io
import json
import zipfile

from db.schema import SCHEMA_VERSION


def _zip(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zipf:
        for name, payload in files.items():
            zipf.writestr(name, json.dumps(payload))
    return buffer.getvalue()


def test_backup_restores_purged_track(client, admin_headers, published_track, isolated_env):
    backup = client.get("/api/admin/backup", headers=admin_headers)
    assert backup.status_code == 200
    assert backup.headers["content-type"] == "application/zip"
    with zipfile.ZipFile(io.BytesIO(backup.content)) as zipf:
        manifest = json.loads(zipf.read("manifest.json"))
        content = json.loads(zipf.read("content.json"))
    assert manifest["schema_version"] == SCHEMA_VERSION
    assert [track["slug"] for track in content["tracks"]] == [published_track["slug"]]

    client.delete(f"/api/tracks/{published_track['id']}", headers=admin_headers)
    client.post(f"/api/admin/trash/tracks/{published_track['id']}/purge", headers=admin_headers)
    assert client.get(f"/api/tracks/{published_track['slug']}").status_code == 404

    restored = client.post(
        "/api/admin/restore",
        files={"file": ("backup.zip", backup.content, "application/zip")},
        headers=admin_headers,
    )

    assert restored.status_code == 200
    assert restored.json()["restored"]["tracks"] == 1
    assert restored.json()["restored"]["lessons"] == 1
    assert (isolated_env / "backups" / restored.json()["safety_backup"]).exists()
    track = client.get(f"/api/tracks/{published_track['slug']}").json()
    assert [lesson["title"] for lesson in track["lessons"]] == ["Dive Physics"]


def test_restore_rejects_schema_mismatch(client, admin_headers):
    archive = _zip({"manifest.json": {"schema_version": SCHEMA_VERSION + 1}, "content.json": {}})

    response = client.post(
        "/api/admin/restore", files={"file": ("old.zip", archive, "application/zip")}, headers=admin_headers
    )

    assert response.status_code == 400
    assert "Schema version mismatch" in response.json()["error"]


def test_restore_rejects_non_zip(client, admin_headers):
    response = client.post(
        "/api/admin/restore", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=admin_headers
    )

    assert response.status_code == 400


def test_daily_backup_written_on_init(isolated_env):
    assert list((isolated_env / "backups").glob("backup-*.zip"))
