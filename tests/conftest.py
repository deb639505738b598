import pytest
from fastapi.testclient import TestClient

import config
from db import database
from main import app
from utils.auth import create_session_token, create_user

SCRUBBED_ENV = (
    "DATABASE_URL",
    "STRIPE_WEBHOOK_SECRET",
    "REVOLUT_WEBHOOK_SECRET",
    "PAYPAL_WEBHOOK_SECRET",
    "CONTENT_ALERT_WEBHOOK_URL",
    "OPENAI_API_KEY",
    "GAMMA_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    config_dir = tmp_path / ".diverwell"
    config_dir.mkdir()
    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_PATH", config_dir / "config.toml")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("SQLITE_FILE", str(config_dir / "diverwell.db"))
    monkeypatch.setenv("SESSION_SECRET", "test-secret-" + "x" * 32)
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    for name in SCRUBBED_ENV:
        monkeypatch.delenv(name, raising=False)
    database.reset_engine()
    database.init_db()
    yield config_dir
    database.reset_engine()


@pytest.fixture
def client():
    return TestClient(app)


def _make_account(email, role="USER"):
    with database.get_conn() as conn:
        user = create_user(conn, email, "correct-horse", name=email.split("@")[0], role=role)
        conn.commit()
    return user, {"Authorization": f"Bearer {create_session_token(user['id'])}"}


@pytest.fixture
def user_account():
    return _make_account("student@example.com")


@pytest.fixture
def admin_account():
    return _make_account("admin@example.com", role="ADMIN")


@pytest.fixture
def user_headers(user_account):
    return user_account[1]


@pytest.fixture
def admin_headers(admin_account):
    return admin_account[1]


@pytest.fixture
def published_track(client, admin_headers):
    response = client.post(
        "/api/tracks",
        json={"title": "Air Diver Certification", "summary": "Surface supplied air diving", "is_published": True},
        headers=admin_headers,
    )
    assert response.status_code == 201
    track = response.json()
    lesson = client.post(
        f"/api/tracks/{track['id']}/lessons",
        json={"title": "Dive Physics", "content": "Boyle's law relates pressure and volume.", "objectives": ["Gas laws"]},
        headers=admin_headers,
    )
    assert lesson.status_code == 201
    track["lesson"] = lesson.json()
    return track
