from utils.auth import create_session_token, hash_password, verify_password, verify_session_token


def test_password_hash_round_trip():
    stored = hash_password("correct-horse")

    assert stored != "correct-horse"
    assert verify_password("correct-horse", stored) is True
    assert verify_password("wrong-horse", stored) is False
    assert verify_password("correct-horse", None) is False


def test_session_token_rejects_tampering():
    token = create_session_token("user-1")

    assert verify_session_token(token) == "user-1"
    assert verify_session_token(token.replace("user-1", "user-2", 1)) is None
    assert verify_session_token("garbage") is None


def test_expired_session_token_is_rejected():
    assert verify_session_token(create_session_token("user-1", duration_hours=-1)) is None


def test_register_login_and_me(client):
    registered = client.post(
        "/api/auth/register",
        json={"email": "Diver@Example.com", "password": "deep-water-1", "name": "Dee"},
    )
    assert registered.status_code == 201
    assert registered.json()["user"]["email"] == "diver@example.com"
    assert "password_hash" not in registered.json()["user"]

    duplicate = client.post("/api/auth/register", json={"email": "diver@example.com", "password": "deep-water-1"})
    assert duplicate.status_code == 409

    bad_login = client.post("/api/auth/login", json={"email": "diver@example.com", "password": "nope-nope"})
    assert bad_login.status_code == 401
    assert bad_login.json() == {"error": "Invalid email or password"}

    login = client.post("/api/auth/login", json={"email": "diver@example.com", "password": "deep-water-1"})
    assert login.status_code == 200
    token = login.json()["token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["user"]["name"] == "Dee"


def test_short_password_is_invalid(client):
    response = client.post("/api/auth/register", json={"email": "a@b.co", "password": "short"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid data"


def test_me_requires_session(client):
    assert client.get("/api/auth/me").status_code == 401
