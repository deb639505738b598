import config


def test_first_load_copies_example_config(isolated_env):
    cfg = config.load_config()

    assert (isolated_env / "config.toml").exists()
    assert cfg["srs"]["default_limit"] == 20
    assert cfg["integrity"]["expected_lessons"]["client-representative"] == 6


def test_environment_overrides_config_file(monkeypatch):
    monkeypatch.setenv("PORT", "8123")
    monkeypatch.setenv("INTEGRITY_CHECK_REMOTE", "yes")

    cfg = config.load_config()

    assert cfg["server"]["port"] == 8123
    assert cfg["integrity"]["check_remote"] is True


def test_database_url_selection(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://diver:pw@db:5432/diverwell")
    monkeypatch.setenv("APP_ENV", "production")
    assert config.get_database_url() == "postgresql+psycopg://diver:pw@db:5432/diverwell"

    monkeypatch.setenv("APP_ENV", "development")
    assert config.get_database_url().startswith("sqlite:///")


def test_production_requires_postgres(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    assert config.validate_environment()["errors"] == ["DATABASE_URL is required in production"]

    monkeypatch.setenv("DATABASE_URL", "mysql://nope")
    assert config.validate_environment()["errors"] == ["DATABASE_URL must be a PostgreSQL connection string"]


def test_short_session_secret_warns(monkeypatch):
    monkeypatch.setenv("SESSION_SECRET", "short")

    assert "SESSION_SECRET should be at least 32 characters" in config.validate_environment()["warnings"]


def test_payment_provider_switch(monkeypatch):
    monkeypatch.delenv("STRIPE_ENABLED", raising=False)
    assert config.get_payment_provider() == "stripe"

    monkeypatch.setenv("STRIPE_ENABLED", "false")
    assert config.get_payment_provider() == "revolut"


def test_generated_session_secret_is_persisted(monkeypatch, isolated_env):
    monkeypatch.delenv("SESSION_SECRET")

    first = config.get_session_secret()

    assert len(first) == 64
    assert config.get_session_secret() == first
    assert (isolated_env / "session_secret").read_text(encoding="utf-8") == first


def test_health_reports_database(client):
    body = client.get("/api/health").json()

    assert body["status"] == "ok"
    assert body["environment"] == "test"
    assert body["database"]["dialect"] == "sqlite"
    assert body["payments"] == {"provider": "stripe"}
