import tomllib
import shutil
import logging
import secrets
from pathlib import Path
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv
import os

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".diverwell"
CONFIG_PATH = CONFIG_DIR / "config.toml"
PROJECT_CONFIG_EXAMPLE = Path(__file__).parent / "config.toml"
SESSION_SECRET_FILE = "session_secret"

RECOMMENDED_ENV_VARS = ("OPENAI_API_KEY", "SESSION_SECRET", "GAMMA_API_KEY", "STRIPE_WEBHOOK_SECRET")


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_config() -> Dict[str, Any]:
    """Load config from ~/.diverwell/config.toml, copy example if missing, apply env overrides."""
    load_dotenv()
    if not CONFIG_PATH.exists():
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        shutil.copy(PROJECT_CONFIG_EXAMPLE, CONFIG_PATH)
    with open(CONFIG_PATH, "rb") as f:
        config = tomllib.load(f)

    server_cfg = config.get("server", {})
    config["server"] = {
        "host": os.getenv("HOST", server_cfg.get("host", "127.0.0.1")),
        "port": int(os.getenv("PORT", server_cfg.get("port", 5000))),
    }
    auth_cfg = config.get("auth", {})
    config["auth"] = {
        "session_hours": int(os.getenv("SESSION_HOURS", auth_cfg.get("session_hours", 168))),
    }
    ai_cfg = config.get("ai", {})
    config["ai"] = {
        "provider": os.getenv("AI_PROVIDER", ai_cfg.get("provider", "openai")).lower(),
        "model": os.getenv("OPENAI_MODEL", ai_cfg.get("model", "gpt-4o-mini")),
        "base_url": os.getenv("OPENAI_BASE_URL", ai_cfg.get("base_url", "https://api.openai.com/v1")).rstrip("/"),
        "timeout": int(os.getenv("AI_TIMEOUT", ai_cfg.get("timeout", 60))),
    }
    ollama_cfg = config.get("ollama", {})
    config["ollama"] = {
        "model": os.getenv("OLLAMA_MODEL", ollama_cfg.get("model", "llama3.2")),
        "timeout": int(os.getenv("OLLAMA_TIMEOUT", ollama_cfg.get("timeout", 60))),
    }
    quizzes_cfg = config.get("quizzes", {})
    config["quizzes"] = {
        "free_text_threshold": float(os.getenv(
            "FREE_TEXT_THRESHOLD", quizzes_cfg.get("free_text_threshold", 0.85)
        )),
    }
    srs_cfg = config.get("srs", {})
    config["srs"] = {
        "easy_interval_days": int(srs_cfg.get("easy_interval_days", 4)),
        "default_limit": int(srs_cfg.get("default_limit", 20)),
        "max_limit": int(srs_cfg.get("max_limit", 100)),
    }
    media_cfg = config.get("media", {})
    config["media"] = {
        "uploads_dir": os.getenv("UPLOADS_DIR", media_cfg.get("uploads_dir", "uploads")),
        "pdf_api_url": os.getenv("GAMMA_API_URL", media_cfg.get("pdf_api_url", "")),
        "poll_interval_seconds": float(media_cfg.get("poll_interval_seconds", 5)),
        "poll_attempts": int(media_cfg.get("poll_attempts", 60)),
        "tts_model": media_cfg.get("tts_model", "tts-1"),
        "tts_voice": media_cfg.get("tts_voice", "alloy"),
        "timeout": int(media_cfg.get("timeout", 120)),
    }
    affiliates_cfg = config.get("affiliates", {})
    config["affiliates"] = {
        "base_url": os.getenv(
            "AFFILIATE_BASE_URL",
            affiliates_cfg.get("base_url", "https://professional-diver.diverwell.app"),
        ).rstrip("/"),
        "commission_rate": int(affiliates_cfg.get("commission_rate", 50)),
    }
    integrity_cfg = config.get("integrity", {})
    config["integrity"] = {
        "min_questions": int(integrity_cfg.get("min_questions", 5)),
        "head_timeout": float(integrity_cfg.get("head_timeout", 5)),
        "check_remote": _as_bool(os.getenv("INTEGRITY_CHECK_REMOTE", integrity_cfg.get("check_remote", False))),
        "expected_lessons": dict(integrity_cfg.get("expected_lessons", {})),
    }
    backup_cfg = config.get("backup", {})
    config["backup"] = {"keep": int(backup_cfg.get("keep", 7))}
    return config


def get_config_value(section: str, key: str, default: Optional[Any] = None) -> Any:
    """Get nested config value, e.g., get_config_value('ai', 'model')."""
    config = load_config()
    value = config.get(section, {}).get(key, default)
    return value


def get_app_env() -> str:
    """Return the deployment environment: development, production or test."""
    env = os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development"
    return env.strip().lower()


def _normalize_postgres_url(url: str) -> str:
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def get_sqlite_path() -> Path:
    sqlite_file = os.getenv("SQLITE_FILE")
    if sqlite_file:
        return Path(sqlite_file).expanduser()
    return CONFIG_DIR / "diverwell.db"


def get_database_url() -> str:
    """Pick PostgreSQL outside development when DATABASE_URL is set, otherwise a SQLite file."""
    env = get_app_env()
    database_url = os.getenv("DATABASE_URL")
    if env != "development" and database_url:
        return _normalize_postgres_url(database_url)
    if env == "production":
        logger.warning("DATABASE_URL not set in production; falling back to SQLite")
    return f"sqlite:///{get_sqlite_path()}"


def get_payment_provider() -> str:
    """Stripe is primary; setting STRIPE_ENABLED=false switches to Revolut."""
    if _as_bool(os.getenv("STRIPE_ENABLED", "true")):
        return "stripe"
    return "revolut"


def get_session_secret() -> str:
    """Return SESSION_SECRET, or a per-install secret persisted under the config dir."""
    secret = os.getenv("SESSION_SECRET")
    if secret:
        return secret
    secret_path = CONFIG_DIR / SESSION_SECRET_FILE
    if secret_path.exists():
        return secret_path.read_text(encoding="utf-8").strip()
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    secret = secrets.token_hex(32)
    secret_path.write_text(secret, encoding="utf-8")
    logger.warning("SESSION_SECRET not set; generated a local secret at %s", secret_path)
    return secret


def validate_environment() -> Dict[str, List[str]]:
    """Check required and recommended environment variables for the current env."""
    load_dotenv()
    errors: List[str] = []
    warnings: List[str] = []
    env = get_app_env()
    database_url = os.getenv("DATABASE_URL", "")
    if env == "production":
        if not database_url:
            errors.append("DATABASE_URL is required in production")
        elif not database_url.startswith(("postgresql://", "postgres://")):
            errors.append("DATABASE_URL must be a PostgreSQL connection string")
    session_secret = os.getenv("SESSION_SECRET", "")
    if session_secret and len(session_secret) < 32:
        warnings.append("SESSION_SECRET should be at least 32 characters")
    for name in RECOMMENDED_ENV_VARS:
        if not os.getenv(name):
            warnings.append(f"{name} is not set")
    return {"errors": errors, "warnings": warnings}
