import io
import json
import logging
import time
import uuid
import zipfile
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine

import config
from .schema import LATE_COLUMNS, SCHEMA_VERSION, metadata

logger = logging.getLogger(__name__)

BACKUP_DIR_NAME = "backups"
# Restore order follows foreign keys.
CONTENT_TABLES = ("ai_tutors", "tracks", "lessons", "quizzes", "questions")

_engine: Optional[Engine] = None


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def now_ms() -> int:
    return int(time.time() * 1000)


def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> Engine:
    """Create the process-wide engine on first use."""
    global _engine
    if _engine is None:
        url = config.get_database_url()
        if url.startswith("sqlite"):
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
            _engine = create_engine(url, connect_args={"check_same_thread": False})
            event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            _engine = create_engine(url, pool_size=5, max_overflow=10, pool_pre_ping=True)
        logger.info("Database engine ready (%s)", _engine.dialect.name)
    return _engine


def reset_engine() -> None:
    """Dispose the cached engine so the next call re-reads the database settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def get_dialect_name() -> str:
    return get_engine().dialect.name


def init_db() -> None:
    """Create tables, add late columns, stamp the schema version and take the daily backup."""
    config.CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    engine = get_engine()
    metadata.create_all(engine)
    with get_conn() as conn:
        ensure_late_columns(conn)
        ensure_schema_version(conn)
        conn.commit()
    run_daily_backup()


def ensure_late_columns(conn: Connection) -> None:
    """Add columns introduced after the first release to existing installs."""
    inspector = inspect(conn)
    for table, columns in LATE_COLUMNS.items():
        existing = {col["name"] for col in inspector.get_columns(table)}
        for name, sql_type in columns.items():
            if name not in existing:
                logger.info("Adding column %s.%s", table, name)
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {sql_type}"))


def get_schema_version(conn: Connection) -> int:
    row = fetch_one(conn, "SELECT value FROM schema_meta WHERE name = 'schema_version'")
    return int(row["value"]) if row else 0


def set_schema_version(conn: Connection, version: int) -> None:
    conn.execute(
        text(
            """
            INSERT INTO schema_meta (name, value) VALUES ('schema_version', :value)
            ON CONFLICT(name) DO UPDATE SET value = excluded.value
            """
        ),
        {"value": str(int(version))},
    )


def ensure_schema_version(conn: Connection) -> None:
    if get_schema_version(conn) != SCHEMA_VERSION:
        set_schema_version(conn, SCHEMA_VERSION)


def get_schema_version_from_db() -> int:
    with get_conn() as conn:
        return get_schema_version(conn)


def fetch_one(conn: Connection, sql: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    row = conn.execute(text(sql), params or {}).mappings().first()
    return dict(row) if row else None


def fetch_all(conn: Connection, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    return [dict(row) for row in conn.execute(text(sql), params or {}).mappings().all()]


def insert_row(conn: Connection, table: str, values: Dict[str, Any]) -> None:
    conn.execute(metadata.tables[table].insert().values(**values))


def update_row(conn: Connection, table: str, row_id: str, values: Dict[str, Any], where: str = "") -> int:
    """UPDATE the given columns of one row by id; returns the number of rows changed."""
    assignments = ", ".join(f"{key} = :{key}" for key in values)
    condition = f" AND {where}" if where else ""
    result = conn.execute(
        text(f"UPDATE {table} SET {assignments} WHERE id = :row_id{condition}"),
        {**values, "row_id": row_id},
    )
    return result.rowcount


def upsert_row(conn: Connection, table: str, row: Dict[str, Any]) -> None:
    """Insert a row by id, overwriting the existing row with the same id."""
    known = {col.name for col in metadata.tables[table].columns}
    values = {key: value for key, value in row.items() if key in known}
    columns = ", ".join(values)
    placeholders = ", ".join(f":{key}" for key in values)
    updates = ", ".join(f"{key} = excluded.{key}" for key in values if key != "id")
    conn.execute(
        text(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        ),
        values,
    )


def export_content(conn: Connection) -> Dict[str, List[Dict[str, Any]]]:
    """Dump course content (tutors, tracks, lessons, quizzes, questions) as plain rows."""
    return {
        "ai_tutors": fetch_all(conn, "SELECT * FROM ai_tutors ORDER BY created_at"),
        "tracks": fetch_all(conn, "SELECT * FROM tracks WHERE deleted_at IS NULL ORDER BY created_at"),
        "lessons": fetch_all(
            conn,
            """
            SELECT l.* FROM lessons l
            JOIN tracks t ON t.id = l.track_id
            WHERE l.deleted_at IS NULL AND t.deleted_at IS NULL
            ORDER BY l.track_id, l.position
            """,
        ),
        "quizzes": fetch_all(
            conn,
            """
            SELECT q.* FROM quizzes q
            JOIN lessons l ON l.id = q.lesson_id
            JOIN tracks t ON t.id = l.track_id
            WHERE l.deleted_at IS NULL AND t.deleted_at IS NULL
            ORDER BY q.created_at
            """,
        ),
        "questions": fetch_all(
            conn,
            """
            SELECT qu.* FROM questions qu
            JOIN quizzes q ON q.id = qu.quiz_id
            JOIN lessons l ON l.id = q.lesson_id
            JOIN tracks t ON t.id = l.track_id
            WHERE l.deleted_at IS NULL AND t.deleted_at IS NULL
            ORDER BY qu.quiz_id, qu.position
            """,
        ),
    }


def restore_content(conn: Connection, content: Dict[str, List[Dict[str, Any]]]) -> Dict[str, int]:
    """Upsert exported content rows; returns the number of rows restored per table."""
    counts: Dict[str, int] = {}
    for table in CONTENT_TABLES:
        rows = content.get(table) or []
        for row in rows:
            upsert_row(conn, table, row)
        counts[table] = len(rows)
    return counts


def build_backup_manifest(schema_version: int) -> dict:
    """Build a manifest for backups with timestamp and schema version."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "schema_version": schema_version,
    }


def _write_backup(zipf: zipfile.ZipFile, schema_version: int) -> None:
    with get_conn() as conn:
        content = export_content(conn)
    zipf.writestr("manifest.json", json.dumps(build_backup_manifest(schema_version), indent=2))
    zipf.writestr("content.json", json.dumps(content, indent=2, default=str))


def create_backup_archive_bytes(schema_version: int) -> bytes:
    """Create a backup zip archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zipf:
        _write_backup(zipf, schema_version)
    buffer.seek(0)
    return buffer.read()


def create_backup_archive_file(destination: Path, schema_version: int) -> None:
    """Create a backup zip archive at the given destination."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as zipf:
        _write_backup(zipf, schema_version)


def get_backup_dir() -> Path:
    return config.CONFIG_DIR / BACKUP_DIR_NAME


def run_daily_backup() -> Optional[Path]:
    """Create a daily rolling content backup and prune old archives."""
    backup_dir = get_backup_dir()
    backup_dir.mkdir(parents=True, exist_ok=True)
    today = date.today()
    existing = sorted(backup_dir.glob("backup-*.zip"), key=lambda path: path.stat().st_mtime, reverse=True)
    if existing:
        latest_date = date.fromtimestamp(existing[0].stat().st_mtime)
        if latest_date == today:
            return None
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    backup_path = backup_dir / f"backup-{timestamp}.zip"
    create_backup_archive_file(backup_path, get_schema_version_from_db())
    keep = config.get_config_value("backup", "keep", 7)
    existing = sorted(backup_dir.glob("backup-*.zip"), key=lambda path: path.stat().st_mtime, reverse=True)
    for old_backup in existing[keep:]:
        old_backup.unlink(missing_ok=True)
    logger.info("Daily backup written to %s", backup_path)
    return backup_path


@contextmanager
def get_conn():
    """Context manager yielding a SQLAlchemy connection; callers commit explicitly."""
    conn = get_engine().connect()
    try:
        yield conn
    finally:
        conn.close()


def get_db():
    """FastAPI dependency that yields a DB connection and closes it afterwards."""
    with get_conn() as conn:
        yield conn
