import argparse
import asyncio
import logging
import os
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

import sys
from pathlib import Path

# Add project root to path for package imports
base_dir = Path(__file__).parent
sys.path.insert(0, str(base_dir))

from db.database import create_backup_archive_file, get_conn, get_schema_version_from_db, init_db
from config import get_config_value, load_config, validate_environment, CONFIG_DIR
from routes import (  # Import routers
    admin, affiliates, auth, backups, equipment, generation, health, lessons, quizzes,
    search, sponsors, srs, tracks, trash, tutors, webhooks, ws,
)
from utils.auth import create_user
from utils.integrity import regenerate_missing_media, run_audit, send_alert
from utils.media import uploads_root

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("diverwell")


# First-run init
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: init DB and config
    load_config()  # Ensures config exists
    init_db()
    yield


app = FastAPI(
    title="DiverWell",
    description="Commercial diving training platform",
    lifespan=lifespan,
)

app.mount("/uploads", StaticFiles(directory=str(uploads_root()), check_dir=False), name="uploads")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse({"error": "Invalid data", "details": details}, status_code=400)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse({"error": "Conflicts with existing data"}, status_code=409)


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(tracks.router, prefix="/api/tracks", tags=["tracks"])
app.include_router(lessons.router, prefix="/api/lessons", tags=["lessons"])
app.include_router(generation.router, prefix="/api/lessons", tags=["generation"])  # /api/lessons/{id}/generate/*
app.include_router(quizzes.router, prefix="/api/quizzes", tags=["quizzes"])
app.include_router(search.router, prefix="/api", tags=["search"])
app.include_router(tutors.router, prefix="/api", tags=["tutors"])
app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(srs.router, prefix="/api/srs", tags=["srs"])
app.include_router(srs.analytics_router, prefix="/api/analytics", tags=["analytics"])
app.include_router(equipment.router, prefix="/api/equipment", tags=["equipment"])
app.include_router(sponsors.router, prefix="/api/sponsors", tags=["sponsors"])
app.include_router(affiliates.router, prefix="/api/affiliates", tags=["affiliates"])
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
app.include_router(trash.router, prefix="/api/admin/trash", tags=["admin"])
app.include_router(backups.router, prefix="/api/admin", tags=["admin"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(ws.router, tags=["generation"])


def run_cli_audit(regenerate: bool) -> int:
    """Audit course content from the command line; non-zero when blocking issues remain."""
    with get_conn() as conn:
        summary = run_audit(conn)
    for issue in summary["issues"]:
        level = logging.ERROR if issue["severity"] == "critical" else logging.WARNING
        logger.log(level, "[%s] %s", issue["type"], issue["message"])
    if regenerate and summary["repairs"]:
        results = asyncio.run(regenerate_missing_media(summary["repairs"]))
        logger.info("Media regeneration: %s regenerated, %s failed", results["regenerated"], results["failed"])
    if summary["issues"] and send_alert(summary, trigger="cli"):
        logger.info("Content integrity alert sent")
    logger.info(
        "Audit finished: %s blocking issues, %s warnings",
        summary["blocking_issues"], summary["warning_issues"],
    )
    return 1 if summary["blocking_issues"] else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="DiverWell API")
    parser.add_argument("--init", action="store_true", help="Initialize DB and config")
    parser.add_argument("--dev", action="store_true", help="Run in dev mode with reload")
    parser.add_argument("--audit", action="store_true", help="Run the content integrity audit and exit")
    parser.add_argument("--regenerate", action="store_true", help="With --audit, regenerate missing media")
    parser.add_argument("--backup", metavar="PATH", help="Write a content backup archive to PATH and exit")
    parser.add_argument("--create-admin", metavar="EMAIL", help="Create an admin account and exit")
    parser.add_argument("--password", help="Password for --create-admin")
    args = parser.parse_args()

    env_check = validate_environment()
    for warning in env_check["warnings"]:
        logger.warning(warning)
    if env_check["errors"]:
        for error in env_check["errors"]:
            logger.error(error)
        sys.exit(1)

    load_config()  # Ensures config is copied if missing
    init_db()
    if args.init:
        logger.info("DB initialized and config copied to %s", CONFIG_DIR)
        sys.exit(0)
    if args.audit:
        sys.exit(run_cli_audit(args.regenerate))
    if args.backup:
        create_backup_archive_file(Path(args.backup), get_schema_version_from_db())
        logger.info("Backup written to %s", args.backup)
        sys.exit(0)
    if args.create_admin:
        if not args.password:
            parser.error("--create-admin requires --password")
        with get_conn() as conn:
            admin_user = create_user(conn, args.create_admin.strip().lower(), args.password, role="ADMIN")
            conn.commit()
        logger.info("Created admin %s", admin_user["email"])
        sys.exit(0)
    # Run server
    host = get_config_value("server", "host", "127.0.0.1")
    port = get_config_value("server", "port", 5000)
    uvicorn.run("main:app", host=host, port=port, reload=args.dev, log_level="info")
