import io
import json
import logging
import zipfile
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse

from db.database import (
    create_backup_archive_bytes,
    create_backup_archive_file,
    get_backup_dir,
    get_conn,
    get_schema_version_from_db,
    restore_content,
)
from db.schema import SCHEMA_VERSION
from utils.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")


def read_backup_content(data: bytes) -> Dict[str, Any]:
    """Validate an uploaded archive and return its content rows; raises 400 on any problem."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            members = set(archive.namelist())
            if "manifest.json" not in members:
                raise HTTPException(status_code=400, detail="Backup manifest is missing")
            backup_version = json.loads(archive.read("manifest.json")).get("schema_version")
            if backup_version != SCHEMA_VERSION:
                raise HTTPException(
                    status_code=400,
                    detail=f"Schema version mismatch (expected {SCHEMA_VERSION}, got {backup_version})",
                )
            if "content.json" not in members:
                raise HTTPException(status_code=400, detail="Backup content is missing")
            content = json.loads(archive.read("content.json"))
    except zipfile.BadZipFile as exc:
        raise HTTPException(status_code=400, detail="Invalid zip archive") from exc
    except (ValueError, AttributeError) as exc:
        raise HTTPException(status_code=400, detail="Backup payload invalid") from exc
    if not isinstance(content, dict):
        raise HTTPException(status_code=400, detail="Backup payload invalid")
    return content


@router.get("/backup")
async def download_backup():
    archive = create_backup_archive_bytes(get_schema_version_from_db())
    headers = {"Content-Disposition": f"attachment; filename=diverwell-backup-{_timestamp()}.zip"}
    return StreamingResponse(io.BytesIO(archive), media_type="application/zip", headers=headers)


@router.post("/restore")
async def restore_backup(file: UploadFile = File(...)):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Backup file is empty")
    content = read_backup_content(data)
    # snapshot current content before overwriting it
    safety_path = get_backup_dir() / f"safety-{_timestamp()}.zip"
    create_backup_archive_file(safety_path, get_schema_version_from_db())
    with get_conn() as conn:
        counts = restore_content(conn, content)
        conn.commit()
    logger.info("Restored backup %s: %s", file.filename, counts)
    return {"restored": counts, "safety_backup": safety_path.name}
