import logging

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from db.database import get_db
from models.admin import AuditRequest
from utils.auth import require_admin
from utils.integrity import regenerate_missing_media, run_audit, send_alert

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/content-integrity")
async def content_integrity(payload: AuditRequest, conn=Depends(get_db)):
    summary = await run_in_threadpool(
        run_audit, conn, slugs=payload.slugs or None, check_remote=payload.check_remote
    )
    if payload.regenerate_media and summary["repairs"]:
        summary["regeneration"] = await regenerate_missing_media(summary["repairs"])
    alerted = False
    if payload.send_alert and summary["issues"]:
        alerted = await run_in_threadpool(send_alert, summary, "api")
    summary["alert_sent"] = alerted
    logger.info(
        "Content integrity audit: %s blocking, %s warnings",
        summary["blocking_issues"], summary["warning_issues"],
    )
    return summary
