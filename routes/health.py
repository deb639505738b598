import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import get_app_env, get_payment_provider
from db.database import get_conn, get_dialect_name, utc_now_iso
from utils.llm import provider_status

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health():
    status = "ok"
    database = {"status": "ok", "dialect": None}
    try:
        database["dialect"] = get_dialect_name()
        with get_conn() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check database error: %s", exc)
        database = {"status": "error", "dialect": database["dialect"], "error": str(exc)}
        status = "degraded"
    ai = provider_status()
    return {
        "status": status,
        "environment": get_app_env(),
        "timestamp": utc_now_iso(),
        "database": database,
        "ai": ai,
        "payments": {"provider": get_payment_provider()},
    }
