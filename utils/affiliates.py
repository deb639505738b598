from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import text

from config import get_config_value
from db.database import fetch_all, fetch_one, insert_row, new_id, utc_now_iso

logger = logging.getLogger(__name__)

CODE_PREFIX = "PD"
CODE_LENGTH = 8
CODE_ALPHABET = string.ascii_uppercase + string.digits
ROLE_COMMISSION_RATES = {
    "USER": 50,
    "ADMIN": 50,
    "SUPER_ADMIN": 50,
    "AFFILIATE": 50,
}


class AffiliateNotFoundError(LookupError):
    pass


def generate_affiliate_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def commission_rate_for_role(role: Optional[str]) -> int:
    default_rate = get_config_value("affiliates", "commission_rate", 50)
    return ROLE_COMMISSION_RATES.get(role or "USER", default_rate)


def referral_link(code: str) -> str:
    base_url = get_config_value("affiliates", "base_url", "https://professional-diver.diverwell.app")
    return f"{base_url}/?ref={code}"


def _with_link(affiliate: Optional[dict]) -> Optional[dict]:
    if affiliate:
        affiliate["referral_link"] = referral_link(affiliate["affiliate_code"])
    return affiliate


def get_affiliate_by_user(conn, user_id: str) -> Optional[dict]:
    return _with_link(fetch_one(conn, "SELECT * FROM affiliates WHERE user_id = :user_id", {"user_id": user_id}))


def get_affiliate_by_code(conn, code: str) -> Optional[dict]:
    return _with_link(fetch_one(conn, "SELECT * FROM affiliates WHERE affiliate_code = :code", {"code": code}))


def create_affiliate(conn, user: Dict[str, Any]) -> dict:
    """Return the user's affiliate account, creating it on first call. Caller commits."""
    existing = get_affiliate_by_user(conn, user["id"])
    if existing:
        return existing
    code = generate_affiliate_code()
    while fetch_one(conn, "SELECT id FROM affiliates WHERE affiliate_code = :code", {"code": code}):
        code = generate_affiliate_code()
    insert_row(
        conn,
        "affiliates",
        {
            "id": new_id(),
            "user_id": user["id"],
            "affiliate_code": code,
            "name": user.get("name"),
            "email": user.get("email"),
            "commission_rate": commission_rate_for_role(user.get("role")),
            "created_at": utc_now_iso(),
        },
    )
    logger.info("Created affiliate account %s for %s", code, user.get("email"))
    return get_affiliate_by_user(conn, user["id"])


def track_click(
    conn,
    code: str,
    *,
    visitor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    referrer: Optional[str] = None,
    landing_page: Optional[str] = None,
) -> dict:
    if not get_affiliate_by_code(conn, code):
        raise AffiliateNotFoundError(code)
    click = {
        "id": new_id(),
        "affiliate_code": code,
        "visitor_id": visitor_id,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "referrer": referrer,
        "landing_page": landing_page,
        "converted": 0,
        "created_at": utc_now_iso(),
    }
    insert_row(conn, "affiliate_clicks", click)
    return click


def process_referral(
    conn,
    *,
    affiliate_code: str,
    referred_user_id: str,
    subscription_type: str,
    monthly_value: int,
) -> dict:
    """Record a paying referral, credit the commission and convert one pending click."""
    affiliate = get_affiliate_by_code(conn, affiliate_code)
    if not affiliate:
        raise AffiliateNotFoundError(affiliate_code)
    commission = round(monthly_value * affiliate["commission_rate"] / 100)
    referral = {
        "id": new_id(),
        "affiliate_code": affiliate_code,
        "referred_user_id": referred_user_id,
        "subscription_type": subscription_type,
        "monthly_value": monthly_value,
        "commission_earned": commission,
        "status": "ACTIVE",
        "created_at": utc_now_iso(),
    }
    insert_row(conn, "referrals", referral)
    conn.execute(
        text(
            """
            UPDATE affiliates
            SET total_referrals = total_referrals + 1,
                total_earnings = total_earnings + :commission,
                monthly_earnings = monthly_earnings + :commission
            WHERE id = :id
            """
        ),
        {"commission": commission, "id": affiliate["id"]},
    )
    conn.execute(
        text(
            """
            UPDATE affiliate_clicks
            SET converted = 1, converted_user_id = :user_id
            WHERE id = (
                SELECT id FROM affiliate_clicks
                WHERE affiliate_code = :code AND converted = 0
                ORDER BY created_at
                LIMIT 1
            )
            """
        ),
        {"user_id": referred_user_id, "code": affiliate_code},
    )
    return referral


def get_dashboard(conn, affiliate: dict) -> dict:
    code = affiliate["affiliate_code"]
    referrals = fetch_all(
        conn,
        "SELECT * FROM referrals WHERE affiliate_code = :code ORDER BY created_at DESC",
        {"code": code},
    )
    clicks = fetch_all(
        conn,
        "SELECT * FROM affiliate_clicks WHERE affiliate_code = :code ORDER BY created_at DESC",
        {"code": code},
    )
    total_clicks = len(clicks)
    conversions = sum(1 for click in clicks if click["converted"])
    month_prefix = datetime.now(timezone.utc).strftime("%Y-%m")
    monthly_referrals = [r for r in referrals if (r["created_at"] or "").startswith(month_prefix)]
    average_value = round(sum(r["monthly_value"] for r in referrals) / len(referrals)) if referrals else 0
    return {
        "affiliate": affiliate,
        "stats": {
            "total_referrals": affiliate["total_referrals"],
            "total_earnings": affiliate["total_earnings"],
            "monthly_earnings": affiliate["monthly_earnings"],
            "monthly_referrals": len(monthly_referrals),
            "total_clicks": total_clicks,
            "total_conversions": conversions,
            "conversion_rate": round(conversions / total_clicks * 100, 2) if total_clicks else 0,
            "average_order_value": average_value,
        },
        "recent_referrals": referrals[:10],
        "recent_clicks": clicks[:20],
    }


def get_leaderboard(conn, limit: int = 20) -> List[dict]:
    rows = fetch_all(
        conn,
        """
        SELECT a.affiliate_code, a.total_referrals, a.monthly_earnings, a.total_earnings,
               a.created_at, COALESCE(u.name, u.email) AS name
        FROM affiliates a
        JOIN users u ON u.id = a.user_id
        WHERE a.is_active = 1
        ORDER BY a.monthly_earnings DESC, a.total_referrals DESC
        LIMIT :limit
        """,
        {"limit": limit},
    )
    return [{"rank": index + 1, **row} for index, row in enumerate(rows)]
