import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import text

from db.database import fetch_one

logger = logging.getLogger(__name__)

# amount in cents -> (subscription type, days granted)
SUBSCRIPTION_PLANS = {
    2500: ("MONTHLY", 30),
    25000: ("ANNUAL", 365),
}


def plan_for_amount(amount) -> Optional[Tuple[str, int]]:
    try:
        cents = int(round(float(amount)))
    except (TypeError, ValueError):
        return None
    return SUBSCRIPTION_PLANS.get(cents)


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def find_user_by_email(conn, email: str) -> Optional[dict]:
    return fetch_one(conn, "SELECT * FROM users WHERE email = :email", {"email": email.strip().lower()})


def activate_subscription(conn, user: dict, subscription_type: str, days: int, now: Optional[datetime] = None) -> str:
    """Activate or renew a subscription; renewals extend an unexpired term. Caller commits."""
    now = now or datetime.now(timezone.utc)
    start = now
    current_expiry = _parse_iso(user.get("subscription_expires_at"))
    if user.get("subscription_status") == "ACTIVE" and current_expiry and current_expiry > now:
        start = current_expiry
    expires_at = (start + timedelta(days=days)).isoformat()
    conn.execute(
        text(
            """
            UPDATE users
            SET subscription_type = :subscription_type,
                subscription_status = 'ACTIVE',
                subscription_expires_at = :expires_at,
                updated_at = :now
            WHERE id = :id
            """
        ),
        {
            "subscription_type": subscription_type,
            "expires_at": expires_at,
            "now": now.isoformat(),
            "id": user["id"],
        },
    )
    logger.info("Activated %s subscription for %s until %s", subscription_type, user["email"], expires_at)
    return expires_at
