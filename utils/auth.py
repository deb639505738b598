from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from config import get_config_value, get_session_secret
from db.database import fetch_one, get_db, insert_row, new_id, utc_now_iso

SESSION_COOKIE_NAME = "session"
PASSWORD_HASH_ALGO = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 200_000
DEFAULT_SESSION_HOURS = 168
ADMIN_ROLES = ("ADMIN", "SUPER_ADMIN")

USER_COLUMNS = (
    "id, email, name, role, subscription_type, subscription_status, "
    "subscription_expires_at, referred_by, created_at"
)


def get_session_hours() -> int:
    hours = get_config_value("auth", "session_hours", DEFAULT_SESSION_HOURS)
    try:
        return int(hours)
    except (TypeError, ValueError):
        return DEFAULT_SESSION_HOURS


def hash_password(password: str) -> str:
    if not password or not password.strip():
        raise ValueError("Password cannot be empty")
    salt = secrets.token_hex(16)
    dk = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        PASSWORD_HASH_ITERATIONS,
    )
    digest = base64.urlsafe_b64encode(dk).decode("utf-8")
    return f"{PASSWORD_HASH_ALGO}${PASSWORD_HASH_ITERATIONS}${salt}${digest}"


def verify_password(password: str, stored_hash: Optional[str]) -> bool:
    if not stored_hash or password is None:
        return False
    try:
        algo, iterations_str, salt, digest = stored_hash.split("$", 3)
    except ValueError:
        return False
    if algo != PASSWORD_HASH_ALGO:
        return False
    try:
        iterations = int(iterations_str)
    except ValueError:
        return False
    dk = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        iterations,
    )
    computed = base64.urlsafe_b64encode(dk).decode("utf-8")
    return hmac.compare_digest(computed, digest)


def _sign(payload: str) -> str:
    secret = get_session_secret().encode("utf-8")
    return hmac.new(secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def create_session_token(user_id: str, duration_hours: Optional[int] = None) -> str:
    hours = duration_hours if duration_hours is not None else get_session_hours()
    expires_at = int(time.time()) + int(hours) * 3600
    payload = f"{user_id}:{expires_at}"
    return f"{payload}:{_sign(payload)}"


def verify_session_token(token: Optional[str]) -> Optional[str]:
    """Return the user id carried by a valid, unexpired token."""
    if not token:
        return None
    try:
        user_id, expires_str, signature = token.split(":", 2)
    except ValueError:
        return None
    expected = _sign(f"{user_id}:{expires_str}")
    if not hmac.compare_digest(signature, expected):
        return None
    try:
        expires_at = int(expires_str)
    except ValueError:
        return None
    if expires_at < int(time.time()):
        return None
    return user_id


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.cookies.get(SESSION_COOKIE_NAME)


def get_user_by_id(conn, user_id: str) -> Optional[dict]:
    return fetch_one(conn, f"SELECT {USER_COLUMNS} FROM users WHERE id = :id", {"id": user_id})


def get_current_user(request: Request, conn=Depends(get_db)) -> Optional[dict]:
    user_id = verify_session_token(_token_from_request(request))
    if not user_id:
        return None
    return get_user_by_id(conn, user_id)


def require_user(user: Optional[dict] = Depends(get_current_user)) -> dict:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") in ADMIN_ROLES


def require_admin(user: dict = Depends(require_user)) -> dict:
    if not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def resolve_user_id(user: dict, requested: Optional[str]) -> str:
    """Users act on their own data; admins may act on behalf of anyone."""
    if not requested or requested == user["id"]:
        return user["id"]
    if is_admin(user):
        return requested
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def create_user(conn, email: str, password: str, name: Optional[str] = None, role: str = "USER",
                referred_by: Optional[str] = None) -> dict:
    """Insert a user with a hashed password. Caller commits."""
    now = utc_now_iso()
    user_id = new_id()
    insert_row(
        conn,
        "users",
        {
            "id": user_id,
            "email": email.strip().lower(),
            "name": name,
            "role": role,
            "password_hash": hash_password(password),
            "referred_by": referred_by,
            "created_at": now,
            "updated_at": now,
        },
    )
    return get_user_by_id(conn, user_id)
