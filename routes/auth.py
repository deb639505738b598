import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.exc import IntegrityError

from db.database import fetch_one, get_db
from models.user import LoginRequest, UserCreate
from utils.affiliates import get_affiliate_by_code
from utils.auth import (
    SESSION_COOKIE_NAME,
    create_session_token,
    create_user,
    get_session_hours,
    require_user,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=get_session_hours() * 3600,
        httponly=True,
        samesite="lax",
    )


@router.post("/register", status_code=201)
async def register(payload: UserCreate, response: Response, conn=Depends(get_db)):
    if fetch_one(conn, "SELECT id FROM users WHERE email = :email", {"email": payload.email}):
        raise HTTPException(status_code=409, detail="Email already registered")
    referred_by = None
    if payload.referral_code:
        code = payload.referral_code.strip().upper()
        if get_affiliate_by_code(conn, code):
            referred_by = code
        else:
            logger.info("Ignoring unknown referral code %s", code)
    try:
        user = create_user(conn, payload.email, payload.password, name=payload.name, referred_by=referred_by)
        conn.commit()
    except IntegrityError:
        conn.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")
    token = create_session_token(user["id"])
    _set_session_cookie(response, token)
    return {"user": user, "token": token}


@router.post("/login")
async def login(payload: LoginRequest, response: Response, conn=Depends(get_db)):
    row = fetch_one(
        conn,
        "SELECT id, password_hash FROM users WHERE email = :email",
        {"email": payload.email.strip().lower()},
    )
    if not row or not verify_password(payload.password, row["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = create_session_token(row["id"])
    _set_session_cookie(response, token)
    user = fetch_one(
        conn,
        """
        SELECT id, email, name, role, subscription_type, subscription_status, subscription_expires_at
        FROM users WHERE id = :id
        """,
        {"id": row["id"]},
    )
    return {"user": user, "token": token}


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"ok": True}


@router.get("/me")
async def me(user: dict = Depends(require_user)):
    return {"user": user}
