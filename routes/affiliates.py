from fastapi import APIRouter, Depends, HTTPException, Request, status

from db.database import fetch_one, get_db
from models.affiliate import ClickCreate, ReferralCreate
from utils.affiliates import (
    AffiliateNotFoundError,
    create_affiliate,
    get_affiliate_by_user,
    get_dashboard,
    get_leaderboard,
    process_referral,
    track_click,
)
from utils.auth import require_admin, require_user

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def join_program(user: dict = Depends(require_user), conn=Depends(get_db)):
    affiliate = create_affiliate(conn, user)
    conn.commit()
    return affiliate


@router.get("/me")
async def my_dashboard(user: dict = Depends(require_user), conn=Depends(get_db)):
    affiliate = get_affiliate_by_user(conn, user["id"])
    if not affiliate:
        raise HTTPException(status_code=404, detail="Affiliate account not found")
    return get_dashboard(conn, affiliate)


@router.post("/track-click", status_code=status.HTTP_201_CREATED)
async def record_click(payload: ClickCreate, request: Request, conn=Depends(get_db)):
    try:
        click = track_click(
            conn,
            payload.affiliate_code.strip().upper(),
            visitor_id=payload.visitor_id,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            referrer=payload.referrer,
            landing_page=payload.landing_page,
        )
    except AffiliateNotFoundError:
        raise HTTPException(status_code=404, detail="Affiliate code not found")
    conn.commit()
    return {"id": click["id"], "affiliate_code": click["affiliate_code"]}


@router.post("/referrals", status_code=status.HTTP_201_CREATED)
async def record_referral(payload: ReferralCreate, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    if payload.monthly_value < 0:
        raise HTTPException(status_code=400, detail="Monthly value cannot be negative")
    if not fetch_one(conn, "SELECT id FROM users WHERE id = :id", {"id": payload.referred_user_id}):
        raise HTTPException(status_code=404, detail="Referred user not found")
    try:
        referral = process_referral(
            conn,
            affiliate_code=payload.affiliate_code.strip().upper(),
            referred_user_id=payload.referred_user_id,
            subscription_type=payload.subscription_type,
            monthly_value=payload.monthly_value,
        )
    except AffiliateNotFoundError:
        raise HTTPException(status_code=404, detail="Affiliate code not found")
    conn.commit()
    return referral


@router.get("/leaderboard")
async def leaderboard(limit: int = 20, conn=Depends(get_db)):
    return {"leaderboard": get_leaderboard(conn, max(1, min(limit, 100)))}
