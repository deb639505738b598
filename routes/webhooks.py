"""Payment provider webhooks.

Each endpoint verifies the provider signature over the raw body, then
activates or renews the subscription of the paying customer (matched by
email) and credits the referring affiliate when there is one. A provider
event id is applied at most once.
"""
import json
import logging
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from db.database import fetch_one, get_db, insert_row, utc_now_iso
from utils.affiliates import AffiliateNotFoundError, process_referral
from utils.billing import activate_subscription, find_user_by_email, plan_for_amount
from utils.webhooks import verify_paypal_signature, verify_revolut_signature, verify_stripe_signature

logger = logging.getLogger(__name__)

router = APIRouter()

REVOLUT_PAID_EVENTS = ("ORDER_COMPLETED", "PAYMENT_CAPTURED")
PAYPAL_PAID_EVENTS = ("PAYMENT.CAPTURE.COMPLETED", "CHECKOUT.ORDER.COMPLETED")


def _parse_body(raw: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    return payload


def _already_applied(conn, provider: str, event_id: Optional[str]) -> bool:
    if not event_id:
        return False
    row = fetch_one(
        conn,
        "SELECT event_id FROM webhook_events WHERE provider = :provider AND event_id = :event_id",
        {"provider": provider, "event_id": str(event_id)},
    )
    return row is not None


def _apply_payment(
    conn,
    provider: str,
    event_id: Optional[str],
    email: Optional[str],
    amount,
    affiliate_code: Optional[str],
) -> dict:
    if not email:
        logger.warning("%s webhook missing customer email", provider)
        raise HTTPException(status_code=400, detail="Missing customer email")
    if _already_applied(conn, provider, event_id):
        logger.info("Ignoring repeated %s webhook %s", provider, event_id)
        return {"received": True, "duplicate": True}
    plan = plan_for_amount(amount)
    if plan is None:
        logger.warning("%s webhook with unknown payment amount: %s", provider, amount)
        return {"received": True}
    user = find_user_by_email(conn, email)
    if not user:
        logger.warning("%s webhook for unknown user %s", provider, email)
        return {"received": True}
    subscription_type, days = plan
    expires_at = activate_subscription(conn, user, subscription_type, days)
    code = affiliate_code or user.get("referred_by")
    if code:
        try:
            process_referral(
                conn,
                affiliate_code=code,
                referred_user_id=user["id"],
                subscription_type=subscription_type,
                monthly_value=int(round(float(amount))),
            )
            logger.info("Tracked affiliate conversion for %s", code)
        except AffiliateNotFoundError:
            logger.error("Referral code %s on %s payment does not exist", code, provider)
    if event_id:
        insert_row(
            conn,
            "webhook_events",
            {"provider": provider, "event_id": str(event_id), "user_id": user["id"], "received_at": utc_now_iso()},
        )
    conn.commit()
    return {"received": True, "subscription_type": subscription_type, "expires_at": expires_at}


@router.post("/stripe")
async def stripe_webhook(request: Request, conn=Depends(get_db)):
    raw = await request.body()
    if not verify_stripe_signature(raw, request.headers.get("stripe-signature"), os.getenv("STRIPE_WEBHOOK_SECRET")):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    event = _parse_body(raw)
    logger.info("Received Stripe webhook: %s", event.get("type"))
    if event.get("type") != "checkout.session.completed":
        return {"received": True}
    session = (event.get("data") or {}).get("object") or {}
    email = (session.get("customer_details") or {}).get("email") or session.get("customer_email")
    metadata = session.get("metadata") or {}
    return _apply_payment(
        conn, "Stripe", event.get("id"), email, session.get("amount_total"), metadata.get("affiliateCode")
    )


@router.post("/revolut")
async def revolut_webhook(request: Request, conn=Depends(get_db)):
    raw = await request.body()
    if not verify_revolut_signature(raw, request.headers.get("revolut-signature"), os.getenv("REVOLUT_WEBHOOK_SECRET")):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    event = _parse_body(raw)
    event_type = event.get("event") or event.get("type")
    logger.info("Received Revolut webhook: %s", event_type)
    if event_type not in REVOLUT_PAID_EVENTS:
        return {"received": True}
    data = event.get("data") or {}
    order = data.get("order") or {}
    email = (data.get("customer") or {}).get("email") or data.get("customer_email")
    amount = data.get("amount") or order.get("amount")
    metadata = data.get("metadata") or order.get("metadata") or {}
    event_id = event.get("id") or event.get("order_id") or order.get("id")
    return _apply_payment(conn, "Revolut", event_id, email, amount, metadata.get("affiliateCode"))


@router.post("/paypal")
async def paypal_webhook(request: Request, conn=Depends(get_db)):
    raw = await request.body()
    if not verify_paypal_signature(raw, request.headers.get("paypal-signature"), os.getenv("PAYPAL_WEBHOOK_SECRET")):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    event = _parse_body(raw)
    event_type = event.get("event_type")
    logger.info("Received PayPal webhook: %s", event_type)
    if event_type not in PAYPAL_PAID_EVENTS:
        return {"received": True}
    resource = event.get("resource") or {}
    email = (resource.get("payer") or {}).get("email_address")
    # PayPal reports amounts in currency units
    value = (resource.get("amount") or {}).get("value")
    try:
        amount = round(float(value) * 100) if value is not None else None
    except (TypeError, ValueError):
        amount = None
    return _apply_payment(conn, "PayPal", event.get("id"), email, amount, resource.get("custom_id"))
