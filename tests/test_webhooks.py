import json
import time

from db import database
from utils.affiliates import create_affiliate
from utils.webhooks import (
    compute_signature,
    parse_stripe_header,
    verify_paypal_signature,
    verify_revolut_signature,
    verify_stripe_signature,
)

SECRET = "whsec_test"


def _stripe_header(body: bytes, timestamp: int) -> str:
    signature = compute_signature(SECRET, f"{timestamp}.".encode("utf-8") + body)
    return f"t={timestamp},v1={signature}"


def test_stripe_signature_checks_timestamp_and_body():
    body = b'{"type": "checkout.session.completed"}'
    now = 1_700_000_000

    assert verify_stripe_signature(body, _stripe_header(body, now), SECRET, now=now) is True
    assert verify_stripe_signature(body + b" ", _stripe_header(body, now), SECRET, now=now) is False
    assert verify_stripe_signature(body, _stripe_header(body, now - 600), SECRET, now=now) is False
    assert verify_stripe_signature(body, "v1=abc", SECRET, now=now) is False
    assert verify_stripe_signature(body, None, SECRET, now=now) is False


def test_parse_stripe_header_keeps_all_v1_signatures():
    assert parse_stripe_header("t=12,v1=aa,v0=cc,v1=bb") == (12, ["aa", "bb"])
    assert parse_stripe_header("t=soon,v1=aa") is None


def test_hex_signatures_for_revolut_and_paypal():
    body = b'{"event": "ORDER_COMPLETED"}'
    signature = compute_signature(SECRET, body)

    assert verify_revolut_signature(body, signature, SECRET) is True
    assert verify_paypal_signature(body, signature.upper(), SECRET) is True
    assert verify_revolut_signature(body, "not-hex", SECRET) is False
    assert verify_paypal_signature(body, None, SECRET) is False


def test_unconfigured_secret_skips_verification():
    assert verify_revolut_signature(b"{}", None, None) is True


def _stripe_event(email, amount, affiliate_code=None):
    session = {"customer_details": {"email": email}, "amount_total": amount, "metadata": {}}
    if affiliate_code:
        session["metadata"]["affiliateCode"] = affiliate_code
    return {"type": "checkout.session.completed", "data": {"object": session}}


def _post_stripe(client, event):
    body = json.dumps(event).encode("utf-8")
    return client.post(
        "/api/webhooks/stripe",
        content=body,
        headers={"stripe-signature": _stripe_header(body, int(time.time())), "content-type": "application/json"},
    )


def test_stripe_payment_activates_subscription_and_credits_affiliate(client, monkeypatch, user_account, admin_account):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", SECRET)
    student, student_headers = user_account
    admin, _ = admin_account
    with database.get_conn() as conn:
        affiliate = create_affiliate(conn, admin)
        conn.commit()

    response = _post_stripe(client, _stripe_event(student["email"], 2500, affiliate["affiliate_code"]))

    assert response.status_code == 200
    assert response.json()["subscription_type"] == "MONTHLY"
    me = client.get("/api/auth/me", headers=student_headers).json()["user"]
    assert me["subscription_status"] == "ACTIVE"
    with database.get_conn() as conn:
        referral = database.fetch_one(
            conn, "SELECT * FROM referrals WHERE referred_user_id = :id", {"id": student["id"]}
        )
    assert referral["monthly_value"] == 2500
    assert referral["commission_earned"] == round(2500 * affiliate["commission_rate"] / 100)


def test_stripe_bad_signature_is_rejected(client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", SECRET)

    response = client.post(
        "/api/webhooks/stripe",
        content=b"{}",
        headers={"stripe-signature": f"t={int(time.time())},v1=00"},
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid webhook signature"}


def test_unknown_amount_and_unknown_user_are_acknowledged(client, user_account):
    student, _ = user_account

    assert _post_stripe(client, _stripe_event(student["email"], 1234)).json() == {"received": True}
    assert _post_stripe(client, _stripe_event("nobody@example.com", 2500)).json() == {"received": True}


def test_missing_email_is_bad_request(client):
    assert _post_stripe(client, _stripe_event(None, 2500)).status_code == 400


def test_paypal_amount_in_currency_units(client, user_account):
    student, _ = user_account
    event = {
        "event_type": "PAYMENT.CAPTURE.COMPLETED",
        "resource": {"payer": {"email_address": student["email"]}, "amount": {"value": "250.00"}},
    }

    response = client.post("/api/webhooks/paypal", json=event)

    assert response.status_code == 200
    assert response.json()["subscription_type"] == "ANNUAL"


def test_repeated_stripe_event_is_applied_once(client, monkeypatch, user_account, admin_account):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", SECRET)
    student, student_headers = user_account
    admin, _ = admin_account
    with database.get_conn() as conn:
        affiliate = create_affiliate(conn, admin)
        conn.commit()
    event = _stripe_event(student["email"], 2500, affiliate["affiliate_code"])
    event["id"] = "evt_retry_1"

    first = _post_stripe(client, event)
    expires_after_first = client.get("/api/auth/me", headers=student_headers).json()["user"]["subscription_expires_at"]
    retry = _post_stripe(client, event)

    assert first.json()["subscription_type"] == "MONTHLY"
    assert retry.status_code == 200
    assert retry.json() == {"received": True, "duplicate": True}
    me = client.get("/api/auth/me", headers=student_headers).json()["user"]
    assert me["subscription_expires_at"] == expires_after_first
    with database.get_conn() as conn:
        referrals = database.fetch_all(
            conn, "SELECT id FROM referrals WHERE referred_user_id = :id", {"id": student["id"]}
        )
    assert len(referrals) == 1
