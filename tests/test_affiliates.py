import re

from db import database
from utils.affiliates import commission_rate_for_role, generate_affiliate_code, process_referral


def test_affiliate_codes_have_prefix_and_length():
    code = generate_affiliate_code()

    assert re.fullmatch(r"PD[A-Z0-9]{8}", code)
    assert code != generate_affiliate_code()


def test_join_program_is_idempotent(client, user_headers):
    first = client.post("/api/affiliates", headers=user_headers)
    second = client.post("/api/affiliates", headers=user_headers)

    assert first.status_code == 201
    assert first.json()["affiliate_code"] == second.json()["affiliate_code"]
    assert first.json()["referral_link"].endswith(f"?ref={first.json()['affiliate_code']}")


def test_click_then_referral_updates_dashboard(client, user_headers, admin_account):
    affiliate = client.post("/api/affiliates", headers=user_headers).json()
    code = affiliate["affiliate_code"]
    referred, _ = admin_account

    click = client.post("/api/affiliates/track-click", json={"affiliate_code": code.lower(), "visitor_id": "v1"})
    assert click.status_code == 201
    with database.get_conn() as conn:
        referral = process_referral(
            conn, affiliate_code=code, referred_user_id=referred["id"], subscription_type="MONTHLY", monthly_value=2500
        )
        conn.commit()

    dashboard = client.get("/api/affiliates/me", headers=user_headers).json()

    assert referral["commission_earned"] == round(2500 * commission_rate_for_role("USER") / 100)
    assert dashboard["stats"]["total_referrals"] == 1
    assert dashboard["stats"]["total_earnings"] == referral["commission_earned"]
    assert dashboard["stats"]["total_clicks"] == 1
    assert dashboard["stats"]["total_conversions"] == 1
    leaderboard = client.get("/api/affiliates/leaderboard").json()["leaderboard"]
    assert leaderboard[0]["affiliate_code"] == code
    assert leaderboard[0]["rank"] == 1


def test_unknown_code_click_is_not_found(client):
    response = client.post("/api/affiliates/track-click", json={"affiliate_code": "NOPE"})

    assert response.status_code == 404


def test_registration_keeps_known_referral_code(client, user_headers):
    code = client.post("/api/affiliates", headers=user_headers).json()["affiliate_code"]

    referred = client.post(
        "/api/auth/register",
        json={"email": "friend@example.com", "password": "long-enough", "referral_code": code.lower()},
    )
    stranger = client.post(
        "/api/auth/register",
        json={"email": "stranger@example.com", "password": "long-enough", "referral_code": "BOGUS"},
    )

    with database.get_conn() as conn:
        rows = database.fetch_all(conn, "SELECT email, referred_by FROM users")
    by_email = {row["email"]: row["referred_by"] for row in rows}
    assert referred.status_code == stranger.status_code == 201
    assert by_email["friend@example.com"] == code
    assert by_email["stranger@example.com"] is None
