import pytest


@pytest.fixture
def sponsor(client, admin_headers):
    response = client.post(
        "/api/sponsors",
        json={
            "company_name": "Deep Sea Gear",
            "contact_email": "ads@deepsea.example.com",
            "tier": "GOLD",
            "status": "ACTIVE",
            "monthly_fee": 50000,
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.json()


def test_sponsor_admin_requires_admin(client, user_headers):
    assert client.get("/api/sponsors", headers=user_headers).status_code == 403


def test_negative_fee_is_rejected(client, admin_headers):
    response = client.post(
        "/api/sponsors",
        json={"company_name": "Cheap Co", "contact_email": "a@b.co", "monthly_fee": -1},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_active_sponsors_and_placements_are_public(client, admin_headers, sponsor):
    client.post(
        "/api/sponsors",
        json={"company_name": "Paused Ltd", "contact_email": "p@p.co", "status": "INACTIVE"},
        headers=admin_headers,
    )
    placement = client.post(
        f"/api/sponsors/{sponsor['id']}/placements",
        json={"placement_type": "HOMEPAGE_STRIP", "position": 1},
        headers=admin_headers,
    )
    assert placement.status_code == 201

    sponsors = client.get("/api/sponsors/public/active").json()["sponsors"]
    placements = client.get("/api/sponsors/placements/active", params={"placement_type": "HOMEPAGE_STRIP"}).json()

    assert [item["company_name"] for item in sponsors] == ["Deep Sea Gear"]
    assert [item["id"] for item in placements["placements"]] == [placement.json()["id"]]
    assert placements["placements"][0]["is_active"] is True


def test_event_for_unknown_sponsor_is_not_tracked(client):
    response = client.post("/api/sponsors/track-event", json={"sponsor_id": "missing", "event_type": "IMPRESSION"})

    assert response.json() == {"tracked": False}


def test_analytics_counts_clicks_and_ctr(client, admin_headers, sponsor):
    placement = client.post(
        f"/api/sponsors/{sponsor['id']}/placements",
        json={"placement_type": "IN_APP_TILE"},
        headers=admin_headers,
    ).json()
    events = ["IMPRESSION"] * 4 + ["CLICK", "CTA_CLICK", "CONVERSION"]
    for event_type in events:
        tracked = client.post(
            "/api/sponsors/track-event",
            json={"sponsor_id": sponsor["id"], "event_type": event_type, "placement_id": placement["id"]},
        )
        assert tracked.json()["tracked"] is True

    body = client.get(f"/api/sponsors/{sponsor['id']}/analytics", headers=admin_headers).json()

    assert body["impressions"] == 4
    assert body["clicks"] == 2
    assert body["cta_clicks"] == 1
    assert body["conversions"] == 1
    assert body["ctr"] == 50.0
    assert body["placement_breakdown"][placement["id"]] == {"impressions": 4, "clicks": 2, "ctr": 50.0}


def test_deleting_sponsor_removes_placements(client, admin_headers, sponsor):
    client.post(f"/api/sponsors/{sponsor['id']}/placements", json={"placement_type": "ABOVE_FOLD"}, headers=admin_headers)

    assert client.delete(f"/api/sponsors/{sponsor['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/sponsors/{sponsor['id']}", headers=admin_headers).status_code == 404
    assert client.get("/api/sponsors/placements/active").json()["placements"] == []
