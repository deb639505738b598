from datetime import date, timedelta

import pytest


@pytest.fixture
def helmet(client, user_headers):
    equipment_type = client.post(
        "/api/equipment/types",
        json={"name": "Dive Helmet", "default_maintenance_interval": 30},
        headers=user_headers,
    )
    assert equipment_type.status_code == 201
    item = client.post(
        "/api/equipment/items",
        json={
            "equipment_type_id": equipment_type.json()["id"],
            "name": "KM 37 #4",
            "serial_number": "KM37-0004",
            "location": "Dive locker",
        },
        headers=user_headers,
    )
    assert item.status_code == 201
    return item.json()


def test_equipment_requires_login(client):
    assert client.get("/api/equipment/items").status_code == 401


def test_unknown_type_is_rejected(client, user_headers):
    response = client.post(
        "/api/equipment/items",
        json={"equipment_type_id": "missing", "name": "Umbilical"},
        headers=user_headers,
    )

    assert response.status_code == 400


def test_completing_task_logs_maintenance(client, user_headers, helmet):
    task = client.post(
        "/api/equipment/tasks",
        json={
            "equipment_item_id": helmet["id"],
            "title": "Replace exhaust valve",
            "scheduled_date": date.today().isoformat(),
        },
        headers=user_headers,
    )
    assert task.status_code == 201
    task_id = task.json()["id"]

    completed = client.post(
        f"/api/equipment/tasks/{task_id}/complete",
        json={"performed_by": "Tech A", "parts_replaced": ["exhaust valve"], "checklist_results": [{"ok": True}]},
        headers=user_headers,
    )

    assert completed.status_code == 200
    body = completed.json()
    assert body["task"]["status"] == "COMPLETED"
    assert body["task"]["completed_date"]
    assert body["log"]["parts_replaced"] == ["exhaust valve"]
    item = client.get(f"/api/equipment/items/{helmet['id']}", headers=user_headers).json()
    assert item["last_maintained_at"] == body["task"]["completed_date"]

    again = client.post(
        f"/api/equipment/tasks/{task_id}/complete", json={"performed_by": "Tech A"}, headers=user_headers
    )
    assert again.status_code == 409


def test_upcoming_and_overdue_maintenance(client, user_headers, helmet):
    today = date.today()
    for title, offset in (("Annual inspection", 10), ("Hose test", -3), ("Far future", 90)):
        client.post(
            "/api/equipment/tasks",
            json={
                "equipment_item_id": helmet["id"],
                "title": title,
                "scheduled_date": (today + timedelta(days=offset)).isoformat(),
            },
            headers=user_headers,
        )

    body = client.get("/api/equipment/upcoming-maintenance", params={"days": 30}, headers=user_headers).json()

    assert [task["title"] for task in body["upcoming"]] == ["Annual inspection"]
    assert [task["title"] for task in body["overdue"]] == ["Hose test"]


def test_use_log_records_condition(client, user_headers, helmet):
    response = client.post(
        "/api/equipment/use-logs",
        json={"equipment_item_id": helmet["id"], "use_type": "AFTER_USE", "used_by": "Diver B", "condition": "FAIR"},
        headers=user_headers,
    )
    assert response.status_code == 201

    logs = client.get("/api/equipment/use-logs", params={"item_id": helmet["id"]}, headers=user_headers).json()
    assert [log["condition"] for log in logs["use_logs"]] == ["FAIR"]
