import json
from datetime import date, timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError

from db.database import fetch_all, fetch_one, get_db, insert_row, new_id, update_row, utc_now_iso
from models.equipment import (
    EquipmentItemCreate,
    EquipmentItemUpdate,
    EquipmentTypeCreate,
    MaintenanceScheduleCreate,
    MaintenanceTaskCreate,
    TaskCompletion,
    UseLogCreate,
)
from utils.auth import require_user

router = APIRouter(dependencies=[Depends(require_user)])

USE_LOG_LIMIT = 50


def _get_item_or_404(conn, item_id: str) -> dict:
    item = fetch_one(conn, "SELECT * FROM equipment_items WHERE id = :id", {"id": item_id})
    if not item:
        raise HTTPException(status_code=404, detail="Equipment item not found")
    return item


def _decode(row: dict, *fields: str) -> dict:
    for field in fields:
        try:
            row[field] = json.loads(row.get(field) or "[]")
        except ValueError:
            row[field] = []
    return row


def _item_values(payload: EquipmentItemCreate, now: str) -> dict:
    values = payload.model_dump()
    values["status"] = payload.status.value
    values.update({"id": new_id(), "created_at": now, "updated_at": now})
    return values


@router.get("/types")
async def list_types(conn=Depends(get_db)):
    rows = fetch_all(
        conn,
        """
        SELECT et.*, (SELECT COUNT(*) FROM equipment_items ei WHERE ei.equipment_type_id = et.id) AS item_count
        FROM equipment_types et
        ORDER BY et.name
        """,
    )
    return {"types": rows}


@router.post("/types", status_code=status.HTTP_201_CREATED)
async def create_type(payload: EquipmentTypeCreate, conn=Depends(get_db)):
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    equipment_type = {
        "id": new_id(),
        "name": payload.name.strip(),
        "description": payload.description,
        "default_maintenance_interval": payload.default_maintenance_interval,
        "created_at": utc_now_iso(),
    }
    try:
        insert_row(conn, "equipment_types", equipment_type)
        conn.commit()
    except IntegrityError:
        conn.rollback()
        raise HTTPException(status_code=409, detail="Equipment type already exists")
    return equipment_type


@router.get("/items")
async def list_items(
    status: Optional[str] = None,
    type_id: Optional[str] = None,
    location: Optional[str] = None,
    conn=Depends(get_db),
):
    filters: List[str] = []
    params: Dict[str, object] = {}
    if status:
        filters.append("ei.status = :status")
        params["status"] = status
    if type_id:
        filters.append("ei.equipment_type_id = :type_id")
        params["type_id"] = type_id
    if location:
        filters.append("ei.location = :location")
        params["location"] = location
    where = f"WHERE {' AND '.join(filters)}" if filters else ""
    rows = fetch_all(
        conn,
        f"""
        SELECT ei.*, et.name AS equipment_type_name
        FROM equipment_items ei
        JOIN equipment_types et ON et.id = ei.equipment_type_id
        {where}
        ORDER BY ei.name
        """,
        params,
    )
    return {"items": rows}


@router.get("/items/{item_id}")
async def get_item(item_id: str, conn=Depends(get_db)):
    item = _get_item_or_404(conn, item_id)
    item["equipment_type"] = fetch_one(
        conn, "SELECT * FROM equipment_types WHERE id = :id", {"id": item["equipment_type_id"]}
    )
    item["schedules"] = [
        _decode(row, "checklist")
        for row in fetch_all(
            conn,
            "SELECT * FROM maintenance_schedules WHERE equipment_item_id = :id ORDER BY created_at",
            {"id": item_id},
        )
    ]
    item["tasks"] = fetch_all(
        conn,
        "SELECT * FROM maintenance_tasks WHERE equipment_item_id = :id ORDER BY scheduled_date",
        {"id": item_id},
    )
    item["use_logs"] = fetch_all(
        conn,
        """
        SELECT * FROM equipment_use_logs
        WHERE equipment_item_id = :id
        ORDER BY use_date DESC
        LIMIT :limit
        """,
        {"id": item_id, "limit": USE_LOG_LIMIT},
    )
    return item


@router.post("/items", status_code=status.HTTP_201_CREATED)
async def create_item(payload: EquipmentItemCreate, conn=Depends(get_db)):
    if not fetch_one(conn, "SELECT id FROM equipment_types WHERE id = :id", {"id": payload.equipment_type_id}):
        raise HTTPException(status_code=400, detail="Unknown equipment type")
    item = _item_values(payload, utc_now_iso())
    insert_row(conn, "equipment_items", item)
    conn.commit()
    return item


@router.post("/items/bulk", status_code=status.HTTP_201_CREATED)
async def create_items_bulk(payload: List[EquipmentItemCreate], conn=Depends(get_db)):
    if not payload:
        raise HTTPException(status_code=400, detail="At least one item is required")
    type_ids = {item.equipment_type_id for item in payload}
    known = {
        row["id"]
        for row in fetch_all(conn, "SELECT id FROM equipment_types")
    }
    missing = sorted(type_ids - known)
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown equipment type: {missing[0]}")
    now = utc_now_iso()
    items = [_item_values(item, now) for item in payload]
    for item in items:
        insert_row(conn, "equipment_items", item)
    conn.commit()
    return {"created": len(items), "items": items}


@router.put("/items/{item_id}")
async def update_item(item_id: str, payload: EquipmentItemUpdate, conn=Depends(get_db)):
    _get_item_or_404(conn, item_id)
    values = payload.model_dump(exclude_unset=True)
    if values.get("status") is not None:
        values["status"] = values["status"].value
    values["updated_at"] = utc_now_iso()
    update_row(conn, "equipment_items", item_id, values)
    conn.commit()
    return _get_item_or_404(conn, item_id)


@router.get("/schedules")
async def list_schedules(item_id: Optional[str] = None, conn=Depends(get_db)):
    if item_id:
        rows = fetch_all(
            conn,
            "SELECT * FROM maintenance_schedules WHERE equipment_item_id = :item_id ORDER BY created_at",
            {"item_id": item_id},
        )
    else:
        rows = fetch_all(conn, "SELECT * FROM maintenance_schedules ORDER BY created_at")
    return {"schedules": [_decode(row, "checklist") for row in rows]}


@router.post("/schedules", status_code=status.HTTP_201_CREATED)
async def create_schedule(payload: MaintenanceScheduleCreate, conn=Depends(get_db)):
    _get_item_or_404(conn, payload.equipment_item_id)
    if payload.interval_value <= 0:
        raise HTTPException(status_code=400, detail="Interval value must be positive")
    schedule = {
        "id": new_id(),
        "equipment_item_id": payload.equipment_item_id,
        "name": payload.name,
        "interval_type": payload.interval_type.value,
        "interval_value": payload.interval_value,
        "checklist": json.dumps(payload.checklist),
        "is_active": 1,
        "created_at": utc_now_iso(),
    }
    insert_row(conn, "maintenance_schedules", schedule)
    conn.commit()
    return _decode(schedule, "checklist")


@router.get("/tasks")
async def list_tasks(
    status: Optional[str] = None,
    item_id: Optional[str] = None,
    upcoming: bool = False,
    conn=Depends(get_db),
):
    filters: List[str] = []
    params: Dict[str, object] = {}
    if status:
        filters.append("mt.status = :status")
        params["status"] = status
    if item_id:
        filters.append("mt.equipment_item_id = :item_id")
        params["item_id"] = item_id
    if upcoming:
        filters.append("mt.scheduled_date >= :today")
        params["today"] = date.today().isoformat()
    where = f"WHERE {' AND '.join(filters)}" if filters else ""
    rows = fetch_all(
        conn,
        f"""
        SELECT mt.*, ei.name AS equipment_name, ei.serial_number, ei.location
        FROM maintenance_tasks mt
        JOIN equipment_items ei ON ei.id = mt.equipment_item_id
        {where}
        ORDER BY mt.scheduled_date
        """,
        params,
    )
    return {"tasks": rows}


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(payload: MaintenanceTaskCreate, conn=Depends(get_db)):
    _get_item_or_404(conn, payload.equipment_item_id)
    if payload.schedule_id and not fetch_one(
        conn, "SELECT id FROM maintenance_schedules WHERE id = :id", {"id": payload.schedule_id}
    ):
        raise HTTPException(status_code=400, detail="Unknown maintenance schedule")
    now = utc_now_iso()
    task = {
        "id": new_id(),
        "equipment_item_id": payload.equipment_item_id,
        "schedule_id": payload.schedule_id,
        "title": payload.title,
        "scheduled_date": payload.scheduled_date,
        "status": "SCHEDULED",
        "assigned_to": payload.assigned_to,
        "notes": payload.notes,
        "created_at": now,
        "updated_at": now,
    }
    insert_row(conn, "maintenance_tasks", task)
    conn.commit()
    return task


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, payload: TaskCompletion, conn=Depends(get_db)):
    task = fetch_one(conn, "SELECT * FROM maintenance_tasks WHERE id = :id", {"id": task_id})
    if not task:
        raise HTTPException(status_code=404, detail="Maintenance task not found")
    if task["status"] == "COMPLETED":
        raise HTTPException(status_code=409, detail="Maintenance task already completed")
    completed_at = utc_now_iso()
    update_row(
        conn,
        "maintenance_tasks",
        task_id,
        {"status": "COMPLETED", "completed_date": completed_at, "updated_at": completed_at},
    )
    log = {
        "id": new_id(),
        "equipment_item_id": task["equipment_item_id"],
        "task_id": task_id,
        "performed_by": payload.performed_by,
        "performed_date": completed_at,
        "checklist_results": json.dumps(payload.checklist_results),
        "parts_replaced": json.dumps(payload.parts_replaced),
        "notes": payload.notes,
        "created_at": completed_at,
    }
    insert_row(conn, "maintenance_logs", log)
    update_row(
        conn,
        "equipment_items",
        task["equipment_item_id"],
        {"last_maintained_at": completed_at, "updated_at": completed_at},
    )
    conn.commit()
    task = fetch_one(conn, "SELECT * FROM maintenance_tasks WHERE id = :id", {"id": task_id})
    return {"task": task, "log": _decode(log, "checklist_results", "parts_replaced")}


@router.get("/use-logs")
async def list_use_logs(item_id: Optional[str] = None, use_type: Optional[str] = None, conn=Depends(get_db)):
    filters: List[str] = []
    params: Dict[str, object] = {}
    if item_id:
        filters.append("equipment_item_id = :item_id")
        params["item_id"] = item_id
    if use_type:
        filters.append("use_type = :use_type")
        params["use_type"] = use_type
    where = f"WHERE {' AND '.join(filters)}" if filters else ""
    rows = fetch_all(conn, f"SELECT * FROM equipment_use_logs {where} ORDER BY use_date DESC", params)
    return {"use_logs": rows}


@router.post("/use-logs", status_code=status.HTTP_201_CREATED)
async def create_use_log(payload: UseLogCreate, conn=Depends(get_db)):
    _get_item_or_404(conn, payload.equipment_item_id)
    now = utc_now_iso()
    log = payload.model_dump()
    log.update(
        {
            "id": new_id(),
            "use_type": payload.use_type.value,
            "condition": payload.condition.value,
            "use_date": payload.use_date or now,
            "created_at": now,
        }
    )
    insert_row(conn, "equipment_use_logs", log)
    conn.commit()
    return log


@router.get("/upcoming-maintenance")
async def upcoming_maintenance(days: int = 30, conn=Depends(get_db)):
    if days < 0:
        raise HTTPException(status_code=400, detail="days must be zero or more")
    today = date.today()
    horizon = (today + timedelta(days=days + 1)).isoformat()
    base = """
        SELECT mt.*, ei.name AS equipment_name, ei.serial_number, ei.location
        FROM maintenance_tasks mt
        JOIN equipment_items ei ON ei.id = mt.equipment_item_id
        WHERE mt.status IN ('SCHEDULED', 'IN_PROGRESS', 'OVERDUE')
    """
    upcoming = fetch_all(
        conn,
        base + " AND mt.scheduled_date >= :today AND mt.scheduled_date < :horizon ORDER BY mt.scheduled_date",
        {"today": today.isoformat(), "horizon": horizon},
    )
    overdue = fetch_all(
        conn,
        base + " AND mt.scheduled_date < :today ORDER BY mt.scheduled_date",
        {"today": today.isoformat()},
    )
    return {"days": days, "upcoming": upcoming, "overdue": overdue}
